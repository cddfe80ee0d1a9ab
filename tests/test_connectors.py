# =============================================================================
# Unit Tests — Knowledge-Source Connectors
# =============================================================================
#
# HTTP traffic is mocked with respx; no credentials or network needed.
# Every connector method returns text, including on HTTP failures.
# =============================================================================

from __future__ import annotations

import base64
import json
from datetime import date, datetime, timezone

import httpx
import respx
from httpx import Response
from fakes import _run

from atlas.connectors.atlassian import (
    ConfluenceConnector,
    JiraConnector,
    adf_to_text,
    build_jql,
    looks_like_jql,
)
from atlas.connectors.base import as_int
from atlas.connectors.freshdesk import FreshdeskConnector, resolve_date_filter
from atlas.connectors.gcloud import GoogleCloudConnector, timestamp_filter
from atlas.connectors.github import GitHubConnector

JIRA = "https://acme.atlassian.net"
FRESHDESK = "https://acme.freshdesk.com"


# ---------------------------------------------------------------------------
# Test: Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_as_int_clamps(self):
        assert as_int("7.9", 5) == 7
        assert as_int(None, 5) == 5
        assert as_int("many", 5) == 5
        assert as_int(-3, 5) == 1
        assert as_int(500, 5, maximum=100) == 100

    def test_jql_detection(self):
        assert looks_like_jql('project = OPS AND status = "In Progress"')
        assert not looks_like_jql("mailer keeps crashing")

    def test_build_jql_from_keywords(self):
        assert build_jql('mailer "OOM"') == 'text ~ "mailer OOM" ORDER BY updated DESC'

    def test_build_jql_keeps_existing_order(self):
        jql = "project = OPS ORDER BY created DESC"
        assert build_jql(jql) == jql

    def test_adf_to_text(self):
        doc = {"type": "doc", "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": "Hello"}]},
            {"type": "paragraph", "content": [{"type": "text", "text": "world"}]},
        ]}
        assert adf_to_text(doc) == "Hello world"

    def test_resolve_date_filter(self):
        today = date(2025, 3, 10)
        assert resolve_date_filter(7, today=today) == "2025-03-03"
        assert resolve_date_filter(None, "2025-01-01", today=today) == "2025-01-01"
        assert resolve_date_filter(None, "last week", today=today) is None

    def test_timestamp_filter(self):
        now = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert timestamp_filter(2, now=now) == ['timestamp>="2025-03-10T10:00:00Z"']
        assert timestamp_filter(2, "2025-03-01T00:00:00Z", "2025-03-02T00:00:00Z") == [
            'timestamp>="2025-03-01T00:00:00Z"',
            'timestamp<="2025-03-02T00:00:00Z"',
        ]


# ---------------------------------------------------------------------------
# Test: Jira / Confluence
# ---------------------------------------------------------------------------


class TestJiraConnector:
    def test_search_posts_jql(self):
        jira = JiraConnector(JIRA, "bot@acme.com", "token")
        captured = {}

        def handler(request):
            captured["json"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return Response(200, json={"issues": [{
                "key": "OPS-1",
                "fields": {
                    "summary": "Mailer down",
                    "issuetype": {"name": "Bug"},
                    "status": {"name": "Open"},
                    "project": {"key": "OPS"},
                },
            }]})

        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(f"{JIRA}/rest/api/3/search/jql").mock(side_effect=handler)
            result = _run(jira.search("mailer"))

        assert captured["json"]["jql"] == 'text ~ "mailer" ORDER BY updated DESC'
        assert captured["json"]["maxResults"] == 5
        assert captured["auth"].startswith("Basic ")
        assert result.startswith("Found 1 Jira ticket(s):")
        assert "*OPS-1*: Mailer down [Bug | Open] (Project: OPS)" in result
        assert f"{JIRA}/browse/OPS-1" in result

    def test_http_error_becomes_text(self):
        jira = JiraConnector(JIRA, "bot@acme.com", "token")
        with respx.mock() as respx_mock:
            respx_mock.post(f"{JIRA}/rest/api/3/search/jql").mock(
                return_value=Response(500, text="boom")
            )
            result = _run(jira.search("mailer"))
        assert result == "Jira search failed (HTTP 500): boom"

    def test_network_error_becomes_text(self):
        jira = JiraConnector(JIRA, "bot@acme.com", "token")
        with respx.mock() as respx_mock:
            respx_mock.get(f"{JIRA}/rest/api/3/priority").mock(
                side_effect=httpx.ConnectError("connection refused")
            )
            result = _run(jira.list_priorities())
        assert "failed: connection refused" in result

    def test_create_issue(self):
        jira = JiraConnector(JIRA, "bot@acme.com", "token")
        with respx.mock() as respx_mock:
            route = respx_mock.post(f"{JIRA}/rest/api/3/issue").mock(
                return_value=Response(201, json={"key": "OPS-42"})
            )
            result = _run(jira.create_issue("OPS", "Mailer down", "It is down"))

        body = json.loads(route.calls.last.request.content)
        assert body["fields"]["project"] == {"key": "OPS"}
        assert body["fields"]["issuetype"] == {"name": "Task"}
        assert result == f"Ticket created: OPS-42 - {JIRA}/browse/OPS-42"

    def test_create_issue_requires_fields(self):
        jira = JiraConnector(JIRA, "bot@acme.com", "token")
        assert _run(jira.create_issue("OPS", "")).startswith("Missing required fields")


class TestConfluenceConnector:
    def test_search_uses_cql(self):
        wiki = ConfluenceConnector(f"{JIRA}/wiki", "bot@acme.com", "token")
        with respx.mock() as respx_mock:
            route = respx_mock.get(f"{JIRA}/wiki/rest/api/content/search").mock(
                return_value=Response(200, json={"results": [{
                    "id": "123", "title": "Mailer runbook",
                    "_links": {"webui": "/wiki/spaces/OPS/pages/123"},
                }]})
            )
            result = _run(wiki.search("mailer"))

        assert route.calls.last.request.url.params["cql"] == 'type=page AND text ~ "mailer"'
        assert "*Mailer runbook* (ID: 123)" in result
        assert f"{JIRA}/wiki/spaces/OPS/pages/123" in result

    def test_get_page_strips_html(self):
        wiki = ConfluenceConnector(f"{JIRA}/wiki", "bot@acme.com", "token")
        with respx.mock() as respx_mock:
            respx_mock.get(f"{JIRA}/wiki/rest/api/content/123").mock(
                return_value=Response(200, json={
                    "title": "Runbook",
                    "body": {"view": {"value": "<p>Restart <b>mailer</b></p>"}},
                    "_links": {"webui": "/wiki/x"},
                })
            )
            result = _run(wiki.get_page("123"))
        assert result.endswith("Restart mailer")


# ---------------------------------------------------------------------------
# Test: Freshdesk
# ---------------------------------------------------------------------------


class TestFreshdeskConnector:
    def test_requester_query_lists_tickets(self):
        fd = FreshdeskConnector(FRESHDESK, "fd-key")
        with respx.mock() as respx_mock:
            route = respx_mock.get(f"{FRESHDESK}/api/v2/tickets").mock(
                return_value=Response(200, json=[{"id": 7, "subject": "Login", "status": 2}])
            )
            result = _run(fd.search_tickets("requester_id: 555"))

        assert route.calls.last.request.url.params["requester_id"] == "555"
        assert "*#7*: Login [Open]" in result
        assert f"{FRESHDESK}/a/tickets/7" in result

    def test_tag_search(self):
        fd = FreshdeskConnector(FRESHDESK, "fd-key", search_tag="Reported Problem")
        with respx.mock() as respx_mock:
            route = respx_mock.get(f"{FRESHDESK}/api/v2/search/tickets").mock(
                return_value=Response(200, json={"results": []})
            )
            result = _run(fd.search_tickets())

        assert route.calls.last.request.url.params["query"] == "\"tag:'Reported Problem'\""
        assert result == "No Freshdesk tickets found (all reported problems)."

    def test_search_without_tag_defaults_to_recent_window(self):
        fd = FreshdeskConnector(FRESHDESK, "fd-key")
        with respx.mock() as respx_mock:
            route = respx_mock.get(f"{FRESHDESK}/api/v2/search/tickets").mock(
                return_value=Response(200, json={"results": []})
            )
            _run(fd.search_tickets())
        assert "created_at:>'" in route.calls.last.request.url.params["query"]

    def test_get_ticket_missing_id(self):
        assert _run(FreshdeskConnector(FRESHDESK, "k").get_ticket("")) == "No ticket ID provided."


# ---------------------------------------------------------------------------
# Test: GitHub
# ---------------------------------------------------------------------------


class TestGitHubConnector:
    def test_normalize_repo(self):
        gh = GitHubConnector("ghp", org="acme")
        assert gh.normalize_repo("backend") == "acme/backend"
        assert gh.normalize_repo("someone/backend") == "acme/backend"
        assert gh.normalize_repo("acme/backend") == "acme/backend"

    def test_get_file_decodes_content(self):
        gh = GitHubConnector("ghp", org="acme")
        encoded = base64.b64encode(b"print('hi')\n").decode()
        with respx.mock() as respx_mock:
            route = respx_mock.get("https://api.github.com/repos/acme/backend/contents/app.py").mock(
                return_value=Response(200, json={
                    "type": "file", "content": encoded,
                    "html_url": "https://github.com/acme/backend/blob/main/app.py",
                })
            )
            result = _run(gh.get_file("backend", "app.py"))

        assert route.calls.last.request.headers["Authorization"] == "Bearer ghp"
        assert result.endswith("print('hi')\n")

    def test_list_repos_needs_org(self):
        assert "GITHUB_ORG" in _run(GitHubConnector("ghp").list_repos())


# ---------------------------------------------------------------------------
# Test: Google Cloud
# ---------------------------------------------------------------------------


class TestGoogleCloudConnector:
    def test_environment_aliases(self):
        gcp = GoogleCloudConnector("ya29", {"Prod": "acme-prod"})
        assert gcp.resolve_environment("PROD") == "acme-prod"
        assert gcp.resolve_environment("acme-prod") == "acme-prod"
        assert gcp.resolve_environment("staging") is None

    def test_unknown_environment(self):
        gcp = GoogleCloudConnector("ya29", {"prod": "acme-prod"})
        result = _run(gcp.read_logs("staging", "mailer"))
        assert result == 'Unknown environment: "staging". Use one of: prod.'

    def test_read_logs_filter_and_format(self):
        gcp = GoogleCloudConnector("ya29", {"prod": "acme-prod"})
        with respx.mock() as respx_mock:
            route = respx_mock.post("https://logging.googleapis.com/v2/entries:list").mock(
                return_value=Response(200, json={"entries": [{
                    "timestamp": "2025-03-10T10:00:00.123Z",
                    "severity": "error",
                    "textPayload": "OutOfMemoryError",
                    "resource": {"labels": {"pod_name": "mailer-abc"}},
                }]})
            )
            result = _run(gcp.read_logs("prod", "mailer", severity="error", limit=5))

        body = json.loads(route.calls.last.request.content)
        assert body["resourceNames"] == ["projects/acme-prod"]
        assert body["pageSize"] == 5
        assert 'resource.labels.container_name="mailer"' in body["filter"]
        assert "severity>=ERROR" in body["filter"]
        assert "[2025-03-10T10:00:00Z] ERROR mailer (pod: mailer-abc)" in result
        assert "Message: OutOfMemoryError" in result
