# =============================================================================
# Atlassian Connectors — Jira & Confluence Cloud REST APIs
# =============================================================================
#
# Both products share one Atlassian account (basic auth with an API token).
#
# Jira search accepts either JQL or plain keywords. Text that looks like JQL
# (has a comparison plus a JQL keyword) is sent as-is; anything else becomes
# `text ~ "<keywords>" ORDER BY updated DESC`.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from atlas.connectors.base import HTTPConnector, failure_as_text
from atlas.services.text import sanitize_query, strip_html, truncate

logger = logging.getLogger(__name__)

_JQL_KEYWORDS = (
    " AND ", " OR ", " PROJECT ", "PROJECT =", "PRIORITY", "CREATED",
    "STATUS", "ORDER BY",
)


def looks_like_jql(text: str) -> bool:
    if not text or len(text) < 3:
        return False
    upper = text.upper()
    has_comparison = "=" in upper or " IN (" in upper
    return has_comparison and any(k in upper for k in _JQL_KEYWORDS)


def build_jql(query: str) -> str:
    q = query.strip()
    if looks_like_jql(q):
        return q if "ORDER BY" in q.upper() else f"{q} ORDER BY updated DESC"
    return f'text ~ "{sanitize_query(q)}" ORDER BY updated DESC'


def adf_to_text(node: Any) -> str:
    """Flatten an Atlassian Document Format node to plain text."""
    if not node:
        return ""
    if isinstance(node, str):
        return node
    if node.get("text"):
        return node["text"]
    return " ".join(adf_to_text(child) for child in node.get("content") or [])


def _unique_by_name(items: list[dict]) -> list[dict]:
    seen: set[str] = set()
    unique = []
    for item in items:
        key = (item.get("name") or "").lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def _as_list(data: Any) -> list[dict]:
    if isinstance(data, list):
        return data
    return data.get("values") or data.get("results") or []


class JiraConnector(HTTPConnector):
    """Read access to Jira plus the single write action (create issue)."""

    def __init__(self, base_url: str, username: str, api_token: str, **kwargs: Any) -> None:
        super().__init__(base_url, auth=(username, api_token), **kwargs)

    def issue_url(self, key: str) -> str:
        return f"{self.base_url}/browse/{key}"

    @failure_as_text("Listing Jira projects")
    async def list_projects(self) -> str:
        logger.info("Jira list projects")
        projects = _as_list(await self._get("/rest/api/3/project", maxResults=100))
        if not projects:
            return "No Jira projects found (or no permission)."
        lines = [
            f"- {p.get('key') or p.get('id')}: {p.get('name', '')}" for p in projects
        ]
        return f"Jira projects ({len(projects)}):\n\n" + "\n".join(lines)

    @failure_as_text("Listing Jira boards")
    async def list_boards(self, project_key_or_id: str | None = None) -> str:
        logger.info("Jira list boards project=%s", project_key_or_id)
        data = await self._get(
            "/rest/agile/1.0/board",
            maxResults=50,
            projectKeyOrId=project_key_or_id or None,
        )
        boards = data.get("values") or []
        if not boards:
            return "No Jira boards found for this project (or no permission)."
        lines = []
        for b in boards:
            location = b.get("location") or {}
            project = location.get("projectKey") or location.get("projectName") or ""
            line = f'- Board ID {b["id"]}: "{b.get("name", "")}" ({b.get("type") or "board"})'
            lines.append(f"{line}, project: {project}" if project else line)
        return f"Jira boards ({len(boards)}):\n\n" + "\n".join(lines)

    @failure_as_text("Listing Jira sprints")
    async def list_sprints(self, board_id: str | int | None = None, state: str | None = None) -> str:
        if not board_id:
            return "No board ID provided. Use jira_list_boards first to get board IDs."
        logger.info("Jira list sprints board=%s state=%s", board_id, state)
        data = await self._get(
            f"/rest/agile/1.0/board/{board_id}/sprint",
            maxResults=50,
            state=state or None,
        )
        sprints = data.get("values") or []
        if not sprints:
            return "No sprints found for this board."
        lines = []
        for s in sprints:
            dates = " ".join(d for d in (s.get("startDate"), s.get("endDate")) if d)
            lines.append(
                f'- Sprint ID {s["id"]}: "{s.get("name", "")}" '
                f'(state: {s.get("state") or "?"}) {dates}'.rstrip()
            )
        return f"Sprints for board {board_id} ({len(sprints)}):\n\n" + "\n".join(lines)

    @failure_as_text("Jira search")
    async def search(self, query: str = "") -> str:
        if not query or not query.strip():
            return "No query provided."
        jql = build_jql(query)
        logger.info("Jira search: %s", jql)
        # /rest/api/3/search is gone; the JQL endpoint is the supported one
        data = await self._post(
            "/rest/api/3/search/jql",
            {
                "jql": jql,
                "maxResults": 5,
                "fields": ["summary", "status", "assignee", "updated", "issuetype", "project"],
            },
        )
        issues = data.get("issues") or []
        if not issues:
            return f"No Jira tickets found for: {query}"
        lines = []
        for issue in issues:
            f = issue.get("fields") or {}
            lines.append(
                f"- *{issue['key']}*: {f.get('summary', '')} "
                f"[{(f.get('issuetype') or {}).get('name', '?')} | "
                f"{(f.get('status') or {}).get('name', '?')}] "
                f"(Project: {(f.get('project') or {}).get('key', '?')})\n"
                f"  {self.issue_url(issue['key'])}"
            )
        return f"Found {len(issues)} Jira ticket(s):\n\n" + "\n\n".join(lines)

    @failure_as_text("Listing Jira fields")
    async def discover_fields(self, keyword: str | None = None) -> str:
        fields = await self._get("/rest/api/3/field")
        if keyword:
            kw = keyword.lower()
            fields = [f for f in fields if kw in (f.get("name") or "").lower()]
        if not fields:
            suffix = f" matching '{keyword}'" if keyword else ""
            return f"No Jira fields found{suffix}."
        shown = fields[:30]
        lines = [
            f"- {f.get('name')} | JQL clause: {', '.join(f.get('clauseNames') or [])} "
            f"| id: {f.get('id')} {'[custom]' if f.get('custom') else '[system]'}"
            + (" (project-scoped)" if f.get("scope") else "")
            for f in shown
        ]
        total = f" of {len(fields)}" if len(fields) > len(shown) else ""
        return f"Jira fields ({len(shown)}{total}):\n\n" + "\n".join(lines)

    @failure_as_text("Listing Jira priorities")
    async def list_priorities(self) -> str:
        priorities = _as_list(await self._get("/rest/api/3/priority"))
        if not priorities:
            return "No priorities found."
        lines = [f"- {p.get('name') or '?'} (id: {p.get('id')})" for p in priorities]
        return "Jira priorities (use 'priority' field in JQL):\n\n" + "\n".join(lines)

    @failure_as_text("Listing Jira statuses")
    async def list_statuses(self) -> str:
        statuses = _unique_by_name(_as_list(await self._get("/rest/api/3/status")))
        if not statuses:
            return "No statuses found."
        lines = []
        for s in statuses[:40]:
            category = (s.get("statusCategory") or {}).get("name")
            lines.append(f"- {s.get('name') or '?'}" + (f" [{category}]" if category else ""))
        return (
            f"Jira statuses (use 'status' field in JQL, {len(statuses)} unique):\n\n"
            + "\n".join(lines)
        )

    @failure_as_text("Listing Jira issue types")
    async def list_issue_types(self) -> str:
        types = _unique_by_name(_as_list(await self._get("/rest/api/3/issuetype")))
        if not types:
            return "No issue types found."
        lines = [
            f"- {t.get('name') or '?'}"
            + (" [subtask]" if t.get("subtask") else "")
            + (" (project-scoped)" if t.get("scope") else "")
            for t in types
        ]
        return "Jira issue types (use 'issuetype' field in JQL):\n\n" + "\n".join(lines)

    @failure_as_text("Retrieving Jira issue")
    async def get_issue(self, issue_key: str = "") -> str:
        if not issue_key:
            return "No issue key provided."
        logger.info("Jira get issue: %s", issue_key)
        issue = await self._get(
            f"/rest/api/3/issue/{issue_key}",
            fields="summary,status,assignee,reporter,description,comment,"
            "priority,issuetype,project,updated,created",
        )
        f = issue.get("fields") or {}

        def name(field: str, attr: str = "name", default: str = "?") -> str:
            return (f.get(field) or {}).get(attr) or default

        description = adf_to_text(f.get("description"))[:2000] or "(no description)"
        lines = [
            f"*{issue['key']}*: {f.get('summary', '')}",
            f"URL: {self.issue_url(issue['key'])}",
            f"Type: {name('issuetype')} | Status: {name('status')} | Priority: {name('priority')}",
            f"Project: {name('project', 'key')}",
            f"Assignee: {name('assignee', 'displayName', 'Unassigned')}",
            f"Reporter: {name('reporter', 'displayName')}",
            f"Created: {f.get('created') or '?'} | Updated: {f.get('updated') or '?'}",
            "",
            "Description:",
            description,
        ]
        comments = (f.get("comment") or {}).get("comments") or []
        if comments:
            lines += ["", f"Comments ({len(comments)}):"]
            for c in comments[-3:]:
                author = (c.get("author") or {}).get("displayName", "?")
                lines.append(
                    f"- {author} ({c.get('created', '')}): {adf_to_text(c.get('body'))[:300]}"
                )
        return "\n".join(lines)

    @failure_as_text("Creating Jira issue")
    async def create_issue(
        self,
        project_key: str = "",
        summary: str = "",
        description: str = "",
    ) -> str:
        """Create a Task. Callers are responsible for authorization."""
        if not project_key or not summary:
            return "Missing required fields: project_key and summary are required."
        logger.info("Jira create issue: %s / %s", project_key, summary)
        data = await self._post(
            "/rest/api/3/issue",
            {
                "fields": {
                    "project": {"key": project_key},
                    "summary": summary,
                    "description": {
                        "version": 1,
                        "type": "doc",
                        "content": [{
                            "type": "paragraph",
                            "content": [{
                                "type": "text",
                                "text": description or "Created by the support assistant",
                            }],
                        }],
                    },
                    "issuetype": {"name": "Task"},
                }
            },
        )
        return f"Ticket created: {data['key']} - {self.issue_url(data['key'])}"


class ConfluenceConnector(HTTPConnector):
    """Confluence page search and reading (CQL over the content API)."""

    PAGE_LIMIT = 8000

    def __init__(self, base_url: str, username: str, api_token: str, **kwargs: Any) -> None:
        super().__init__(base_url, auth=(username, api_token), **kwargs)

    def _page_url(self, page: dict) -> str:
        webui = (page.get("_links") or {}).get("webui", "")
        return self.base_url.replace("/wiki", "") + webui

    def _page_lines(self, pages: list[dict]) -> list[str]:
        return [
            f"- *{p.get('title')}* (ID: {p.get('id')})\n  {self._page_url(p)}"
            for p in pages
        ]

    @failure_as_text("Confluence search")
    async def search(self, query: str = "") -> str:
        if not query:
            return "No query provided."
        logger.info("Confluence search: %s", query)
        data = await self._get(
            "/rest/api/content/search",
            cql=f'type=page AND text ~ "{sanitize_query(query)}"',
            limit=10,
            expand="metadata.labels",
        )
        pages = data.get("results") or []
        if not pages:
            return f"No Confluence pages found for: {query}"
        return (
            f"Found {len(pages)} Confluence page(s):\n\n"
            + "\n\n".join(self._page_lines(pages))
        )

    @failure_as_text("Retrieving Confluence page")
    async def get_page(self, page_id: str = "") -> str:
        if not page_id:
            return "No page ID provided."
        logger.info("Confluence get page: %s", page_id)
        page = await self._get(f"/rest/api/content/{page_id}", expand="body.view")
        body = ((page.get("body") or {}).get("view") or {}).get("value", "")
        content = truncate(
            strip_html(body), self.PAGE_LIMIT, "\n\n[Content truncated, page is longer]"
        )
        return f"*{page.get('title')}*\n{self._page_url(page)}\n\n{content}"

    @failure_as_text("Retrieving Confluence child pages")
    async def get_page_children(self, page_id: str = "") -> str:
        if not page_id:
            return "No page ID provided."
        logger.info("Confluence get children: %s", page_id)
        data = await self._get(
            f"/rest/api/content/{page_id}/child/page",
            limit=20,
            expand="metadata.labels",
        )
        pages = data.get("results") or []
        if not pages:
            return f"No child pages found under page {page_id}"
        return (
            f"Found {len(pages)} child page(s):\n\n"
            + "\n\n".join(self._page_lines(pages))
        )
