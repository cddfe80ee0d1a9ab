# =============================================================================
# Tool Catalog — Schemas and Worker Menus
# =============================================================================
#
# Declares every tool the reasoning service can be offered (name,
# description, JSON-schema parameters) and the fixed menus each research
# worker gets:
#
#   TRIAGE_TOOLS         — wiki, issue tracker, helpdesk (no logs/metrics/code)
#   INVESTIGATION_TOOLS  — TRIAGE_TOOLS + application logs + code host
#   INCIDENT_TOOLS       — INVESTIGATION_TOOLS + k8s events + metrics
#   ACTION_TOOLS         — side-effecting actions (create issue); only the
#                          responder is offered these
#
# Descriptions are written for the model: they say when to use a tool and
# which other tool to call first.
# =============================================================================

from __future__ import annotations

from typing import Any

from atlas.services.llm import ToolDescriptor


def _string(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _number(description: str) -> dict[str, Any]:
    return {"type": "number", "description": description}


def _tool(
    name: str,
    description: str,
    properties: dict[str, dict[str, Any]] | None = None,
    required: tuple[str, ...] = (),
) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=description,
        parameters={
            "type": "object",
            "properties": properties or {},
            "required": list(required),
        },
    )


_TIME_WINDOW = {
    "start_time": _string(
        "Optional. ISO 8601 start in UTC (e.g. 2025-02-15T20:00:00Z). "
        "Use for incident windows."
    ),
    "end_time": _string("Optional. ISO 8601 end in UTC. Pair with start_time."),
}


# ---------------------------------------------------------------------------
# Wiki (Confluence)
# ---------------------------------------------------------------------------

CONFLUENCE_TOOLS = (
    _tool(
        "confluence_search",
        "Search Confluence pages by keyword. Returns page titles, IDs and URLs.",
        {"query": _string("Search keywords (try different phrasings)")},
        ("query",),
    ),
    _tool(
        "confluence_get_page",
        "Read the full content of a Confluence page by numeric ID. Always use "
        "this after searching to read the actual content.",
        {"page_id": _string("Numeric Confluence page ID from search results")},
        ("page_id",),
    ),
    _tool(
        "confluence_get_page_children",
        "List child pages of a Confluence page. Use when a page is an index "
        "and the real content lives in its children.",
        {"page_id": _string("Numeric ID of the parent page")},
        ("page_id",),
    ),
)

# ---------------------------------------------------------------------------
# Issue tracker (Jira)
# ---------------------------------------------------------------------------

JIRA_TOOLS = (
    _tool(
        "jira_list_projects",
        "List Jira projects (key and name). Use to confirm project keys "
        "before writing JQL.",
    ),
    _tool(
        "jira_list_boards",
        "List Jira agile boards, optionally for one project. Returns board "
        "IDs for jira_list_sprints.",
        {"project_key_or_id": _string("Optional. Project key or ID")},
    ),
    _tool(
        "jira_list_sprints",
        "List sprints of a Jira board. Optional state: active, future, closed.",
        {
            "board_id": _string("Board ID from jira_list_boards"),
            "state": _string("Optional. active, future or closed"),
        },
        ("board_id",),
    ),
    _tool(
        "jira_search",
        "Search Jira issues by JQL or keywords. Use jira_discover_fields "
        "first when unsure about field names in JQL.",
        {"query": _string("JQL (e.g. project = NC AND priority = High) or keywords")},
        ("query",),
    ),
    _tool(
        "jira_discover_fields",
        "Search Jira field definitions by keyword. Returns field names, JQL "
        "clause names and whether the field is custom.",
        {"keyword": _string("Keyword such as 'severity' or 'sprint'. Empty lists common fields.")},
    ),
    _tool(
        "jira_list_priorities",
        "List valid values of the Jira 'priority' field.",
    ),
    _tool(
        "jira_list_statuses",
        "List valid values of the Jira 'status' field.",
    ),
    _tool(
        "jira_list_issue_types",
        "List valid values of the Jira 'issuetype' field.",
    ),
    _tool(
        "jira_get_issue",
        "Read a Jira issue by key (e.g. PROJ-123): description, latest "
        "comments, assignee and status.",
        {"issue_key": _string("The Jira issue key")},
        ("issue_key",),
    ),
)

# ---------------------------------------------------------------------------
# Helpdesk (Freshdesk)
# ---------------------------------------------------------------------------

FRESHDESK_TOOLS = (
    _tool(
        "freshdesk_get_ticket",
        "Get a Freshdesk ticket by numeric ID: subject, description, status, "
        "priority, requester. Use when the user shares a ticket link or ID.",
        {"ticket_id": _string("Numeric Freshdesk ticket ID")},
        ("ticket_id",),
    ),
    _tool(
        "freshdesk_list_conversations",
        "List replies and notes of a Freshdesk ticket.",
        {"ticket_id": _string("Numeric Freshdesk ticket ID")},
        ("ticket_id",),
    ),
    _tool(
        "freshdesk_search_tickets",
        "Search Freshdesk for user-reported problems. For recent problems "
        "pass days_back or created_after and no free-text query. Use "
        "query 'requester_id:NNNN' to list one requester's tickets.",
        {
            "query": _string("Optional. requester_id:12345"),
            "days_back": _number("Optional. Days to look back (e.g. 30)"),
            "created_after": _string("Optional. Start date YYYY-MM-DD"),
        },
    ),
    _tool(
        "freshdesk_search_solutions",
        "Search the Freshdesk knowledge base for how-to and FAQ articles.",
        {"query": _string("Search keywords (e.g. 'password reset')")},
        ("query",),
    ),
)

# ---------------------------------------------------------------------------
# Application logs (Google Cloud Logging)
# ---------------------------------------------------------------------------

LOG_TOOLS = (
    _tool(
        "gcloud_list_applications",
        "List application/container names running in an environment. Use "
        "first when the exact application name is unknown.",
        {"environment": _string("Environment name (e.g. prod, staging)")},
        ("environment",),
    ),
    _tool(
        "gcloud_read_logs",
        "Read log entries of one application. Filter by severity, text and "
        "time range; use start_time/end_time for incident windows.",
        {
            "environment": _string("Environment name"),
            "application": _string("Container/application name from gcloud_list_applications"),
            "severity": _string("Optional. Minimum severity: DEBUG, INFO, WARNING, ERROR, CRITICAL"),
            "search_text": _string("Optional. Text to search for in log messages"),
            "hours_ago": _number("Optional. Hours to look back (default 1). Ignored with start_time."),
            "limit": _number("Optional. Max entries (default 20, max 50)"),
            **_TIME_WINDOW,
        },
        ("environment", "application"),
    ),
)

# ---------------------------------------------------------------------------
# Code host (GitHub)
# ---------------------------------------------------------------------------

GITHUB_TOOLS = (
    _tool(
        "github_list_repos",
        "List repositories of the configured GitHub organisation.",
        {"per_page": _number("Optional. Max repos (default 100, max 100)")},
    ),
    _tool(
        "github_search_code",
        "Search source code across the organisation's repositories. Returns "
        "file paths, repos and snippets.",
        {"query": _string("Class, function, error message or config key")},
        ("query",),
    ),
    _tool(
        "github_get_file",
        "Read one file of a repository.",
        {
            "repo": _string("Repository as owner/repo or short name"),
            "path": _string("File path in the repository"),
        },
        ("repo", "path"),
    ),
    _tool(
        "github_list_directory",
        "List files and folders at a path of a repository. Empty path = root.",
        {
            "repo": _string("Repository as owner/repo or short name"),
            "path": _string("Directory path (empty for root)"),
        },
        ("repo",),
    ),
    _tool(
        "github_search_issues",
        "Search GitHub issues and pull requests by text.",
        {
            "query": _string("Search keywords"),
            "repo": _string("Optional. Limit to one repository"),
        },
        ("query",),
    ),
    _tool(
        "github_get_pull_request",
        "Get a pull request with its description and changed files.",
        {
            "repo": _string("Repository as owner/repo or short name"),
            "pull_number": _number("Pull request number"),
        },
        ("repo", "pull_number"),
    ),
    _tool(
        "github_list_commits",
        "List recent commits of a repository, optionally for one path.",
        {
            "repo": _string("Repository as owner/repo or short name"),
            "path": _string("Optional. Only commits touching this path"),
            "since": _string("Optional. ISO 8601 timestamp"),
        },
        ("repo",),
    ),
)

# ---------------------------------------------------------------------------
# Infrastructure events and metrics (Cloud Logging + Cloud Monitoring)
# ---------------------------------------------------------------------------

INFRASTRUCTURE_TOOLS = (
    _tool(
        "k8s_get_pod_events",
        "Kubernetes pod lifecycle events (Unhealthy, Killing, BackOff, "
        "OOMKilling, Failed). Leave application empty to find problematic "
        "events across all applications.",
        {
            "environment": _string("Environment name"),
            "application": _string("Optional. Container/application name"),
            "hours_ago": _number("Optional. Hours to look back (default 24)"),
            **_TIME_WINDOW,
        },
        ("environment",),
    ),
    _tool(
        "k8s_get_deployment_events",
        "Helm release deployment events (UpgradeSucceeded, InstallFailed, "
        "...). Leave application empty to list all recent deployments.",
        {
            "environment": _string("Environment name"),
            "application": _string("Optional. Release name to filter"),
            "hours_ago": _number("Optional. Hours to look back (default 168)"),
            **_TIME_WINDOW,
        },
        ("environment",),
    ),
    _tool(
        "k8s_discover_pods",
        "Current pod names and namespaces of an application, from recent logs.",
        {
            "environment": _string("Environment name"),
            "application": _string("Container/application name"),
        },
        ("environment", "application"),
    ),
    _tool(
        "monitoring_restart_count",
        "Container restart_count per pod for one application.",
        {
            "environment": _string("Environment name"),
            "application": _string("Container name"),
            "hours_ago": _number("Optional. Hours to look back (default 24)"),
            **_TIME_WINDOW,
        },
        ("environment", "application"),
    ),
    _tool(
        "monitoring_resource_usage",
        "Per-pod memory, CPU or uptime of one application.",
        {
            "environment": _string("Environment name"),
            "application": _string("Container name"),
            "metric_type": _string("One of: memory, cpu, uptime"),
            "hours_ago": _number("Optional. Hours to look back (default 24)"),
            **_TIME_WINDOW,
        },
        ("environment", "application", "metric_type"),
    ),
    _tool(
        "monitoring_restart_count_all",
        "restart_count of every container in an environment, highest first.",
        {
            "environment": _string("Environment name"),
            "hours_ago": _number("Optional. Hours to look back (default 24)"),
            **_TIME_WINDOW,
        },
        ("environment",),
    ),
)

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

CREATE_ISSUE_TOOL = "jira_create_issue"

ACTION_DESCRIPTORS = (
    _tool(
        CREATE_ISSUE_TOOL,
        "Create a new Jira issue. Only works for authorized users.",
        {
            "project_key": _string("Jira project key (e.g. PROJ)"),
            "summary": _string("Issue title"),
            "description": _string("Detailed description"),
        },
        ("project_key", "summary"),
    ),
)


# ---------------------------------------------------------------------------
# Lookup + Menus
# ---------------------------------------------------------------------------

ALL_DESCRIPTORS: dict[str, ToolDescriptor] = {
    d.name: d
    for group in (
        CONFLUENCE_TOOLS, JIRA_TOOLS, FRESHDESK_TOOLS, LOG_TOOLS,
        GITHUB_TOOLS, INFRASTRUCTURE_TOOLS, ACTION_DESCRIPTORS,
    )
    for d in group
}


def _names(*groups: tuple[ToolDescriptor, ...]) -> tuple[str, ...]:
    return tuple(d.name for group in groups for d in group)


TRIAGE_TOOLS = _names(CONFLUENCE_TOOLS, JIRA_TOOLS, FRESHDESK_TOOLS)
INVESTIGATION_TOOLS = TRIAGE_TOOLS + _names(LOG_TOOLS, GITHUB_TOOLS)
INCIDENT_TOOLS = INVESTIGATION_TOOLS + _names(INFRASTRUCTURE_TOOLS)
ACTION_TOOLS = _names(ACTION_DESCRIPTORS)


def descriptor(name: str) -> ToolDescriptor:
    """Catalog entry for `name`. Raises KeyError for unknown tools."""
    return ALL_DESCRIPTORS[name]
