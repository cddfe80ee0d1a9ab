"""
Registry wiring: connector methods → catalog tool names.

Only connectors whose credentials are configured are registered, so an
unconfigured source simply disappears from every worker menu.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from atlas.config import Settings, settings as default_settings
from atlas.connectors.atlassian import ConfluenceConnector, JiraConnector
from atlas.connectors.freshdesk import FreshdeskConnector
from atlas.connectors.gcloud import GoogleCloudConnector
from atlas.connectors.github import GitHubConnector
from atlas.tools.catalog import descriptor
from atlas.tools.registry import FunctionTool, ToolRegistry

logger = logging.getLogger(__name__)

ToolFunctions = dict[str, Callable[..., Awaitable[str]]]


def _jira_tools(jira: JiraConnector) -> ToolFunctions:
    return {
        "jira_list_projects": jira.list_projects,
        "jira_list_boards": jira.list_boards,
        "jira_list_sprints": jira.list_sprints,
        "jira_search": jira.search,
        "jira_discover_fields": jira.discover_fields,
        "jira_list_priorities": jira.list_priorities,
        "jira_list_statuses": jira.list_statuses,
        "jira_list_issue_types": jira.list_issue_types,
        "jira_get_issue": jira.get_issue,
        "jira_create_issue": jira.create_issue,
    }


def _confluence_tools(confluence: ConfluenceConnector) -> ToolFunctions:
    return {
        "confluence_search": confluence.search,
        "confluence_get_page": confluence.get_page,
        "confluence_get_page_children": confluence.get_page_children,
    }


def _freshdesk_tools(freshdesk: FreshdeskConnector) -> ToolFunctions:
    return {
        "freshdesk_get_ticket": freshdesk.get_ticket,
        "freshdesk_list_conversations": freshdesk.list_conversations,
        "freshdesk_search_tickets": freshdesk.search_tickets,
        "freshdesk_search_solutions": freshdesk.search_solutions,
    }


def _github_tools(github: GitHubConnector) -> ToolFunctions:
    return {
        "github_list_repos": github.list_repos,
        "github_search_code": github.search_code,
        "github_get_file": github.get_file,
        "github_list_directory": github.list_directory,
        "github_search_issues": github.search_issues,
        "github_get_pull_request": github.get_pull_request,
        "github_list_commits": github.list_commits,
    }


def _gcloud_tools(gcloud: GoogleCloudConnector) -> ToolFunctions:
    return {
        "gcloud_list_applications": gcloud.list_applications,
        "gcloud_read_logs": gcloud.read_logs,
        "k8s_get_pod_events": gcloud.pod_events,
        "k8s_get_deployment_events": gcloud.deployment_events,
        "k8s_discover_pods": gcloud.discover_pods,
        "monitoring_restart_count": gcloud.restart_count,
        "monitoring_resource_usage": gcloud.resource_usage,
        "monitoring_restart_count_all": gcloud.restart_count_all,
    }


def build_tool_registry(config: Settings | None = None) -> ToolRegistry:
    """Create a registry holding every tool whose connector is configured."""
    config = config or default_settings
    functions: ToolFunctions = {}

    has_atlassian = bool(config.atlassian_username and config.atlassian_api_token)
    if config.jira_url and has_atlassian:
        functions.update(_jira_tools(JiraConnector(
            config.jira_url, config.atlassian_username, config.atlassian_api_token,
        )))
    if config.confluence_url and has_atlassian:
        functions.update(_confluence_tools(ConfluenceConnector(
            config.confluence_url, config.atlassian_username, config.atlassian_api_token,
        )))
    if config.freshdesk_domain and config.freshdesk_api_key:
        functions.update(_freshdesk_tools(FreshdeskConnector(
            config.freshdesk_domain,
            config.freshdesk_api_key,
            portal_url=config.freshdesk_portal_url,
            search_tag=config.freshdesk_search_tag,
        )))
    if config.github_token:
        functions.update(_github_tools(
            GitHubConnector(config.github_token, org=config.github_org)
        ))
    if config.gcloud_access_token and config.gcloud_environments:
        functions.update(_gcloud_tools(GoogleCloudConnector(
            config.gcloud_access_token, config.gcloud_environments,
        )))

    registry = ToolRegistry(
        FunctionTool(descriptor(name), func) for name, func in functions.items()
    )
    logger.info("Tool registry built with %d tools", len(registry))
    return registry


# Lazy singleton — connectors hold no per-turn state
_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    global _registry
    if _registry is None:
        _registry = build_tool_registry()
    return _registry
