"""Freshdesk API v2 connector: tickets, conversations, ticket search, knowledge base."""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Any

from atlas.connectors.base import HTTPConnector, as_int, failure_as_text
from atlas.services.text import strip_html, truncate

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    2: "Open",
    3: "Pending",
    4: "Resolved",
    5: "Closed",
    6: "Waiting on Customer",
    7: "Waiting on Third Party",
}
PRIORITY_LABELS = {1: "Low", 2: "Medium", 3: "High", 4: "Urgent"}

_REQUESTER_QUERY = re.compile(r"requester_id\s*:\s*(\d+)", re.IGNORECASE)
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Window used when neither a tag nor a date narrows a ticket search
DEFAULT_DAYS_BACK = 30


def status_label(code: Any) -> str:
    return STATUS_LABELS.get(code, f"Status {code}")


def priority_label(code: Any) -> str:
    return PRIORITY_LABELS.get(code, f"Priority {code}")


def resolve_date_filter(
    days_back: Any = None,
    created_after: str | None = None,
    today: date | None = None,
) -> str | None:
    """YYYY-MM-DD lower bound from `days_back`, else from a valid `created_after`."""
    days = as_int(days_back, default=0, minimum=0)
    if days > 0:
        return ((today or date.today()) - timedelta(days=days)).isoformat()
    if created_after and _ISO_DATE.match(created_after):
        return created_after
    return None


class FreshdeskConnector(HTTPConnector):
    """
    Helpdesk access. Auth is HTTP basic with the API key as username and a
    dummy password, which is how Freshdesk API keys work.
    """

    def __init__(
        self,
        domain: str,
        api_key: str,
        portal_url: str | None = None,
        search_tag: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(domain, auth=(api_key, "X"), **kwargs)
        self.portal_url = (portal_url or domain).rstrip("/")
        self.search_tag = search_tag

    def ticket_url(self, ticket_id: Any) -> str:
        return f"{self.portal_url}/a/tickets/{ticket_id}"

    @failure_as_text("Retrieving Freshdesk ticket")
    async def get_ticket(self, ticket_id: str = "") -> str:
        if not ticket_id:
            return "No ticket ID provided."
        logger.info("Freshdesk get ticket: %s", ticket_id)
        t = await self._get(f"/api/v2/tickets/{ticket_id}", include="requester")

        requester = t.get("requester") or {}
        who = requester.get("name") or requester.get("email") or "?"
        if requester.get("email"):
            who += f" ({requester['email']})"
        description = strip_html(t.get("description_text") or t.get("description"))
        lines = [
            f"*Ticket #{t['id']}*: {t.get('subject', '')}",
            f"URL: {self.ticket_url(t['id'])}",
            f"Status: {status_label(t.get('status'))} | "
            f"Priority: {priority_label(t.get('priority'))} | Type: {t.get('type') or '?'}",
            f"Requester: {who} [requester_id: {t.get('requester_id') or '?'}]",
            f"Created: {t.get('created_at') or '?'} | Updated: {t.get('updated_at') or '?'}",
            f"Tags: {', '.join(t.get('tags') or []) or 'none'}",
            "",
            "Description:",
            description[:2000] or "(no description)",
        ]
        return "\n".join(lines)

    @failure_as_text("Retrieving Freshdesk conversations")
    async def list_conversations(self, ticket_id: str = "") -> str:
        if not ticket_id:
            return "No ticket ID provided."
        logger.info("Freshdesk list conversations: %s", ticket_id)
        conversations = await self._get(
            f"/api/v2/tickets/{ticket_id}/conversations", per_page=20
        )
        if not isinstance(conversations, list) or not conversations:
            return "No conversations for this ticket."

        lines = [f"Conversations (last {len(conversations)}):", ""]
        for c in conversations:
            body = truncate(strip_html(c.get("body_text") or c.get("body")), 400)
            sender = str(c.get("from_email") or c.get("user_id") or "?")
            if c.get("private"):
                sender += " [private note]"
            lines.append(f"- {sender} ({c.get('created_at') or '?'}): {body}")
        return "\n".join(lines)

    @failure_as_text("Freshdesk ticket search")
    async def search_tickets(
        self,
        query: str | None = None,
        days_back: Any = None,
        created_after: str | None = None,
    ) -> str:
        query = (query or "").strip()
        since = None
        requester = _REQUESTER_QUERY.search(query)
        if requester:
            data = await self._get(
                "/api/v2/tickets",
                requester_id=requester.group(1),
                per_page=10,
                order_by="created_at",
                order_type="desc",
            )
        else:
            since = resolve_date_filter(days_back, created_after)
            clauses = []
            if self.search_tag:
                clauses.append(f"tag:'{self.search_tag}'")
            if since is None and not clauses:
                since = resolve_date_filter(DEFAULT_DAYS_BACK)
            if since:
                clauses.append(f"created_at:>'{since}'")
            search_query = " AND ".join(clauses)
            logger.info("Freshdesk search tickets: %s", search_query)
            data = await self._get(
                "/api/v2/search/tickets", query=f'"{search_query}"', page=1
            )

        tickets = data.get("results") if isinstance(data, dict) else data
        if not isinstance(tickets, list) or not tickets:
            scope = f"since {since}" if since else (query or "all reported problems")
            return f"No Freshdesk tickets found ({scope})."

        lines = [
            f"- *#{t['id']}*: {t.get('subject') or '?'} [{status_label(t.get('status'))}] "
            f"{t.get('created_at') or ''}\n  {self.ticket_url(t['id'])}"
            for t in tickets
        ]
        return f"Found {len(tickets)} Freshdesk ticket(s):\n\n" + "\n\n".join(lines)

    @failure_as_text("Freshdesk knowledge base search")
    async def search_solutions(self, query: str = "") -> str:
        term = (query or "").strip()
        if not term:
            return (
                "No search term provided. Pass a keyword or phrase "
                "(e.g. 'password reset', 'how to')."
            )
        logger.info("Freshdesk search solutions: %s", term)
        data = await self._get("/api/v2/search/solutions", term=term)
        articles = data
        if isinstance(data, dict):
            articles = data.get("results") or data.get("articles") or []
        if not isinstance(articles, list) or not articles:
            return (
                f'No knowledge base articles found for "{term}". '
                "Try different keywords or check Confluence/tickets."
            )

        max_articles = 10
        lines = []
        for a in articles[:max_articles]:
            article_id = a.get("id", a.get("article_id", ""))
            title = a.get("title") or a.get("name") or "Untitled"
            body = strip_html(
                a.get("description") or a.get("description_text")
                or a.get("body") or a.get("content")
            )
            snippet = truncate(body, 200) or "(no snippet)"
            lines.append(
                f"- *{title}*\n  {snippet}\n"
                f"  {self.portal_url}/a/solutions/articles/{article_id}"
            )
        shown = (
            f" (showing first {max_articles})" if len(articles) > max_articles else ""
        )
        return (
            f"Found {len(articles)} knowledge base article(s){shown}:\n\n"
            + "\n\n".join(lines)
        )
