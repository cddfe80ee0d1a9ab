# =============================================================================
# Persona Lookup — Who Is Asking?
# =============================================================================
#
# Resolves a requester identity (chat e-mail) to a `PersonaContext`
# (department, team, persona tag, first name). The context is used three
# ways during a turn:
#   - router input ("Persona: TechOps")
#   - round-0 research hint (`build_persona_hint`)
#   - responder system prompt (`requester_context_paragraph`, `ticket_policy`)
#
# LOOKUP ORDER:
#   1. Redis cache   (key: <prefix><email>, JSON, TTL persona_cache_ttl_seconds)
#   2. Directory     (JSON export: [{email, first_name, department, team}])
#   3. Neutral "Other" context
#
# DESIGN DECISION: Graceful degradation. Redis or directory failures are
# logged and the lookup continues with the next source. A persona is a hint,
# so it never blocks a turn.
# =============================================================================

from __future__ import annotations

import json
import logging
from pathlib import Path

from atlas.config import Settings, settings as default_settings
from atlas.models.persona import PersonaContext

logger = logging.getLogger(__name__)


class PersonaResolver:
    """Redis-cached directory lookup."""

    def __init__(
        self,
        redis_client=None,
        directory_path: str | None = None,
        config: Settings | None = None,
    ) -> None:
        self._config = config or default_settings
        self._redis = redis_client
        self._directory_path = directory_path or self._config.persona_directory_path
        self._directory: dict[str, dict] | None = None

    def _get_redis(self):
        if self._redis is None:
            import redis
            self._redis = redis.Redis.from_url(
                self._config.redis_url, decode_responses=True,
            )
        return self._redis

    def _cache_key(self, email: str) -> str:
        return f"{self._config.persona_cache_prefix}{email}"

    def resolve(self, requester_id: str | None) -> PersonaContext:
        email = (requester_id or "").strip().lower()
        if not email:
            return PersonaContext.neutral()

        cached = self._read_cache(email)
        if cached is not None:
            return cached

        row = self._lookup_directory(email)
        if row is None:
            logger.info("Requester %s not in directory, using neutral persona", email)
            return PersonaContext.neutral()

        persona = _persona_from_record(row)
        self._write_cache(email, persona)
        return persona

    # -------------------------------------------------------------------------
    # Cache
    # -------------------------------------------------------------------------

    def _read_cache(self, email: str) -> PersonaContext | None:
        try:
            raw = self._get_redis().get(self._cache_key(email))
        except Exception as e:
            logger.warning("Persona cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed persona cache entry for %s", email)
            return None
        return _persona_from_record(data)

    def _write_cache(self, email: str, persona: PersonaContext) -> None:
        value = json.dumps({
            "first_name": persona.display_name or "",
            "department": persona.department_label or "",
            "team": persona.team_label or "",
        })
        try:
            self._get_redis().set(
                self._cache_key(email), value,
                ex=self._config.persona_cache_ttl_seconds,
            )
        except Exception as e:
            logger.warning("Persona cache write failed: %s", e)

    # -------------------------------------------------------------------------
    # Directory
    # -------------------------------------------------------------------------

    def _load_directory(self) -> dict[str, dict]:
        if self._directory is not None:
            return self._directory

        self._directory = {}
        if not self._directory_path:
            return self._directory
        try:
            rows = json.loads(Path(self._directory_path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(
                "Could not load persona directory %s: %s", self._directory_path, e,
            )
            return self._directory
        if not isinstance(rows, list):
            logger.warning(
                "Persona directory %s is not a list of records, ignoring it",
                self._directory_path,
            )
            return self._directory

        for row in rows:
            if not isinstance(row, dict):
                continue
            email = _text(row.get("email")).strip().lower()
            if email:
                self._directory[email] = row
        logger.info("Loaded persona directory with %d entries", len(self._directory))
        return self._directory

    def _lookup_directory(self, email: str) -> dict | None:
        return self._load_directory().get(email)


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def _persona_from_record(record: dict) -> PersonaContext:
    """Build a persona from a directory row or cache entry; non-text fields count as missing."""
    return PersonaContext.from_directory(
        department=_text(record.get("department")),
        team=_text(record.get("team")),
        display_name=_text(record.get("first_name")),
    )


# ---------------------------------------------------------------------------
# Prompt Fragments
# ---------------------------------------------------------------------------

_PERSONA_HINTS = {
    "TechOps": "Requester: TechOps (1st level support; FD ticket context). ",
    "Engineering": (
        "Requester: Engineering; focus on existing Jira/Confluence and "
        "reproduction context. "
    ),
    "Other": "Requester: Other department; gather triage info and FD link if missing. ",
}


def build_persona_hint(persona: PersonaContext | None) -> str:
    """One-line prefix for the first research round."""
    if persona is None:
        return ""
    return _PERSONA_HINTS[persona.persona_tag]


def requester_context_paragraph(persona: PersonaContext) -> str:
    """Who is asking and how to help them, for the responder's system prompt."""
    name = (persona.display_name or "").strip()
    if name:
        opening = f"The requester is **{name}**, from "
    else:
        opening = "The requester is from "
    address = "Address the user by name in your response when you know it."

    if persona.persona_tag == "Engineering":
        return (
            f"{opening}**Engineering**. If urgency or whether they are "
            "currently blocked and waiting for support is not clear, ask. "
            "Suggest the owning team when you can identify it. " + address
        )
    if persona.persona_tag == "TechOps":
        return (
            f"{opening}**TechOps** (1st level support). They report "
            "Freshdesk tickets. Your role is to help decide whether a "
            "non-conformity ticket should be created or it's a simple fix. "
            "Help quantify impact when possible. " + address
        )
    return (
        f"{opening}another department (e.g. Finance, Operations, Clinical "
        "Delivery). Triage and gather information: ask for the Freshdesk "
        "ticket link if missing, impact (numbers, dates), and steps; then "
        "summarize and suggest routing or attach to an existing ticket. "
        + address
    )


def is_ticket_authorized(requester_id: str | None, config: Settings | None = None) -> bool:
    config = config or default_settings
    authorized = config.ticket_authorized_requester.strip().lower()
    return bool(authorized) and (requester_id or "").strip().lower() == authorized


def ticket_policy(requester_id: str | None, config: Settings | None = None) -> str:
    config = config or default_settings
    if is_ticket_authorized(requester_id, config):
        return (
            "The user IS authorized to create Jira tickets.\n"
            "When asked, extract the project key, summary, and description, "
            "then use jira_create_issue.\n"
            "Confirm the created ticket key and URL."
        )
    return (
        "The user is NOT authorized to create Jira tickets.\n"
        f"If they ask, politely decline and say only "
        f"{config.ticket_authorized_name} can do that."
    )


_resolver: PersonaResolver | None = None


def get_persona_resolver() -> PersonaResolver:
    global _resolver
    if _resolver is None:
        _resolver = PersonaResolver()
    return _resolver
