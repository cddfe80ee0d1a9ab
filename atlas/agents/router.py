"""
Research-worker router.

One reasoning call decides which worker handles the question. Any failure
(service error, no JSON, unknown agent id) falls back to the triage worker.
"""

from __future__ import annotations

import logging

from atlas.errors import ReasoningServiceError
from atlas.models.persona import PersonaContext
from atlas.models.verdicts import (
    DecodeFailure,
    ResearchAgentId,
    RouterDecision,
    decode_structured,
)
from atlas.services.llm import LLMProvider, user_message
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)

FALLBACK_AGENT: ResearchAgentId = "support_engineer"

ROUTER_PROMPT = (
    "You route support questions to one of three research agents.\n\n"
    "Agents:\n"
    "- support_engineer: triage and handoff. Helpdesk tickets, existing "
    "issues, wiki pages, how-to questions, process questions. No logs.\n"
    "- senior_engineer: deep technical investigation. Needs application "
    "logs, source code, pull requests or design documents.\n"
    "- sre_engineer: infrastructure incidents. Outages, pods restarting, "
    "crashes, OOM, deployments, latency, resource usage.\n\n"
    "The persona tells you who is asking (TechOps, Engineering or Other). "
    "TechOps and Other requesters usually need triage unless the question "
    "is clearly technical.\n\n"
    "Reply with JSON only:\n"
    '{"agent": "support_engineer" | "senior_engineer" | "sre_engineer", '
    '"reason": "<one short sentence>"}'
)


async def select_research_agent(
    llm: LLMProvider,
    query: str,
    persona: PersonaContext | None = None,
) -> ResearchAgentId:
    """Pick the research worker for `query`."""
    persona_tag = persona.persona_tag if persona else "Other"
    message = f"Question: {query}\nPersona: {persona_tag}"
    logger.debug("agent_router_input: %s", first_n_words(message, 50))

    try:
        response = await llm.generate(
            system=ROUTER_PROMPT,
            conversation=[user_message(message)],
        )
    except ReasoningServiceError as e:
        logger.error("Router call failed, defaulting to %s: %s", FALLBACK_AGENT, e)
        return FALLBACK_AGENT

    decoded = decode_structured(response.text, RouterDecision)
    if isinstance(decoded, DecodeFailure):
        logger.warning(
            "Router reply not usable (%s), defaulting to %s",
            decoded.reason, FALLBACK_AGENT,
        )
        return FALLBACK_AGENT

    decision = decoded.value
    logger.info("Router chose %s: %s", decision.agent, decision.reason)
    return decision.agent
