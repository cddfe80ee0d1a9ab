"""
Conversation context for follow-up messages.

- `summarize_conversation`: compact summary of the thread so far (only for
  threads with at least two prior messages).
- `rewrite_query`: "thinking mode", which turns the raw chat message into
  one self-contained query.
- `contextualize_query`: the query the router, workers and evaluator see.

Both reasoning calls degrade to "no change" on failure; a broken summary
must not cost the user their answer.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from atlas.config import settings
from atlas.errors import ReasoningServiceError
from atlas.models.turns import ConversationMessage
from atlas.services.llm import LLMProvider, user_message
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = (
    "Summarize this support chat thread for a colleague who will continue "
    "it. Keep names of systems, services, tickets, environments, dates and "
    "error messages. State what was already answered and what is still "
    "open. At most 8 short bullet points, no preamble."
)

REWRITE_PROMPT = (
    "Rewrite the user's chat message into one clear, self-contained "
    "question for a research assistant. Resolve references such as \"it\" "
    "or \"this service\" using the prior conversation when it is given. "
    "Keep ticket numbers, names, environments and error messages exactly. "
    "Reply with the rewritten question only."
)


async def summarize_conversation(
    llm: LLMProvider,
    prior_messages: Sequence[ConversationMessage],
) -> str:
    """Summary of the thread, or "" for first messages and on failure."""
    if len(prior_messages) < 2:
        return ""

    transcript = "\n\n".join(
        f"{settings.bot_display_name if m.role == 'assistant' else 'User'}: {m.text.strip()}"
        for m in prior_messages
    )
    try:
        response = await llm.generate(
            system=SUMMARY_PROMPT,
            conversation=[user_message(transcript)],
        )
    except ReasoningServiceError as e:
        logger.warning("Conversation summary failed, continuing without: %s", e)
        return ""

    summary = (response.text or "").strip()
    logger.debug("conversation_summary: %s (length=%d)", first_n_words(summary, 50), len(summary))
    return summary


async def rewrite_query(
    llm: LLMProvider,
    message: str,
    conversation_summary: str = "",
) -> str:
    """Rewritten query, or the trimmed original when the rewrite is empty or fails."""
    original = (message or "").strip()
    if not original:
        return original

    text = original
    if conversation_summary:
        text += f"\n\nContext from prior conversation:\n{conversation_summary}"
    try:
        response = await llm.generate(
            system=REWRITE_PROMPT,
            conversation=[user_message(text)],
        )
    except ReasoningServiceError as e:
        logger.warning("Query rewrite failed, using original message: %s", e)
        return original

    rewritten = (response.text or "").strip()
    logger.debug("rewritten_query: %s", first_n_words(rewritten, 50))
    return rewritten or original


def contextualize_query(query: str, conversation_summary: str = "") -> str:
    query = (query or "").strip()
    if not conversation_summary:
        return query
    return (
        f"{query}\n\nConversation summary (prior discussion in this thread):\n"
        f"{conversation_summary}"
    )


def build_source_hint(query: str) -> str | None:
    """Restrict round 0 to the helpdesk when only the helpdesk is mentioned."""
    q = (query or "").lower()
    mentions_helpdesk = "freshdesk" in q or "fresh desk" in q
    mentions_other = "confluence" in q or "jira" in q
    if mentions_helpdesk and not mentions_other:
        return "User asked only about Freshdesk; use only Freshdesk tools for this request."
    return None
