# =============================================================================
# Events API — Inbound Chat Messages
# =============================================================================
#
# POST /events receives one user message from the chat platform adapter.
#
# FLOW:
#   1. Strip bot mentions from the text; ignore empty messages
#   2. Refuse requesters outside the allow list (fixed reply, nothing queued)
#   3. Enqueue a Turn for the periodic drain task
#   4. Acknowledge immediately ("🔍 Looking into it…")
#
# The answer itself arrives later through the reply transport, once the
# Celery worker has run the orchestrator for this Turn.
#
# ERRORS: QueueLockTimeoutError → 503 with no acknowledgement, so the user
# sees that the message was not accepted and can resend it.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from atlas.config import Settings, get_settings
from atlas.errors import QueueLockTimeoutError
from atlas.models.turns import ChatEvent, ChatEventResponse, Turn
from atlas.services.queue import TurnQueue, get_turn_queue
from atlas.services.text import first_n_words, strip_bot_mention

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Chat Events"])

ACKNOWLEDGEMENT = "🔍 Looking into it…"

NOT_ALLOWED_REPLY = (
    "This is currently in the POC phase, and only requests initiated by "
    "whitelisted users are allowed."
)


def is_allowed_requester(requester_id: str | None, config: Settings) -> bool:
    """Empty allow list admits everyone; otherwise a case-insensitive match."""
    allowed = {r.strip().lower() for r in config.allowed_requesters if r.strip()}
    if not allowed:
        return True
    return (requester_id or "").strip().lower() in allowed


def get_queue() -> TurnQueue:
    """Dependency hook; tests override it with an in-memory queue."""
    return get_turn_queue()


@router.post(
    "/events",
    response_model=ChatEventResponse,
    summary="Receive a chat message",
    description=(
        "Accept one user message, queue it for the research agents and "
        "acknowledge. The answer is delivered asynchronously to the thread."
    ),
)
async def receive_event(
    event: ChatEvent,
    queue: TurnQueue = Depends(get_queue),
    config: Settings = Depends(get_settings),
) -> ChatEventResponse:
    text = strip_bot_mention(event.text)
    if not text:
        logger.debug("Ignoring empty message in %s", event.space_id)
        return ChatEventResponse()

    if not is_allowed_requester(event.requester_id, config):
        logger.info("Refusing message from non-whitelisted %s", event.requester_id or "<anonymous>")
        return ChatEventResponse(text=NOT_ALLOWED_REPLY)

    turn = Turn(
        space_id=event.space_id,
        thread_id=event.thread_id,
        raw_message=text,
        requester_id=event.requester_id,
        prior_messages=tuple(event.prior_messages),
    )
    logger.info(
        "Event from %s in %s: '%s'",
        event.requester_id or "<anonymous>", event.space_id, first_n_words(text, 20),
    )

    try:
        queue.enqueue(turn)
    except QueueLockTimeoutError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e

    return ChatEventResponse(text=ACKNOWLEDGEMENT, queued=True)
