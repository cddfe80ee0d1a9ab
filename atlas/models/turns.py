# =============================================================================
# Turn Models — Units of Work and Thread History
# =============================================================================
#
# A Turn is one inbound chat message plus its thread context. It is created
# by the events endpoint, serialised into the durable queue, and consumed
# once by the orchestrator.
#
# DESIGN DECISION: frozen models. A Turn is never edited after it is
# created; the queue stores and returns it verbatim.
# =============================================================================

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ConversationMessage(BaseModel):
    """One message of thread history, oldest first."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    text: str


class Turn(BaseModel):
    """
    One inbound user message with the thread it belongs to.

    Serialised as a flat JSON record in the turn queue:
        {
            "space_id": "spaces/AAA",
            "thread_id": "spaces/AAA/threads/BBB",
            "raw_message": "Why is the mailer failing?",
            "requester_id": "jane@example.com",
            "prior_messages": [{"role": "user", "text": "..."}]
        }
    """

    model_config = ConfigDict(frozen=True)

    space_id: str
    thread_id: str | None = None
    raw_message: str
    requester_id: str = ""
    prior_messages: tuple[ConversationMessage, ...] = ()


class ChatEvent(BaseModel):
    """
    Request body for POST /events — one user message from the chat platform.

    `prior_messages` is the thread history fetched by the chat adapter; it is
    empty for the first message in a thread.
    """

    space_id: str = Field(..., min_length=1, examples=["spaces/AAAA1234"])
    thread_id: str | None = Field(default=None, examples=["spaces/AAAA1234/threads/xyz"])
    text: str = Field(default="", max_length=20000)
    requester_id: str = Field(default="", examples=["jane.doe@example.com"])
    prior_messages: list[ConversationMessage] = Field(default_factory=list)


class ChatEventResponse(BaseModel):
    """Synchronous reply to a chat event (acknowledgement or refusal)."""

    text: str | None = None
    queued: bool = False
