"""
Outbound chat replies.

Exactly one reply is sent per Turn. `WebhookReplyTransport` posts it to the
chat platform's incoming webhook; `LoggingReplyTransport` only logs it, for
local runs without a chat space.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from atlas.config import Settings, settings as default_settings
from atlas.services.text import first_n_words

logger = logging.getLogger(__name__)


class ReplyTransport(Protocol):
    async def send(self, space_id: str, thread_id: str | None, text: str) -> None:
        ...


class WebhookReplyTransport:
    """POST {space_id, thread_id, text} to the configured chat webhook."""

    def __init__(self, webhook_url: str, timeout: float = 30.0) -> None:
        self._url = webhook_url
        self._timeout = timeout

    async def send(self, space_id: str, thread_id: str | None, text: str) -> None:
        payload = {"space_id": space_id, "thread_id": thread_id, "text": text}
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._url, json=payload)
        response.raise_for_status()
        logger.info("Reply delivered to %s (%d chars)", space_id, len(text))


class LoggingReplyTransport:
    async def send(self, space_id: str, thread_id: str | None, text: str) -> None:
        logger.info(
            "Reply for %s [%s]: %s", space_id, thread_id or "-", first_n_words(text, 50),
        )


def get_reply_transport(config: Settings | None = None) -> ReplyTransport:
    config = config or default_settings
    if config.chat_webhook_url:
        return WebhookReplyTransport(config.chat_webhook_url, timeout=config.http_timeout_seconds)
    logger.warning("CHAT_WEBHOOK_URL not set, replies will only be logged")
    return LoggingReplyTransport()
