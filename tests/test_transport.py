"""Tests for reply delivery."""

from __future__ import annotations

import json

import httpx
import pytest
import respx
from fakes import _run
from httpx import Response

from atlas.config import Settings
from atlas.services.transport import (
    LoggingReplyTransport,
    WebhookReplyTransport,
    get_reply_transport,
)

WEBHOOK = "https://chat.example.com/hooks/atlas"


class TestWebhookReplyTransport:
    def test_posts_reply_to_thread(self):
        with respx.mock() as respx_mock:
            route = respx_mock.post(WEBHOOK).mock(return_value=Response(200))
            _run(WebhookReplyTransport(WEBHOOK).send("spaces/AAA", "spaces/AAA/threads/1", "Done."))

        assert json.loads(route.calls.last.request.content) == {
            "space_id": "spaces/AAA",
            "thread_id": "spaces/AAA/threads/1",
            "text": "Done.",
        }

    def test_http_error_raises(self):
        with respx.mock() as respx_mock:
            respx_mock.post(WEBHOOK).mock(return_value=Response(502))
            with pytest.raises(httpx.HTTPStatusError):
                _run(WebhookReplyTransport(WEBHOOK).send("spaces/AAA", None, "Done."))


class TestGetReplyTransport:
    def test_webhook_when_configured(self):
        transport = get_reply_transport(Settings(_env_file=None, chat_webhook_url=WEBHOOK))
        assert isinstance(transport, WebhookReplyTransport)

    def test_logging_fallback(self):
        transport = get_reply_transport(Settings(_env_file=None, chat_webhook_url=""))
        assert isinstance(transport, LoggingReplyTransport)
        _run(transport.send("spaces/AAA", None, "Done."))
