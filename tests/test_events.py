"""Tests for POST /events with an in-memory queue."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from atlas.api.events import (
    ACKNOWLEDGEMENT,
    NOT_ALLOWED_REPLY,
    get_queue,
    is_allowed_requester,
)
from atlas.config import Settings, get_settings
from atlas.errors import QueueLockTimeoutError
from atlas.main import app
from atlas.services.queue import InMemoryTurnQueue


@pytest.fixture
def queue():
    return InMemoryTurnQueue()


@pytest.fixture
def client(queue):
    app.dependency_overrides[get_queue] = lambda: queue
    app.dependency_overrides[get_settings] = lambda: Settings(_env_file=None)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _event(**overrides):
    body = {
        "space_id": "spaces/AAA",
        "thread_id": "spaces/AAA/threads/1",
        "text": "<users/123> Why is the mailer failing?",
        "requester_id": "jane@example.com",
        "prior_messages": [
            {"role": "user", "text": "is prod ok?"},
            {"role": "assistant", "text": "Yes."},
        ],
    }
    body.update(overrides)
    return body


class TestEventsEndpoint:
    def test_message_is_queued_and_acknowledged(self, client, queue):
        response = client.post("/events", json=_event())

        assert response.status_code == 200
        assert response.json() == {"text": ACKNOWLEDGEMENT, "queued": True}

        turn = queue.dequeue_one()
        assert turn.raw_message == "Why is the mailer failing?"
        assert turn.requester_id == "jane@example.com"
        assert [m.role for m in turn.prior_messages] == ["user", "assistant"]

    def test_mention_only_message_is_ignored(self, client, queue):
        response = client.post("/events", json=_event(text="<users/123>  "))
        assert response.json() == {"text": None, "queued": False}
        assert len(queue) == 0

    def test_non_whitelisted_requester_is_refused(self, client, queue):
        app.dependency_overrides[get_settings] = lambda: Settings(
            _env_file=None, allowed_requesters=["boss@example.com"],
        )
        response = client.post("/events", json=_event())
        assert response.json() == {"text": NOT_ALLOWED_REPLY, "queued": False}
        assert len(queue) == 0

    def test_lock_timeout_is_503(self, client):
        failing = MagicMock()
        failing.enqueue.side_effect = QueueLockTimeoutError("enqueue", 10)
        app.dependency_overrides[get_queue] = lambda: failing

        response = client.post("/events", json=_event())

        assert response.status_code == 503
        assert "turn queue lock" in response.json()["detail"]

    def test_missing_space_is_rejected(self, client):
        response = client.post("/events", json=_event(space_id=""))
        assert response.status_code == 422

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestAllowList:
    def test_empty_list_allows_everyone(self):
        assert is_allowed_requester("anyone@example.com", Settings(_env_file=None))

    def test_case_insensitive(self):
        config = Settings(_env_file=None, allowed_requesters=["Jane@Example.com"])
        assert is_allowed_requester(" jane@example.COM ", config)
        assert not is_allowed_requester("", config)
