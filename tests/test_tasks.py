# =============================================================================
# Unit Tests — Celery Drain Task
# =============================================================================
#
# drain_queue is called directly (no broker). Redis, the queue, the turn
# runner and the reply transport are replaced on the tasks module.
# =============================================================================

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import redis

from atlas.config import settings
from atlas.errors import QueueLockTimeoutError
from atlas.models.turns import Turn
from atlas.services.queue import InMemoryTurnQueue
from atlas.workers import tasks


@pytest.fixture
def drain_lock():
    lock = MagicMock()
    lock.acquire.return_value = True
    return lock


@pytest.fixture
def redis_client(monkeypatch, drain_lock):
    client = MagicMock()
    client.lock.return_value = drain_lock
    monkeypatch.setattr(tasks, "_get_redis", lambda: client)
    return client


@pytest.fixture
def queue(monkeypatch):
    queue = InMemoryTurnQueue()
    monkeypatch.setattr(tasks, "get_turn_queue", lambda: queue)
    return queue


@pytest.fixture
def runner(monkeypatch):
    runner = AsyncMock(return_value="the answer")
    monkeypatch.setattr(tasks, "_tick_runner", lambda: runner)
    return runner


@pytest.fixture
def transport(monkeypatch):
    transport = AsyncMock()
    monkeypatch.setattr(tasks, "get_reply_transport", lambda: transport)
    return transport


class TestDrainQueue:
    def test_processes_one_turn_and_releases_lock(
        self, redis_client, drain_lock, queue, runner, transport,
    ):
        queue.enqueue(Turn(space_id="spaces/1", raw_message="first"))
        queue.enqueue(Turn(space_id="spaces/2", raw_message="second"))

        result = tasks.drain_queue()

        assert result == {"processed": True, "skipped": False}
        transport.send.assert_awaited_once_with("spaces/1", None, "the answer")
        assert len(queue) == 1
        drain_lock.release.assert_called_once()

        kwargs = redis_client.lock.call_args.kwargs
        assert redis_client.lock.call_args.args[0] == settings.drain_lock_key
        assert kwargs["blocking"] is False
        assert kwargs["timeout"] == settings.drain_lock_ttl_seconds

    def test_empty_queue(self, redis_client, drain_lock, queue, runner, transport):
        assert tasks.drain_queue() == {"processed": False, "skipped": False}
        runner.assert_not_awaited()
        drain_lock.release.assert_called_once()

    def test_held_lock_skips_without_dequeuing(
        self, redis_client, drain_lock, queue, runner, transport,
    ):
        drain_lock.acquire.return_value = False
        queue.enqueue(Turn(space_id="spaces/1", raw_message="waiting"))

        assert tasks.drain_queue() == {"processed": False, "skipped": True}

        assert len(queue) == 1
        runner.assert_not_awaited()
        transport.send.assert_not_awaited()
        drain_lock.release.assert_not_called()

    def test_lock_released_when_dequeue_fails(
        self, monkeypatch, redis_client, drain_lock, runner, transport,
    ):
        failing = MagicMock()
        failing.dequeue_one.side_effect = QueueLockTimeoutError("dequeue", 10)
        monkeypatch.setattr(tasks, "get_turn_queue", lambda: failing)

        with pytest.raises(QueueLockTimeoutError):
            tasks.drain_queue()

        drain_lock.release.assert_called_once()

    def test_expired_lock_is_only_logged(
        self, redis_client, drain_lock, queue, runner, transport, caplog,
    ):
        drain_lock.release.side_effect = redis.exceptions.LockError("lock expired")
        queue.enqueue(Turn(space_id="spaces/1", raw_message="slow"))

        assert tasks.drain_queue() == {"processed": True, "skipped": False}
        assert "Drain lock expired" in caplog.text
