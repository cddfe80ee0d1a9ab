# =============================================================================
# Unit Tests — Turn Queue and Drain Step
# =============================================================================
#
# InMemoryTurnQueue is exercised directly; RedisTurnQueue runs against a
# MagicMock Redis client that stores values in a dict.
# =============================================================================

from __future__ import annotations

import json
import threading
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import _run

from atlas.config import Settings
from atlas.errors import QueueLockTimeoutError
from atlas.models.turns import ConversationMessage, Turn
from atlas.services.queue import (
    FAILURE_REPLY,
    InMemoryTurnQueue,
    RedisTurnQueue,
    process_next_turn,
)


def _turn(n: int, **kwargs) -> Turn:
    return Turn(space_id=f"spaces/{n}", raw_message=f"message {n}", **kwargs)


class _DictRedis:
    """Just enough of redis.Redis for the queue: get/set plus a lock."""

    def __init__(self, acquire: bool = True):
        self.values: dict[str, str] = {}
        self.lock_mock = MagicMock()
        self.lock_mock.acquire.return_value = acquire
        self.lock_calls: list[dict] = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value

    def lock(self, name, **kwargs):
        self.lock_calls.append({"name": name, **kwargs})
        return self.lock_mock


# ---------------------------------------------------------------------------
# Test: In-Memory Queue
# ---------------------------------------------------------------------------


class TestInMemoryTurnQueue:
    def test_fifo(self):
        queue = InMemoryTurnQueue()
        for n in range(3):
            queue.enqueue(_turn(n))
        assert [queue.dequeue_one().space_id for _ in range(3)] == [
            "spaces/0", "spaces/1", "spaces/2",
        ]
        assert queue.dequeue_one() is None

    def test_concurrent_enqueue_loses_nothing(self):
        queue = InMemoryTurnQueue()
        per_thread = 50

        def producer(worker: int):
            for i in range(per_thread):
                queue.enqueue(_turn(worker * 1000 + i))

        threads = [threading.Thread(target=producer, args=(w,)) for w in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        drained = []
        while (turn := queue.dequeue_one()) is not None:
            drained.append(int(turn.space_id.split("/")[1]))

        assert len(drained) == 8 * per_thread
        assert len(set(drained)) == len(drained)
        # Each producer's own turns stay in order
        for worker in range(8):
            own = [n for n in drained if n // 1000 == worker]
            assert own == sorted(own)

    def test_lock_timeout_raises(self):
        queue = InMemoryTurnQueue(lock_timeout_seconds=0.05)
        queue._lock.acquire()
        try:
            with pytest.raises(QueueLockTimeoutError) as exc:
                queue.enqueue(_turn(1))
            assert exc.value.operation == "enqueue"
        finally:
            queue._lock.release()
        assert len(queue) == 0


# ---------------------------------------------------------------------------
# Test: Redis Queue
# ---------------------------------------------------------------------------


class TestRedisTurnQueue:
    def _queue(self, client):
        config = Settings(_env_file=None, queue_key="q", queue_lock_key="q:lock")
        return RedisTurnQueue(redis_client=client, config=config)

    def test_stores_flat_json_records(self):
        client = _DictRedis()
        queue = self._queue(client)
        queue.enqueue(_turn(
            1,
            requester_id="jane@example.com",
            prior_messages=(ConversationMessage(role="user", text="hi"),),
        ))

        stored = json.loads(client.values["q"])
        assert stored == [{
            "space_id": "spaces/1",
            "thread_id": None,
            "raw_message": "message 1",
            "requester_id": "jane@example.com",
            "prior_messages": [{"role": "user", "text": "hi"}],
        }]

    def test_fifo_round_trip(self):
        client = _DictRedis()
        queue = self._queue(client)
        queue.enqueue(_turn(1))
        queue.enqueue(_turn(2))

        assert queue.dequeue_one().space_id == "spaces/1"
        assert queue.dequeue_one().space_id == "spaces/2"
        assert queue.dequeue_one() is None
        assert client.lock_mock.release.call_count == 5

    def test_lock_uses_configured_wait(self):
        client = _DictRedis()
        queue = self._queue(client)
        queue.enqueue(_turn(1))
        assert client.lock_calls[0]["name"] == "q:lock"
        assert client.lock_calls[0]["blocking_timeout"] == 10.0

    def test_lock_timeout_leaves_queue_untouched(self):
        client = _DictRedis(acquire=False)
        client.values["q"] = json.dumps([_turn(1).model_dump(mode="json")])
        queue = self._queue(client)

        with pytest.raises(QueueLockTimeoutError):
            queue.dequeue_one()
        with pytest.raises(QueueLockTimeoutError):
            queue.enqueue(_turn(2))

        assert len(json.loads(client.values["q"])) == 1
        client.lock_mock.release.assert_not_called()


# ---------------------------------------------------------------------------
# Test: Drain Step
# ---------------------------------------------------------------------------


class TestProcessNextTurn:
    def test_empty_queue(self):
        transport = AsyncMock()
        runner = AsyncMock()
        assert _run(process_next_turn(InMemoryTurnQueue(), runner, transport)) is False
        runner.assert_not_awaited()
        transport.send.assert_not_awaited()

    def test_one_turn_per_call(self):
        queue = InMemoryTurnQueue()
        queue.enqueue(_turn(1, thread_id="t1"))
        queue.enqueue(_turn(2))
        runner = AsyncMock(return_value="the answer")
        transport = AsyncMock()

        assert _run(process_next_turn(queue, runner, transport)) is True

        runner.assert_awaited_once()
        transport.send.assert_awaited_once_with("spaces/1", "t1", "the answer")
        assert len(queue) == 1

    def test_orchestrator_failure_sends_generic_reply(self):
        queue = InMemoryTurnQueue()
        queue.enqueue(_turn(1))
        queue.enqueue(_turn(2))
        runner = AsyncMock(side_effect=[RuntimeError("graph exploded"), "second answer"])
        transport = AsyncMock()

        assert _run(process_next_turn(queue, runner, transport)) is True
        transport.send.assert_awaited_once_with("spaces/1", None, FAILURE_REPLY)

        assert _run(process_next_turn(queue, runner, transport)) is True
        transport.send.assert_awaited_with("spaces/2", None, "second answer")

    def test_delivery_failure_is_contained(self):
        queue = InMemoryTurnQueue()
        queue.enqueue(_turn(1))
        transport = AsyncMock()
        transport.send.side_effect = [ConnectionError("webhook down"), ConnectionError("still down")]

        assert _run(process_next_turn(queue, AsyncMock(return_value="x"), transport)) is True
        assert transport.send.await_count == 2

    def test_lock_timeout_propagates(self):
        queue = MagicMock()
        queue.dequeue_one.side_effect = QueueLockTimeoutError("dequeue", 10)
        with pytest.raises(QueueLockTimeoutError):
            _run(process_next_turn(queue, AsyncMock(), AsyncMock()))
