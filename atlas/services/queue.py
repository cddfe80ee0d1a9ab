# =============================================================================
# Turn Queue — Durable FIFO With an Explicit Lock Contract
# =============================================================================
#
# Inbound chat messages are not answered inline: the events endpoint
# enqueues a Turn and acknowledges immediately, and a periodic Celery task
# drains the queue one Turn at a time.
#
# CONTRACT (TurnQueue):
#   enqueue(turn)      append at the tail
#   dequeue_one()      remove and return the head, or None when empty
#   Both run read-modify-write under one mutual-exclusion lock with a
#   bounded wait. Failing to get the lock raises QueueLockTimeoutError;
#   the queue is left untouched and nothing is dropped silently.
#
# IMPLEMENTATIONS:
#   RedisTurnQueue     JSON array under settings.queue_key, redis-py lock
#   InMemoryTurnQueue  threading.Lock (tests, local development)
#
# DELIVERY: at most once. A Turn is removed before it is processed; a crash
# between dequeue and reply loses it.
# =============================================================================

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Protocol

from atlas.config import Settings, settings as default_settings
from atlas.errors import QueueLockTimeoutError
from atlas.models.turns import Turn
from atlas.services.text import first_n_words
from atlas.services.transport import ReplyTransport

logger = logging.getLogger(__name__)

FAILURE_REPLY = (
    "Sorry, I ran into a problem while processing your request. "
    "Please try again."
)

TurnRunner = Callable[[Turn], Awaitable[str]]


class TurnQueue(Protocol):
    """FIFO of pending Turns shared by the API and the worker."""

    def enqueue(self, turn: Turn) -> None:
        ...

    def dequeue_one(self) -> Turn | None:
        ...


# ---------------------------------------------------------------------------
# Redis-Backed Queue
# ---------------------------------------------------------------------------


class RedisTurnQueue:
    """
    Queue stored as one JSON array value in Redis.

    The whole array is rewritten on every operation. Queue depth is small
    (one message per chat user at a time), so the simple format wins over a
    Redis list: the stored value is exactly the documented flat-record
    array and can be inspected or repaired by hand.
    """

    def __init__(self, redis_client=None, config: Settings | None = None) -> None:
        self._config = config or default_settings
        self._redis = redis_client

    def _get_redis(self):
        if self._redis is None:
            import redis
            self._redis = redis.Redis.from_url(
                self._config.redis_url, decode_responses=True,
            )
        return self._redis

    def _lock(self, operation: str):
        lock = self._get_redis().lock(
            self._config.queue_lock_key,
            timeout=max(self._config.queue_lock_timeout_seconds * 3, 30),
            blocking_timeout=self._config.queue_lock_timeout_seconds,
        )
        if not lock.acquire():
            logger.error(
                "Turn queue lock not acquired for %s after %.1fs",
                operation, self._config.queue_lock_timeout_seconds,
            )
            raise QueueLockTimeoutError(operation, self._config.queue_lock_timeout_seconds)
        return lock

    def _read(self) -> list[dict]:
        raw = self._get_redis().get(self._config.queue_key)
        if not raw:
            return []
        records = json.loads(raw)
        return records if isinstance(records, list) else []

    def _write(self, records: list[dict]) -> None:
        self._get_redis().set(self._config.queue_key, json.dumps(records))

    def enqueue(self, turn: Turn) -> None:
        lock = self._lock("enqueue")
        try:
            records = self._read()
            records.append(turn.model_dump(mode="json"))
            self._write(records)
        finally:
            lock.release()
        logger.info("Enqueued turn for %s (depth=%d)", turn.space_id, len(records))

    def dequeue_one(self) -> Turn | None:
        lock = self._lock("dequeue")
        try:
            records = self._read()
            if not records:
                return None
            head = records.pop(0)
            self._write(records)
        finally:
            lock.release()
        return Turn.model_validate(head)

    def __len__(self) -> int:
        return len(self._read())


# ---------------------------------------------------------------------------
# In-Memory Queue
# ---------------------------------------------------------------------------


class InMemoryTurnQueue:
    """Process-local queue with the same lock contract."""

    def __init__(self, lock_timeout_seconds: float | None = None) -> None:
        self._lock = threading.Lock()
        self._timeout = (
            default_settings.queue_lock_timeout_seconds
            if lock_timeout_seconds is None else lock_timeout_seconds
        )
        self._turns: list[Turn] = []

    def _acquire(self, operation: str) -> None:
        if not self._lock.acquire(timeout=self._timeout):
            raise QueueLockTimeoutError(operation, self._timeout)

    def enqueue(self, turn: Turn) -> None:
        self._acquire("enqueue")
        try:
            self._turns.append(turn)
        finally:
            self._lock.release()

    def dequeue_one(self) -> Turn | None:
        self._acquire("dequeue")
        try:
            return self._turns.pop(0) if self._turns else None
        finally:
            self._lock.release()

    def __len__(self) -> int:
        return len(self._turns)


# ---------------------------------------------------------------------------
# Drain Step
# ---------------------------------------------------------------------------


async def process_next_turn(
    queue: TurnQueue,
    runner: TurnRunner,
    transport: ReplyTransport,
) -> bool:
    """
    Dequeue one Turn, answer it and deliver exactly one reply.

    Returns False when the queue was empty. Orchestrator and delivery
    failures are logged and turned into the generic failure reply; they
    never reach the queue. QueueLockTimeoutError from the dequeue itself
    propagates.
    """
    turn = queue.dequeue_one()
    if turn is None:
        logger.debug("Turn queue empty")
        return False

    logger.info(
        "Processing turn: space=%s requester=%s message='%s'",
        turn.space_id, turn.requester_id or "<anonymous>",
        first_n_words(turn.raw_message, 20),
    )
    try:
        answer = await runner(turn)
        await transport.send(turn.space_id, turn.thread_id, answer)
    except Exception as e:
        logger.exception("Turn processing failed for %s: %s", turn.space_id, e)
        try:
            await transport.send(turn.space_id, turn.thread_id, FAILURE_REPLY)
        except Exception as send_error:
            logger.error("Could not deliver failure reply: %s", send_error)
    return True


_queue: RedisTurnQueue | None = None


def get_turn_queue() -> RedisTurnQueue:
    global _queue
    if _queue is None:
        _queue = RedisTurnQueue()
    return _queue
