# =============================================================================
# Celery Task Definitions — Turn Queue Drain
# =============================================================================
#
# `drain_queue` is fired by Celery beat. One tick:
#   1. Take the drain lock without waiting (another tick still running → skip)
#   2. Dequeue one Turn
#   3. Run the orchestrator to completion and deliver the reply
#   4. Release the drain lock
#
# Celery workers are synchronous, so the async orchestrator is driven with
# asyncio.run(). Each tick gets a fresh event loop; nothing async (httpx
# clients, SDK clients with pooled connections) may outlive it.
#
# ERRORS: orchestrator and delivery failures become the generic failure
# reply inside process_next_turn(). QueueLockTimeoutError propagates and
# Celery records the failed tick; the queue is untouched, so the head Turn
# is retried on the next tick.
# =============================================================================

import asyncio
import logging

import redis

from atlas.agents.orchestrator import answer_turn
from atlas.config import settings
from atlas.models.turns import Turn
from atlas.services.llm import create_llm_provider
from atlas.services.queue import get_turn_queue, process_next_turn
from atlas.services.transport import get_reply_transport
from atlas.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

_redis_client = None


def _get_redis():
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


def _tick_runner():
    """Turn runner bound to a provider created for this tick's event loop."""
    llm = create_llm_provider()

    async def run(turn: Turn) -> str:
        result = await answer_turn(turn, llm=llm)
        return result["answer"]

    return run


@celery_app.task(name="drain_queue")
def drain_queue() -> dict:
    """
    Answer at most one queued Turn.

    Returns:
        {"processed": bool, "skipped": bool}. `skipped` means another tick
        still holds the drain lock.
    """
    lock = _get_redis().lock(
        settings.drain_lock_key,
        timeout=settings.drain_lock_ttl_seconds,
        blocking=False,
    )
    if not lock.acquire():
        logger.info("Previous drain tick still running, skipping")
        return {"processed": False, "skipped": True}

    try:
        processed = asyncio.run(process_next_turn(
            queue=get_turn_queue(),
            runner=_tick_runner(),
            transport=get_reply_transport(),
        ))
    finally:
        try:
            lock.release()
        except redis.exceptions.LockError:
            logger.warning("Drain lock expired before the tick finished")

    return {"processed": processed, "skipped": False}
