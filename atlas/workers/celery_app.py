# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the periodic queue drain. Celery beat fires `drain_queue`
# every `queue_poll_interval_seconds`; each tick answers at most one Turn.
#
# ARCHITECTURE:
# ┌──────────┐  enqueue  ┌────────────┐  dequeue  ┌──────────────┐  reply  ┌──────┐
# │ FastAPI  │──────────▶│ Redis db 2 │◀──────────│ Celery Worker│────────▶│ Chat │
# │ /events  │           │ turn queue │           │ drain_queue  │         │      │
# └──────────┘           └────────────┘           └──────────────┘         └──────┘
#                                                       ▲
#                         Celery beat ──(db 0 broker)───┘
#
# Run:
#   celery -A atlas.workers.celery_app worker --beat --concurrency=1 --loglevel=info
# =============================================================================

import logging

from celery import Celery
from celery.signals import after_setup_logger

from atlas.config import settings

celery_app = Celery(
    "atlas.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only; pickle can execute code on load.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Single Turn in flight ---
    # One worker process, one prefetched task. drain_queue also takes a
    # Redis drain lock, which covers a second worker started by mistake.
    worker_concurrency=1,
    worker_prefetch_multiplier=1,

    # --- Delivery ---
    # Ack on receipt: a drain tick that dies is not redelivered. The next
    # beat tick picks up the queue again, and a Turn is never answered twice.
    task_acks_late=False,

    # --- Timeouts ---
    # Soft limit gives the turn a chance to send the failure reply; the hard
    # limit matches the drain lock TTL.
    task_soft_time_limit=max(settings.drain_lock_ttl_seconds - 60, 60),
    task_time_limit=settings.drain_lock_ttl_seconds,

    # --- Results ---
    # Ticks return a small summary dict; keep it for an hour for debugging.
    result_expires=3600,

    # --- Periodic drain ---
    beat_schedule={
        "drain-turn-queue": {
            "task": "drain_queue",
            "schedule": settings.queue_poll_interval_seconds,
        },
    },

    include=["atlas.workers.tasks"],
)


@after_setup_logger.connect
def _configure_logging(logger, *args, **kwargs):
    level = logging.DEBUG if settings.debug else logging.INFO
    logger.setLevel(level)
    # Keep connector request logs quiet unless debugging
    logging.getLogger("httpx").setLevel(logging.WARNING)
