# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
# Answers queued chat turns outside the request cycle:
#   - celery_app.py: Celery application + beat schedule
#   - tasks.py: drain_queue, which answers at most one Turn per tick
#
# The events endpoint only enqueues and acknowledges. A turn can take
# minutes (several research rounds, each with several tool calls), far
# longer than a chat platform waits for a webhook response.
# =============================================================================
