# =============================================================================
# FastAPI Application Entrypoint
# =============================================================================
#
# Run:
#   uvicorn atlas.main:app --reload
#
# The API process only accepts chat events and enqueues them. Answers are
# produced by the Celery worker (see atlas/workers/).
# =============================================================================

import logging

from fastapi import FastAPI

from atlas.api.events import router as events_router
from atlas.config import settings

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
# httpx logs every request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Chat assistant for operational and support questions. Research "
        "agents search the wiki, issue tracker, helpdesk, logs and code, "
        "and an evaluator checks the findings before anyone gets an answer."
    ),
)

app.include_router(events_router)


@app.get("/health", tags=["Health"])
async def health() -> dict:
    return {"status": "ok", "version": settings.app_version}
