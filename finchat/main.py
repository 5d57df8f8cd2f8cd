# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Run locally:
#   uvicorn finchat.main:app --reload
#
# Routes:
#   POST /chat    — streamed chat turn (api/chat.py)
#   GET  /health  — liveness check with service name and version
#
# Logging is configured here, once, for the whole process; every other
# module only does logging.getLogger(__name__).
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from finchat.api.chat import router as chat_router
from finchat.config import settings
from finchat.db.engine import dispose_engines
from finchat.models.responses import HealthResponse

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("%s %s starting", settings.app_name, settings.app_version)
    yield
    await dispose_engines()
    logger.info("Database pools closed")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)
app.include_router(chat_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
