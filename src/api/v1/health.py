"""Health check endpoints for the Travault API.

Liveness answers as long as the process serves requests; readiness also
round-trips the document store.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness probe. Does *not* check downstream dependencies."""
    start_time: float = getattr(request.app.state, "start_time", time.time())
    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
    )


@router.get("/ready")
async def readiness_check(request: Request) -> ORJSONResponse:
    checks: dict[str, str] = {}

    store = getattr(request.app.state, "store", None)
    if store is None:
        checks["store"] = "not_initialised"
    else:
        try:
            await store.count("emergency_contacts")
            checks["store"] = type(store).__name__
        except Exception as exc:
            logger.warning("health.store_check_failed", error=str(exc))
            checks["store"] = "error"

    ready = checks["store"] not in ("error", "not_initialised")
    return ORJSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "not_ready", "checks": checks},
    )
