"""Travault FastAPI application entry point.

Creates the FastAPI app, configures middleware and error envelopes,
includes routers, and manages the lifecycle of the backend services
(document store, repositories, notification dispatcher, event broker,
dispatch workflow and proximity queries).
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config.settings import settings
from src.api.router import api_router
from src.middleware.rate_limit import RateLimitMiddleware
from src.services.errors import TravaultError, ValidationFailed
from src.services.validation import field_errors

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _log_level(name: str) -> int:
    """Numeric level for a name such as ``"info"``; unknown names mean INFO."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            _log_level(settings.log_level),
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build every service once and hang it on ``app.state``.

    On startup:
      1. Open the document store (Redis when reachable, else memory)
      2. Create the repositories
      3. Create the notification dispatcher and event broker
      4. Create the dispatch workflow, proximity queries and accounts
      5. Seed reference emergency contacts into an empty store

    On shutdown the document store is closed.
    """
    _configure_logging()
    logger.info("app.startup", env=settings.env, sms_provider=settings.sms_provider)

    app.state.start_time = time.time()

    # -- 1. Store -----------------------------------------------------------
    from src.services.store import open_document_store

    store = await open_document_store(settings.redis_url or None)
    app.state.store = store

    # -- 2. Repositories ----------------------------------------------------
    from src.services.community import CommunityStore
    from src.services.report_store import ReportStore
    from src.services.users import UserRepository

    users = UserRepository(store)
    reports = ReportStore(store)
    community = CommunityStore(store)
    app.state.users = users
    app.state.reports = reports
    app.state.community = community

    # -- 3. Channels and realtime relay -------------------------------------
    from src.services.notifications import NotificationDispatcher
    from src.services.realtime import EventBroker

    dispatcher = NotificationDispatcher.from_settings(settings)
    events = EventBroker()
    app.state.dispatcher = dispatcher
    app.state.events = events

    # -- 4. Workflows -------------------------------------------------------
    from src.services.accounts import AccountService
    from src.services.emergency_dispatch import EmergencyDispatchService
    from src.services.proximity import ProximityQueryService

    app.state.emergency_dispatch = EmergencyDispatchService(
        users,
        reports,
        dispatcher,
        events,
        estimated_response=settings.estimated_response,
    )
    app.state.proximity = ProximityQueryService(reports, community, users)
    app.state.accounts = AccountService(
        users,
        max_attempts=settings.max_login_attempts,
        lock_seconds=settings.login_lock_seconds,
        dispatcher=dispatcher,
        verification_ttl_seconds=settings.verification_ttl_seconds,
    )

    # -- 5. Reference data --------------------------------------------------
    if settings.seed_reference_data:
        from src.data.seed import seed_emergency_contacts

        try:
            await seed_emergency_contacts(reports)
        except Exception:
            logger.warning("app.seed_failed", exc_info=True)

    logger.info("app.startup_complete", store=type(store).__name__)

    yield

    # -- Shutdown -----------------------------------------------------------
    logger.info("app.shutdown_start")
    await store.close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Travault API",
    description=(
        "Travault -- tourist safety backend. Emergency alerts with dispatch "
        "to emergency services and personal contacts, nearby emergency "
        "contacts, community safety alerts, safe routes and travel groups."
    ),
    version=_VERSION,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)


# -- Error envelopes --------------------------------------------------------


def _envelope(status_code: int, message: str, errors: list[dict] | None = None) -> ORJSONResponse:
    content: dict = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return ORJSONResponse(status_code=status_code, content=content)


@app.exception_handler(TravaultError)
async def travault_error_handler(request: Request, exc: TravaultError) -> ORJSONResponse:
    errors = [e.as_dict() for e in exc.errors] if isinstance(exc, ValidationFailed) else None
    if exc.status_code >= 500:
        logger.error("app.service_error", path=request.url.path, error=exc.message)
    return _envelope(exc.status_code, exc.message, errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = [e.as_dict() for e in field_errors(exc)]
    logger.info("app.validation_failed", path=request.url.path, errors=len(errors))
    return _envelope(400, "Validation failed", errors)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _envelope(exc.status_code, message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.error("app.unhandled_error", path=request.url.path, exc_info=exc)
    return _envelope(500, "Something went wrong. Please try again later.")


# -- CORS middleware --------------------------------------------------------
# allow_credentials=True must not be combined with allow_origins=["*"].
if settings.is_production:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["http://localhost:3000"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "OPTIONS", "HEAD"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

# -- Custom middleware ------------------------------------------------------
app.add_middleware(
    RateLimitMiddleware,
    max_requests_per_minute=settings.rate_limit_per_minute,
    trusted_proxy_count=settings.trusted_proxy_count,
)

# -- Prometheus metrics -----------------------------------------------------
try:
    from prometheus_fastapi_instrumentator import Instrumentator

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics", "/api/v1/health"],
    ).instrument(app).expose(
        app,
        endpoint="/metrics",
        include_in_schema=not settings.is_production,
    )
    logger.info("app.prometheus_metrics_enabled")
except ImportError:
    logger.warning("app.prometheus_not_available")

# -- Include routers -------------------------------------------------------
app.include_router(api_router)


@app.get("/api", response_class=ORJSONResponse)
async def api_info() -> dict:
    """API information endpoint."""
    return {
        "name": "Travault API",
        "description": "Tourist safety: emergency dispatch, nearby help, community safety",
        "version": _VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
        "endpoints": {
            "auth": "/api/v1/auth",
            "emergency": "/api/v1/emergency",
            "safety": "/api/v1/safety",
            "realtime": "/api/v1/ws",
        },
        "supported_countries": ["US", "UK", "CA", "AU", "DE", "FR", "JP", "IN", "BR", "MX"],
    }


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    import uvicorn

    uvicorn.run("src.main:app", host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()
