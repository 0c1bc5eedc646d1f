"""RainAlert FastAPI application entry point.

Configures the FastAPI app with:
- Logging from ``Settings.log_level``
- CORS, security header, request id and rate limit middleware
- Lifespan wiring of the alert store, Redis, push client, evaluator and
  the evaluation scheduler
- Route registration
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rainalert.api.middleware.security import (
    RateLimitMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from rainalert.api.routes import alerts, health, notifications, readings, websocket
from rainalert.api.version import API_VERSION
from rainalert.core.config import Settings, get_settings
from rainalert.core.database import create_engine
from rainalert.core.redis import create_redis_client, verify_redis_connectivity
from rainalert.monitoring.alerting.engine import AlertEvaluator
from rainalert.monitoring.alerting.store import (
    InMemoryAlertStore,
    UnitOfWork,
    memory_unit_of_work,
    sql_unit_of_work,
)
from rainalert.monitoring.ingest import ReadingIngestor
from rainalert.monitoring.notification import AlertFanout, PushNotifier
from rainalert.monitoring.scheduler import run_evaluation_loop

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_unit_of_work(app: FastAPI, settings: Settings) -> UnitOfWork:
    """Select the alert store backend and record its handles on ``app.state``."""
    if settings.alert_store_backend == "memory":
        app.state.db_engine = None
        app.state.db_session_factory = None
        logger.warning("Using in-memory alert store; data will not survive a restart")
        return memory_unit_of_work(InMemoryAlertStore())

    engine, session_factory = create_engine(settings)
    app.state.db_engine = engine
    app.state.db_session_factory = session_factory
    logger.info("PostgreSQL connection pool initialized")
    return sql_unit_of_work(session_factory)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown.

    On startup: open the store, Redis and the push client, build the
    evaluator and start the evaluation scheduler.
    On shutdown: stop the scheduler and close all connections.
    """
    settings = get_settings()

    # -- Alert store ---
    unit_of_work = build_unit_of_work(app, settings)
    app.state.unit_of_work = unit_of_work

    # -- Redis ---
    redis_client = create_redis_client(settings)
    app.state.redis_client = redis_client
    if await verify_redis_connectivity(redis_client):
        logger.info("Redis connection verified")
    else:
        logger.warning("Redis is not reachable; dashboard push disabled until it recovers")

    # -- Push service ---
    http_client = httpx.AsyncClient(timeout=settings.push_timeout_seconds)
    push_notifier = PushNotifier(http_client, settings.push_service_url, max_retries=settings.push_max_retries)
    app.state.push_notifier = push_notifier

    # -- Evaluation ---
    fanout = AlertFanout(redis_client, push_notifier, settings.push_auto_recipients)
    evaluator = AlertEvaluator(
        unit_of_work,
        grace_period_seconds=settings.evaluation_grace_period_seconds,
        max_active_alerts=settings.evaluation_max_active_alerts,
        timeout_seconds=settings.evaluation_timeout_seconds,
        fanout=fanout,
    )
    app.state.evaluator = evaluator
    app.state.ingestor = ReadingIngestor(unit_of_work, evaluator, fanout=fanout)

    shutdown_event = asyncio.Event()
    scheduler_task: asyncio.Task[None] | None = None
    if settings.evaluation_scheduler_enabled:
        scheduler_task = asyncio.create_task(
            run_evaluation_loop(evaluator, settings.evaluation_interval_seconds, shutdown_event)
        )

    yield

    # -- Shutdown ---
    shutdown_event.set()
    if scheduler_task is not None:
        scheduler_task.cancel()
        await asyncio.gather(scheduler_task, return_exceptions=True)

    await http_client.aclose()
    await redis_client.aclose()
    if app.state.db_engine is not None:
        await app.state.db_engine.dispose()
    logger.info("All connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    _configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="Flood monitoring: sensor ingest, alert evaluation and notification",
        version=API_VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Middleware runs in reverse order of registration.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID", "Accept"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )

    app.include_router(health.router)
    app.include_router(readings.router)
    app.include_router(alerts.router)
    app.include_router(notifications.router)
    app.include_router(websocket.router)

    @app.exception_handler(Exception)  # top-level handler
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception("Unhandled error [%s]: %s", request_id, exc)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Internal server error", "request_id": request_id},
        )

    return app


# Application instance used by uvicorn
app = create_app()
