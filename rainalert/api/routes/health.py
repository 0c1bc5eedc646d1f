"""Health check endpoint.

Reports overall backend health and the status of PostgreSQL (or the
in-memory store) and Redis.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Request

from rainalert.api.version import API_VERSION
from rainalert.core.database import check_database

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/api/v1/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Check the health of backing services.

    Returns:
        {
            "status": "healthy" | "degraded" | "unhealthy",
            "services": {"database": "up" | "down" | "memory", "redis": "up" | "down"},
            "version": "0.1.0",
            "timestamp": "..."
        }
    """
    services: dict[str, str] = {}

    session_factory = getattr(request.app.state, "db_session_factory", None)
    if session_factory is None:
        services["database"] = "memory"
    else:
        services["database"] = "up" if await check_database(session_factory) else "down"

    try:
        redis_client = request.app.state.redis_client
        await redis_client.ping()
        services["redis"] = "up"
    except (aioredis.RedisError, ConnectionError, OSError, AttributeError):
        logger.warning("Redis health check failed")
        services["redis"] = "down"

    down_count = sum(1 for s in services.values() if s == "down")
    if down_count == 0:
        status = "healthy"
    elif down_count < len(services):
        status = "degraded"
    else:
        status = "unhealthy"

    return {
        "status": status,
        "services": services,
        "version": API_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
    }
