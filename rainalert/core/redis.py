"""Redis connection management with Pub/Sub support.

Provides async Redis client creation, health checking, and Pub/Sub
channel helpers for real-time WebSocket fan-out to the dashboard.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from rainalert.core.config import Settings

logger = logging.getLogger(__name__)

# -- Pub/Sub channels ----------------------------------------------------------

CHANNEL_READINGS = "rainalert:realtime:readings"
CHANNEL_ALERTS = "rainalert:realtime:alerts"


def create_redis_client(settings: Settings) -> aioredis.Redis:
    """Create an async Redis client.

    Args:
        settings: Application settings with Redis connection details.

    Returns:
        An async Redis client instance.
    """
    client: aioredis.Redis = aioredis.from_url(
        settings.redis_url or f"redis://{settings.redis_host}:{settings.redis_port}/0",
        decode_responses=True,
    )
    return client


async def verify_redis_connectivity(client: aioredis.Redis) -> bool:
    """Check if Redis is reachable.

    Returns:
        True if Redis responds to PING, False otherwise.
    """
    try:
        return bool(await client.ping())
    except (aioredis.RedisError, ConnectionError, OSError):
        logger.exception("Failed to connect to Redis")
        return False


async def publish_event(
    client: aioredis.Redis,
    channel: str,
    data: dict[str, Any],
) -> int:
    """Publish an event to a Redis Pub/Sub channel.

    Args:
        client: Redis client.
        channel: Channel name.
        data: Event data (will be JSON-encoded).

    Returns:
        Number of subscribers that received the message.
    """
    count: int = await client.publish(channel, json.dumps(data))
    return count
