"""WebSocket feed for the flood monitoring dashboard.

Relays reading and alert events from Redis Pub/Sub to connected
dashboards, with a periodic heartbeat. Replaces client-side polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from rainalert.core.config import get_settings
from rainalert.core.redis import CHANNEL_ALERTS, CHANNEL_READINGS

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class ConnectionManager:
    """Tracks connected dashboard sockets."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.append(websocket)
        logger.info("Dashboard connected (%d active)", len(self._connections))

    def disconnect(self, websocket: WebSocket) -> None:
        self._connections = [ws for ws in self._connections if ws is not websocket]
        logger.info("Dashboard disconnected (%d active)", len(self._connections))

    @property
    def active_connections(self) -> int:
        return len(self._connections)


manager = ConnectionManager()


async def _redis_relay(
    websocket: WebSocket,
    redis_client: aioredis.Redis,
    shutdown: asyncio.Event,
) -> None:
    """Forward dashboard events from Redis Pub/Sub to one socket."""
    pubsub = redis_client.pubsub()
    channels = [CHANNEL_READINGS, CHANNEL_ALERTS]
    await pubsub.subscribe(*channels)

    try:
        while not shutdown.is_set():
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                try:
                    data: dict[str, Any] = json.loads(message["data"])
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Dropped malformed dashboard event on %s", message.get("channel"))
                    continue
                await websocket.send_json(data)
    except (aioredis.RedisError, ConnectionError, OSError):
        logger.warning("Dashboard event relay lost its Redis connection")
    finally:
        await pubsub.unsubscribe(*channels)
        await pubsub.aclose()


@router.websocket("/ws/dashboard")
async def dashboard_websocket(websocket: WebSocket) -> None:
    """Push sensor readings and alert changes to the dashboard.

    Clients may send ``ping`` and receive ``pong``; otherwise a heartbeat
    is sent every ``ws_heartbeat_interval`` seconds of silence.
    """
    settings = get_settings()
    await manager.connect(websocket)
    shutdown = asyncio.Event()

    relay_task: asyncio.Task[None] | None = None
    redis_client = getattr(websocket.app.state, "redis_client", None)
    if redis_client is not None:
        relay_task = asyncio.create_task(_redis_relay(websocket, redis_client, shutdown))

    try:
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_heartbeat_interval)
                if data == "ping":
                    await websocket.send_text("pong")
            except TimeoutError:
                await websocket.send_json({"type": "heartbeat"})
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Dashboard WebSocket error")
    finally:
        shutdown.set()
        if relay_task is not None:
            relay_task.cancel()
        manager.disconnect(websocket)
