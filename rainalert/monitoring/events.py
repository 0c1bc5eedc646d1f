"""Event schema definitions for the flood monitoring dashboard.

Defines the structure of events published through Redis Pub/Sub
for real-time dashboard consumption via WebSocket.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def reading_event(
    reading_id: str,
    distance: float,
    flood_level: float,
    status: str,
    reading_time: str,
) -> dict[str, Any]:
    """Create a sensor reading event."""
    return {
        "event_type": "sensor_update",
        "reading_id": reading_id,
        "distance": distance,
        "flood_level": flood_level,
        "status": status,
        "reading_time": reading_time,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def alert_event(
    alert_id: str,
    alert_level: str,
    message: str,
    evicted_count: int = 0,
) -> dict[str, Any]:
    """Create an alert recorded event."""
    return {
        "event_type": "alert_recorded",
        "alert_id": alert_id,
        "alert_level": alert_level,
        "message": message,
        "evicted_count": evicted_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def alerts_cleared_event(cleared_count: int, message: str = "") -> dict[str, Any]:
    """Create an all-alerts-cleared event."""
    return {
        "event_type": "alerts_cleared",
        "cleared_count": cleared_count,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
