"""Notification dispatch for flood alerts.

Two channels:

- Dashboard push via Redis Pub/Sub (relayed to WebSocket clients).
- Mobile push via an external push service reached over HTTP.

Notification is fire-and-forget relative to alert persistence: it runs
after the evaluation transaction has committed, and every failure is
logged and swallowed here.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime

import httpx
import redis.asyncio as aioredis

from rainalert.core.models import FloodAlert, SensorReading
from rainalert.core.redis import CHANNEL_ALERTS, CHANNEL_READINGS, publish_event
from rainalert.monitoring.alerting.engine import EvaluationOutcome, OutcomeKind
from rainalert.monitoring.events import alert_event, alerts_cleared_event, reading_event

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS = (0.5, 1.0, 2.0)
RETRY_ON_STATUS = (429, 500, 502, 503, 504)


def build_push_message(level: str, message: str, at: datetime) -> str:
    """Format an alert for delivery to mobile app users."""
    return f"Alert Level: {level}\nMessage: {message}\nTime: {at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}"


class PushNotifier:
    """Client for the external mobile push notification service.

    The service accepts ``{"userIds": [...], "message": "..."}`` and
    delivers the message to each user's registered device.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        service_url: str,
        *,
        max_retries: int = 2,
        retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS,
    ) -> None:
        self._client = client
        self._service_url = service_url
        self._max_retries = max_retries
        self._retry_delays = retry_delays

    async def send_alert(self, recipient_ids: Sequence[str], message: str) -> bool:
        """Deliver a push notification to the given users.

        Args:
            recipient_ids: Mobile app user ids.
            message: Notification text.

        Returns:
            True if the push service accepted the request, False otherwise.
        """
        if not recipient_ids:
            logger.warning("Push notification skipped: no recipients")
            return False
        if not self._service_url:
            logger.warning("Push notification skipped: push_service_url is not configured")
            return False

        payload = {"userIds": list(recipient_ids), "message": message}
        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.post(self._service_url, json=payload)
            except httpx.RequestError as exc:
                if attempt < self._max_retries:
                    await self._backoff(attempt, f"request failed: {exc}")
                    continue
                logger.error("Push notification to %d user(s) failed: %s", len(recipient_ids), exc)
                return False

            if response.status_code in RETRY_ON_STATUS and attempt < self._max_retries:
                await self._backoff(attempt, f"returned {response.status_code}")
                continue
            if response.is_success:
                logger.info("Push notification delivered to %d user(s)", len(recipient_ids))
                return True
            logger.error("Push service rejected notification with status %d", response.status_code)
            return False
        return False

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = self._retry_delays[min(attempt, len(self._retry_delays) - 1)] if self._retry_delays else 0.0
        logger.warning(
            "Push service %s, retrying in %.1fs (attempt %d/%d)",
            reason,
            delay,
            attempt + 1,
            self._max_retries,
        )
        await asyncio.sleep(delay)


class AlertFanout:
    """Routes evaluation outcomes and readings to the dashboard and push channels."""

    def __init__(
        self,
        redis_client: aioredis.Redis | None = None,
        notifier: PushNotifier | None = None,
        auto_recipients: Sequence[str] = (),
    ) -> None:
        self._redis = redis_client
        self._notifier = notifier
        self._auto_recipients = list(auto_recipients)

    async def dispatch(self, outcome: EvaluationOutcome, alert: FloodAlert | None = None) -> None:
        """Publish an evaluation outcome. Never raises."""
        try:
            if outcome.kind == OutcomeKind.ALERT_RECORDED and alert is not None:
                await self._publish(
                    CHANNEL_ALERTS,
                    alert_event(
                        alert_id=str(alert.id),
                        alert_level=str(alert.alert_level),
                        message=alert.message,
                        evicted_count=outcome.evicted_count,
                    ),
                )
                if self._notifier is not None and self._auto_recipients:
                    text = build_push_message(str(alert.alert_level), alert.message, alert.created_at)
                    await self._notifier.send_alert(self._auto_recipients, text)
            elif outcome.kind == OutcomeKind.ALL_ALERTS_CLEARED:
                await self._publish(CHANNEL_ALERTS, alerts_cleared_event(outcome.cleared_count, outcome.message))
        except Exception:
            logger.exception("Alert notification failed for outcome %s", outcome.kind)

    async def reading_stored(self, reading: SensorReading) -> None:
        """Publish a new sensor reading to the dashboard. Never raises."""
        await self._publish(
            CHANNEL_READINGS,
            reading_event(
                reading_id=str(reading.id),
                distance=reading.distance,
                flood_level=reading.flood_level,
                status=reading.status_tag,
                reading_time=reading.reading_time.isoformat(),
            ),
        )

    async def _publish(self, channel: str, event: dict) -> None:
        if self._redis is None:
            return
        try:
            await publish_event(self._redis, channel, event)
        except (aioredis.RedisError, ConnectionError, OSError):
            logger.warning("Failed to publish %s event to %s", event.get("event_type"), channel)
