"""Alert evaluation engine: classifies the latest reading, deduplicates and caps alerts.

Each evaluation cycle runs in one store transaction:

1. Load and lock the evaluation state, then the latest reading.
2. Classify the reading's distance.
3. Safe readings start or continue a safe streak; once the streak has
   lasted the grace period every active alert is moved to past.
4. Adverse readings break the streak, record a new alert unless one already
   exists for the same (reading_time, level), and demote the oldest active
   alerts beyond the cap.

Cycles are serialized by an in-process lock and, for the SQL store, by a
row lock on the evaluation state. A storage failure or timeout rolls back
the whole cycle, state included, and yields an ``ERROR`` outcome.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import math
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from rainalert.core.models import (
    AlertLevel,
    AlertStatus,
    EvaluationState,
    FloodAlert,
    FloodSeverity,
    SensorReading,
)
from rainalert.monitoring.alerting.store import AlertStore, StorageError, UnitOfWork
from rainalert.monitoring.classifier import alert_level_for, alert_message_for, classify_distance

if TYPE_CHECKING:
    from rainalert.monitoring.notification import AlertFanout

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD_SECONDS = 300
DEFAULT_MAX_ACTIVE_ALERTS = 2
DEFAULT_TIMEOUT_SECONDS = 5.0


class OutcomeKind(enum.StrEnum):
    """Result categories of one evaluation cycle."""

    NO_DATA = "no_data"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    ALL_ALERTS_CLEARED = "all_alerts_cleared"
    DUPLICATE_SKIPPED = "duplicate_skipped"
    ALERT_RECORDED = "alert_recorded"
    ERROR = "error"


@dataclass
class EvaluationOutcome:
    """Outcome of one evaluation cycle.

    Attributes:
        kind: Result category.
        message: Human-readable message for the dashboard.
        success: False only for ERROR outcomes.
        level: Alert level for adverse readings.
        alert_id: Id of the alert recorded in this cycle.
        reading_id: Id of the reading that was evaluated.
        seconds_remaining: Seconds left in the grace period (AWAITING_CONFIRMATION).
        cleared_count: Alerts moved to past by safe confirmation.
        evicted_count: Alerts moved to past by the active-alert cap.
    """

    kind: OutcomeKind
    message: str
    success: bool = True
    level: AlertLevel | None = None
    alert_id: uuid.UUID | None = None
    reading_id: uuid.UUID | None = None
    seconds_remaining: int | None = None
    cleared_count: int = 0
    evicted_count: int = 0

    @property
    def evicted(self) -> bool:
        return self.evicted_count > 0

    def to_dict(self) -> dict[str, Any]:
        """Serialize outcome for API response."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "success": self.success,
            "level": self.level.value if self.level else None,
            "alert_id": str(self.alert_id) if self.alert_id else None,
            "reading_id": str(self.reading_id) if self.reading_id else None,
            "seconds_remaining": self.seconds_remaining,
            "cleared_count": self.cleared_count,
            "evicted_count": self.evicted_count,
            "evicted": self.evicted,
        }


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class AlertEvaluator:
    """Single-writer evaluation engine shared by every trigger source.

    Attributes:
        grace_period_seconds: Length of the safe streak required to clear alerts.
        max_active_alerts: Maximum number of alerts that may stay active.
    """

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        *,
        grace_period_seconds: int = DEFAULT_GRACE_PERIOD_SECONDS,
        max_active_alerts: int = DEFAULT_MAX_ACTIVE_ALERTS,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] | None = None,
        fanout: AlertFanout | None = None,
    ) -> None:
        if max_active_alerts < 1:
            raise ValueError("max_active_alerts must be at least 1")
        self._unit_of_work = unit_of_work
        self.grace_period_seconds = grace_period_seconds
        self.max_active_alerts = max_active_alerts
        self._timeout_seconds = timeout_seconds
        self._clock = clock or _utcnow
        self._fanout = fanout
        self._lock = asyncio.Lock()

    async def evaluate(self) -> EvaluationOutcome:
        """Run one evaluation cycle against the latest persisted reading.

        Returns:
            The cycle outcome. Storage failures and timeouts are reported as
            an ``ERROR`` outcome rather than raised.
        """
        recorded: FloodAlert | None = None
        async with self._lock:
            try:
                async with asyncio.timeout(self._timeout_seconds):
                    async with self._unit_of_work() as store:
                        outcome, recorded = await self._run_cycle(store)
            except StorageError:
                logger.exception("Alert store failure during evaluation; cycle rolled back")
                return _error_outcome()
            except TimeoutError:
                logger.error("Evaluation cycle exceeded %.1fs; cycle rolled back", self._timeout_seconds)
                return _error_outcome()

        logger.debug("Evaluation outcome: %s (%s)", outcome.kind, outcome.message)
        if self._fanout is not None and _has_changes(outcome):
            await self._fanout.dispatch(outcome, recorded)
        return outcome

    async def _run_cycle(self, store: AlertStore) -> tuple[EvaluationOutcome, FloodAlert | None]:
        state = await store.load_evaluation_state()
        reading = await store.latest_reading()
        if reading is None:
            return EvaluationOutcome(kind=OutcomeKind.NO_DATA, message="No sensor data found."), None

        severity = classify_distance(reading.distance)
        now = self._clock()

        if severity == FloodSeverity.SAFE:
            return await self._evaluate_safe(store, state, reading, now), None

        # Any adverse reading breaks the safe streak.
        if state.first_safe_detected_at is not None:
            logger.info("Adverse reading (%s) reset the safe grace timer", severity)
        state.first_safe_detected_at = None
        return await self._evaluate_adverse(store, reading, severity, now)

    async def _evaluate_safe(
        self,
        store: AlertStore,
        state: EvaluationState,
        reading: SensorReading,
        now: datetime,
    ) -> EvaluationOutcome:
        if state.first_safe_detected_at is None:
            state.first_safe_detected_at = now
            logger.info("Safe reading detected; grace period of %ds started", self.grace_period_seconds)
            return EvaluationOutcome(
                kind=OutcomeKind.AWAITING_CONFIRMATION,
                message="Water is safe. Waiting for grace period to confirm.",
                reading_id=reading.id,
                seconds_remaining=self.grace_period_seconds,
            )

        elapsed = (now - state.first_safe_detected_at).total_seconds()
        if elapsed >= self.grace_period_seconds:
            cleared = await store.mark_all_active_past(now)
            state.first_safe_detected_at = None
            if cleared:
                logger.info("Water safe for %.0fs; %d active alert(s) marked as past", elapsed, cleared)
            else:
                logger.debug("Water safe for %.0fs; no active alerts to clear", elapsed)
            return EvaluationOutcome(
                kind=OutcomeKind.ALL_ALERTS_CLEARED,
                message=(
                    f"Water level has been safe for {_format_duration(self.grace_period_seconds)}. "
                    "Alerts marked as past."
                ),
                reading_id=reading.id,
                cleared_count=cleared,
            )

        remaining = math.ceil(self.grace_period_seconds - elapsed)
        return EvaluationOutcome(
            kind=OutcomeKind.AWAITING_CONFIRMATION,
            message=f"Water is safe. {remaining} seconds remaining to confirm.",
            reading_id=reading.id,
            seconds_remaining=remaining,
        )

    async def _evaluate_adverse(
        self,
        store: AlertStore,
        reading: SensorReading,
        severity: FloodSeverity,
        now: datetime,
    ) -> tuple[EvaluationOutcome, FloodAlert | None]:
        level = alert_level_for(severity)
        if level is None:
            raise ValueError(f"No alert level for severity {severity}")

        existing = await store.find_by_reading_and_level(reading.reading_time, level)
        if existing is not None:
            return (
                EvaluationOutcome(
                    kind=OutcomeKind.DUPLICATE_SKIPPED,
                    message="Duplicate alert already exists. Skipping insertion.",
                    level=level,
                    alert_id=existing.id,
                    reading_id=reading.id,
                ),
                None,
            )

        alert = FloodAlert(
            id=uuid.uuid4(),
            alert_level=level,
            message=alert_message_for(level),
            status=AlertStatus.ACTIVE,
            source_distance=reading.distance,
            source_flood_level=reading.flood_level,
            reading_id=reading.id,
            reading_time=reading.reading_time,
            created_at=now,
            updated_at=now,
        )
        alert_id = await store.insert(alert)
        logger.info("Recorded %s alert %s at distance %.2fcm", level, alert_id, reading.distance)

        evicted = await self._enforce_active_cap(store, now)
        message = f"{level} flood alert recorded."
        if evicted:
            message += " Older alerts marked as past."
        return (
            EvaluationOutcome(
                kind=OutcomeKind.ALERT_RECORDED,
                message=message,
                level=level,
                alert_id=alert_id,
                reading_id=reading.id,
                evicted_count=evicted,
            ),
            alert,
        )

    async def _enforce_active_cap(self, store: AlertStore, now: datetime) -> int:
        """Demote every active alert except the newest ``max_active_alerts``."""
        active = await store.list_active()
        if len(active) <= self.max_active_alerts:
            return 0
        excess_ids = [a.id for a in active[self.max_active_alerts :]]
        evicted = await store.set_status(excess_ids, AlertStatus.PAST, now)
        logger.info("Active alert cap (%d) exceeded; %d older alert(s) marked as past", self.max_active_alerts, evicted)
        return evicted


def _has_changes(outcome: EvaluationOutcome) -> bool:
    """True when the cycle recorded an alert or moved at least one alert to past."""
    if outcome.kind == OutcomeKind.ALERT_RECORDED:
        return True
    return outcome.kind == OutcomeKind.ALL_ALERTS_CLEARED and outcome.cleared_count > 0


def _error_outcome() -> EvaluationOutcome:
    return EvaluationOutcome(kind=OutcomeKind.ERROR, message="Error evaluating flood alert.", success=False)


def _format_duration(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"
