"""Sensor reading ingest.

Validates the sensor payload, appends the reading to the readings log in
its own transaction, then runs one evaluation cycle so the new reading is
classified without waiting for the next scheduler tick.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rainalert.core.models import SensorReading
from rainalert.monitoring.alerting.engine import AlertEvaluator, EvaluationOutcome
from rainalert.monitoring.alerting.store import UnitOfWork
from rainalert.monitoring.classifier import classify_distance, severity_from_status_tag
from rainalert.monitoring.notification import AlertFanout

logger = logging.getLogger(__name__)

EXPECTED_FIELDS_MESSAGE = "Invalid data format. Expected: { distance: number, floodLevel: number, status: string }"


class ReadingValidationError(ValueError):
    """Sensor payload is missing fields or has fields of the wrong type."""


class ReadingPayload(BaseModel):
    """Payload posted by the water level sensor."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    distance: float = Field(strict=True, allow_inf_nan=False)
    flood_level: float = Field(alias="floodLevel", strict=True, allow_inf_nan=False)
    status: str = Field(strict=True, min_length=1, max_length=50)


def parse_reading_payload(data: Any) -> ReadingPayload:
    """Validate a decoded JSON body.

    Raises:
        ReadingValidationError: If the body is not an object with a numeric
            ``distance`` and ``floodLevel`` and a string ``status``.
    """
    if not isinstance(data, dict):
        raise ReadingValidationError(EXPECTED_FIELDS_MESSAGE)
    try:
        return ReadingPayload.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        logger.info("Rejected sensor payload (invalid fields: %s)", fields)
        raise ReadingValidationError(EXPECTED_FIELDS_MESSAGE) from exc


@dataclass
class IngestResult:
    reading: SensorReading
    outcome: EvaluationOutcome


class ReadingIngestor:
    """Stores sensor readings and hands them to the alert evaluator."""

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        evaluator: AlertEvaluator,
        fanout: AlertFanout | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._unit_of_work = unit_of_work
        self._evaluator = evaluator
        self._fanout = fanout
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def ingest(self, payload: ReadingPayload) -> IngestResult:
        """Persist a reading and evaluate it.

        Raises:
            StorageError: If the reading could not be stored. Evaluation
                failures are reported through the returned outcome instead.
        """
        now = self._clock()
        reading = SensorReading(
            id=uuid.uuid4(),
            distance=payload.distance,
            flood_level=payload.flood_level,
            status_tag=payload.status,
            reading_time=now,
            received_at=now,
        )
        async with self._unit_of_work() as store:
            await store.add_reading(reading)
        logger.debug("Stored reading %s (distance=%.2fcm)", reading.id, reading.distance)

        self._check_status_tag(reading)
        if self._fanout is not None:
            await self._fanout.reading_stored(reading)

        outcome = await self._evaluator.evaluate()
        return IngestResult(reading=reading, outcome=outcome)

    @staticmethod
    def _check_status_tag(reading: SensorReading) -> None:
        tagged = severity_from_status_tag(reading.status_tag)
        classified = classify_distance(reading.distance)
        if tagged is not None and tagged != classified:
            logger.warning(
                "Sensor status tag %r disagrees with distance classification %s (distance=%.2fcm)",
                reading.status_tag,
                classified,
                reading.distance,
            )
