"""Sensor reading routes.

The sensor posts one reading per sample; the dashboard reads back the
latest one, converted to its display unit.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from rainalert.api.deps import get_ingestor, get_unit_of_work
from rainalert.core.config import get_settings
from rainalert.monitoring.alerting.store import StorageError, UnitOfWork
from rainalert.monitoring.ingest import (
    EXPECTED_FIELDS_MESSAGE,
    ReadingIngestor,
    ReadingValidationError,
    parse_reading_payload,
)
from rainalert.monitoring.units import DISPLAY_UNITS, to_display_unit

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/readings", tags=["readings"])

NO_DATA = {"distance": None, "flood_level": None, "status": "No Data", "reading_time": None}


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@router.post("")
async def receive_reading(
    request: Request,
    ingestor: ReadingIngestor = Depends(get_ingestor),
) -> Any:
    """Accept a reading from the water level sensor and evaluate it.

    The body is parsed by hand so malformed payloads get a 400 with the
    sensor-facing message instead of FastAPI's 422 detail list.
    """
    try:
        body = await request.json()
    except ValueError:
        return _failure(status.HTTP_400_BAD_REQUEST, EXPECTED_FIELDS_MESSAGE)

    try:
        payload = parse_reading_payload(body)
    except ReadingValidationError as exc:
        return _failure(status.HTTP_400_BAD_REQUEST, str(exc))

    try:
        result = await ingestor.ingest(payload)
    except StorageError:
        logger.exception("Failed to store sensor reading")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to store sensor reading.")

    reading = result.reading
    return {
        "success": True,
        "message": "Data received successfully",
        "receivedData": {
            "id": str(reading.id),
            "distance": reading.distance,
            "floodLevel": reading.flood_level,
            "status": reading.status_tag,
            "timestamp": reading.reading_time.isoformat(),
        },
        "evaluation": result.outcome.to_dict(),
    }


@router.get("/latest")
async def latest_reading(
    unit: str | None = Query(default=None, description="Display unit: ft or cm"),
    unit_of_work: UnitOfWork = Depends(get_unit_of_work),
) -> Any:
    """Return the most recent reading in the requested display unit."""
    display_unit = unit or get_settings().display_unit
    if display_unit not in DISPLAY_UNITS:
        return _failure(status.HTTP_400_BAD_REQUEST, f"Unsupported unit '{display_unit}'. Use one of: cm, ft.")

    try:
        async with unit_of_work() as store:
            reading = await store.latest_reading()
    except StorageError:
        logger.exception("Failed to load latest sensor reading")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to load sensor data.")

    if reading is None:
        return {"success": True, "message": "No sensor data found.", "data": dict(NO_DATA)}

    return {
        "success": True,
        "message": "Latest sensor reading.",
        "data": {
            "distance": to_display_unit(reading.distance, display_unit),
            "flood_level": to_display_unit(reading.flood_level, display_unit),
            "status": reading.status_tag,
            "reading_time": reading.reading_time.isoformat(),
            "unit": display_unit,
        },
    }
