"""Flood alert routes: manual evaluation trigger and dashboard listings."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from rainalert.api.deps import get_evaluator, get_unit_of_work
from rainalert.core.models import AlertStatus, FloodAlert
from rainalert.monitoring.alerting.engine import AlertEvaluator, OutcomeKind
from rainalert.monitoring.alerting.store import StorageError, UnitOfWork

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


def _alert_to_response(alert: FloodAlert) -> dict[str, Any]:
    return {
        "id": str(alert.id),
        "alert_level": str(alert.alert_level),
        "message": alert.message,
        "status": str(alert.status),
        "source_distance": alert.source_distance,
        "source_flood_level": alert.source_flood_level,
        "reading_id": str(alert.reading_id) if alert.reading_id else None,
        "reading_time": alert.reading_time.isoformat(),
        "created_at": alert.created_at.isoformat(),
        "updated_at": alert.updated_at.isoformat() if alert.updated_at else None,
    }


async def _list_alerts(
    unit_of_work: UnitOfWork,
    since: datetime | None = None,
    alert_status: AlertStatus | None = None,
) -> Any:
    if since is not None and since.tzinfo is None:
        # Stored timestamps are UTC; read offset-less filters the same way.
        since = since.replace(tzinfo=UTC)
    try:
        async with unit_of_work() as store:
            alerts = await store.list_all(since=since, status=alert_status)
    except StorageError:
        logger.exception("Failed to list flood alerts")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Failed to load flood alerts."},
        )
    return {"success": True, "data": [_alert_to_response(a) for a in alerts]}


@router.post("/evaluate")
async def evaluate_alerts(evaluator: AlertEvaluator = Depends(get_evaluator)) -> Any:
    """Run one evaluation cycle against the latest reading.

    Safe to call repeatedly: a reading that already produced an alert is
    reported as a duplicate.
    """
    outcome = await evaluator.evaluate()
    body = {"success": outcome.success, "message": outcome.message, "outcome": outcome.to_dict()}
    if outcome.kind == OutcomeKind.ERROR:
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
    return body


@router.get("")
async def list_alerts(
    since: datetime | None = Query(default=None, description="Only alerts created after this time"),
    alert_status: AlertStatus | None = Query(default=None, alias="status"),
    unit_of_work: UnitOfWork = Depends(get_unit_of_work),
) -> Any:
    """List alerts, newest first."""
    return await _list_alerts(unit_of_work, since=since, alert_status=alert_status)


@router.get("/active")
async def list_active_alerts(unit_of_work: UnitOfWork = Depends(get_unit_of_work)) -> Any:
    return await _list_alerts(unit_of_work, alert_status=AlertStatus.ACTIVE)


@router.get("/past")
async def list_past_alerts(unit_of_work: UnitOfWork = Depends(get_unit_of_work)) -> Any:
    return await _list_alerts(unit_of_work, alert_status=AlertStatus.PAST)
