"""Tests for the flood alert routes."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from rainalert.monitoring.alerting.engine import AlertEvaluator, EvaluationOutcome, OutcomeKind
from rainalert.monitoring.alerting.store import AlertStore, StorageError


async def _post(client: AsyncClient, distance: float) -> dict[str, Any]:
    response = await client.post(
        "/api/v1/readings",
        json={"distance": distance, "floodLevel": 200.0 - distance, "status": "Unknown"},
    )
    assert response.status_code == 200
    return response.json()


class TestEvaluateRoute:
    @pytest.mark.asyncio
    async def test_no_data(self, client: AsyncClient) -> None:
        response = await client.post("/api/v1/alerts/evaluate")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "No sensor data found."
        assert data["outcome"]["kind"] == "no_data"

    @pytest.mark.asyncio
    async def test_manual_trigger_is_idempotent(self, client: AsyncClient) -> None:
        await _post(client, 50.0)

        response = await client.post("/api/v1/alerts/evaluate")

        assert response.status_code == 200
        assert response.json()["outcome"]["kind"] == "duplicate_skipped"

    @pytest.mark.asyncio
    async def test_error_outcome_returns_500(self, client: AsyncClient, test_app: Any) -> None:
        evaluator = AsyncMock(spec=AlertEvaluator)
        evaluator.evaluate = AsyncMock(
            return_value=EvaluationOutcome(
                kind=OutcomeKind.ERROR, message="Error evaluating flood alert.", success=False
            )
        )
        test_app.state.evaluator = evaluator

        response = await client.post("/api/v1/alerts/evaluate")

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert response.json()["message"] == "Error evaluating flood alert."


class TestListAlerts:
    @pytest.mark.asyncio
    async def test_lists_newest_first(self, client: AsyncClient, clock) -> None:
        await _post(client, 70.0)
        clock.advance(1)
        await _post(client, 25.0)

        response = await client.get("/api/v1/alerts")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [a["alert_level"] for a in data] == ["Critical", "Warning"]
        assert data[0]["status"] == "active"
        assert data[0]["message"] == "Critical Flood Level! Immediate action required."
        assert data[0]["source_distance"] == 25.0

    @pytest.mark.asyncio
    async def test_active_and_past_listings(self, client: AsyncClient, clock) -> None:
        for distance in (70.0, 50.0, 25.0):
            await _post(client, distance)
            clock.advance(1)

        active = (await client.get("/api/v1/alerts/active")).json()["data"]
        past = (await client.get("/api/v1/alerts/past")).json()["data"]
        filtered = (await client.get("/api/v1/alerts", params={"status": "past"})).json()["data"]

        assert [a["alert_level"] for a in active] == ["Critical", "Danger"]
        assert [a["alert_level"] for a in past] == ["Warning"]
        assert filtered == past

    @pytest.mark.asyncio
    async def test_since_filter(self, client: AsyncClient, clock) -> None:
        await _post(client, 70.0)
        cutoff = clock.now
        clock.advance(60)
        await _post(client, 25.0)

        response = await client.get("/api/v1/alerts", params={"since": cutoff.isoformat()})

        assert [a["alert_level"] for a in response.json()["data"]] == ["Critical"]

    @pytest.mark.asyncio
    async def test_since_without_offset_is_read_as_utc(self, client: AsyncClient) -> None:
        # Alerts in these tests are created at 08:00 UTC.
        await _post(client, 25.0)

        earlier = await client.get("/api/v1/alerts", params={"since": "2026-03-01T07:00:00"})
        later = await client.get("/api/v1/alerts", params={"since": "2026-03-01T08:30:00"})

        assert earlier.status_code == 200
        assert [a["alert_level"] for a in earlier.json()["data"]] == ["Critical"]
        assert later.status_code == 200
        assert later.json()["data"] == []

    @pytest.mark.asyncio
    async def test_storage_failure_returns_500(self, client: AsyncClient, test_app: Any) -> None:
        @asynccontextmanager
        async def failing_unit_of_work() -> AsyncIterator[AlertStore]:
            raise StorageError("database unavailable")
            yield  # pragma: no cover

        test_app.state.unit_of_work = failing_unit_of_work

        response = await client.get("/api/v1/alerts")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to load flood alerts."}
