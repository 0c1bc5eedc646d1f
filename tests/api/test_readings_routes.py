"""Tests for the sensor reading routes."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from rainalert.monitoring.alerting.store import AlertStore, StorageError
from rainalert.monitoring.ingest import EXPECTED_FIELDS_MESSAGE, ReadingIngestor


@asynccontextmanager
async def _failing_unit_of_work() -> AsyncIterator[AlertStore]:
    raise StorageError("database unavailable")
    yield  # pragma: no cover


class TestPostReading:
    @pytest.mark.asyncio
    async def test_valid_reading_accepted_and_evaluated(self, client: AsyncClient, clock) -> None:
        response = await client.post(
            "/api/v1/readings",
            json={"distance": 25.0, "floodLevel": 175.0, "status": "Critical"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Data received successfully"
        received = data["receivedData"]
        assert received["distance"] == 25.0
        assert received["floodLevel"] == 175.0
        assert received["status"] == "Critical"
        assert received["timestamp"] == clock.now.isoformat()
        assert data["evaluation"]["kind"] == "alert_recorded"
        assert data["evaluation"]["level"] == "Critical"

    @pytest.mark.asyncio
    async def test_malformed_json_rejected(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/readings",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"success": False, "message": EXPECTED_FIELDS_MESSAGE}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"distance": "25", "floodLevel": 175.0, "status": "Critical"},
            {"distance": 25.0, "status": "Critical"},
            {"distance": 25.0, "floodLevel": False, "status": "Critical"},
        ],
    )
    async def test_invalid_fields_rejected_without_storing(
        self, client: AsyncClient, memory_store, body: dict[str, Any]
    ) -> None:
        response = await client.post("/api/v1/readings", json=body)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert await memory_store.latest_reading() is None

    @pytest.mark.asyncio
    async def test_storage_failure_returns_500(self, client: AsyncClient, test_app: Any) -> None:
        ingestor = AsyncMock(spec=ReadingIngestor)
        ingestor.ingest = AsyncMock(side_effect=StorageError("database unavailable"))
        test_app.state.ingestor = ingestor

        response = await client.post(
            "/api/v1/readings",
            json={"distance": 25.0, "floodLevel": 175.0, "status": "Critical"},
        )

        assert response.status_code == 500
        assert response.json()["success"] is False


class TestLatestReading:
    @pytest.mark.asyncio
    async def test_no_data_sentinel(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/readings/latest")

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["data"] == {"distance": None, "flood_level": None, "status": "No Data", "reading_time": None}

    @pytest.mark.asyncio
    async def test_latest_reading_in_feet_by_default(self, client: AsyncClient) -> None:
        await client.post("/api/v1/readings", json={"distance": 76.2, "floodLevel": 30.48, "status": "Warning"})

        response = await client.get("/api/v1/readings/latest")

        data = response.json()["data"]
        assert data["distance"] == 2.5
        assert data["flood_level"] == 1.0
        assert data["status"] == "Warning"
        assert data["unit"] == "ft"

    @pytest.mark.asyncio
    async def test_latest_reading_in_centimeters(self, client: AsyncClient) -> None:
        await client.post("/api/v1/readings", json={"distance": 76.2, "floodLevel": 30.48, "status": "Warning"})

        response = await client.get("/api/v1/readings/latest", params={"unit": "cm"})

        data = response.json()["data"]
        assert data["distance"] == 76.2
        assert data["unit"] == "cm"

    @pytest.mark.asyncio
    async def test_unknown_unit_rejected(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/readings/latest", params={"unit": "m"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_storage_failure_returns_500(self, client: AsyncClient, test_app: Any) -> None:
        test_app.state.unit_of_work = _failing_unit_of_work

        response = await client.get("/api/v1/readings/latest")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Failed to load sensor data."}
