"""Alert store abstraction for the evaluation engine and dashboard.

Defines the ``AlertStore`` protocol and provides two implementations:

- ``SqlAlertStore``: PostgreSQL via SQLAlchemy async sessions.
- ``InMemoryAlertStore``: process-local lists, for development without a
  database and for tests.

Every store is used through a unit of work: a zero-argument factory that
yields a store bound to one transaction. Leaving the block normally
commits; leaving it with an exception rolls back everything done inside,
including changes to the evaluation state.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rainalert.core.models import (
    AlertLevel,
    AlertStatus,
    EvaluationState,
    FloodAlert,
    SensorReading,
)

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The alert store is unreachable or a read/write failed."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class AlertStore(Protocol):
    """Storage contract required by ingest, evaluation, and the dashboard."""

    async def add_reading(self, reading: SensorReading) -> uuid.UUID:
        """Append a reading to the readings log and return its id."""
        ...

    async def latest_reading(self) -> SensorReading | None:
        """Return the most recent reading by reading_time, if any."""
        ...

    async def load_evaluation_state(self) -> EvaluationState:
        """Load (creating if missing) and lock the singleton evaluation state."""
        ...

    async def insert(self, alert: FloodAlert) -> uuid.UUID:
        """Insert a new alert and return its id."""
        ...

    async def find_by_reading_and_level(
        self,
        reading_time: datetime,
        level: AlertLevel,
    ) -> FloodAlert | None:
        """Return the alert recorded for this (reading_time, level), if any."""
        ...

    async def list_active(self) -> list[FloodAlert]:
        """Return active alerts, newest first by created_at."""
        ...

    async def set_status(
        self,
        ids: Iterable[uuid.UUID],
        status: AlertStatus,
        updated_at: datetime,
    ) -> int:
        """Bulk-update the status of the given active alerts."""
        ...

    async def mark_all_active_past(self, updated_at: datetime) -> int:
        """Set every active alert to past in one operation."""
        ...

    async def list_all(
        self,
        since: datetime | None = None,
        status: AlertStatus | None = None,
    ) -> list[FloodAlert]:
        """Return alerts newest first, optionally newer than ``since``."""
        ...


UnitOfWork = Callable[[], AbstractAsyncContextManager[AlertStore]]


# ---------------------------------------------------------------------------
# SQL implementation
# ---------------------------------------------------------------------------


class SqlAlertStore:
    """AlertStore backed by an ``AsyncSession`` with an open transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_reading(self, reading: SensorReading) -> uuid.UUID:
        self._session.add(reading)
        await self._session.flush()
        return reading.id

    async def latest_reading(self) -> SensorReading | None:
        result = await self._session.execute(
            select(SensorReading).order_by(SensorReading.reading_time.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def load_evaluation_state(self) -> EvaluationState:
        # Row lock serializes evaluation cycles across server processes.
        result = await self._session.execute(
            select(EvaluationState).where(EvaluationState.id == EvaluationState.SINGLETON_ID).with_for_update()
        )
        state = result.scalar_one_or_none()
        if state is None:
            state = EvaluationState(id=EvaluationState.SINGLETON_ID, first_safe_detected_at=None)
            self._session.add(state)
            await self._session.flush()
            logger.info("Initialized evaluation state row")
        return state

    async def insert(self, alert: FloodAlert) -> uuid.UUID:
        self._session.add(alert)
        await self._session.flush()
        return alert.id

    async def find_by_reading_and_level(
        self,
        reading_time: datetime,
        level: AlertLevel,
    ) -> FloodAlert | None:
        result = await self._session.execute(
            select(FloodAlert)
            .where(FloodAlert.reading_time == reading_time, FloodAlert.alert_level == level)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> list[FloodAlert]:
        result = await self._session.execute(
            select(FloodAlert).where(FloodAlert.status == AlertStatus.ACTIVE).order_by(FloodAlert.created_at.desc())
        )
        return list(result.scalars().all())

    async def set_status(
        self,
        ids: Iterable[uuid.UUID],
        status: AlertStatus,
        updated_at: datetime,
    ) -> int:
        id_list = list(ids)
        if not id_list:
            return 0
        result = await self._session.execute(
            update(FloodAlert)
            .where(FloodAlert.id.in_(id_list), FloodAlert.status == AlertStatus.ACTIVE)
            .values(status=status, updated_at=updated_at)
        )
        return int(result.rowcount or 0)

    async def mark_all_active_past(self, updated_at: datetime) -> int:
        result = await self._session.execute(
            update(FloodAlert)
            .where(FloodAlert.status == AlertStatus.ACTIVE)
            .values(status=AlertStatus.PAST, updated_at=updated_at)
        )
        return int(result.rowcount or 0)

    async def list_all(
        self,
        since: datetime | None = None,
        status: AlertStatus | None = None,
    ) -> list[FloodAlert]:
        query = select(FloodAlert)
        if since is not None:
            query = query.where(FloodAlert.created_at > since)
        if status is not None:
            query = query.where(FloodAlert.status == status)
        result = await self._session.execute(query.order_by(FloodAlert.created_at.desc()))
        return list(result.scalars().all())


def sql_unit_of_work(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWork:
    """Build a unit-of-work factory that runs each block in one DB transaction.

    SQLAlchemy and connection-level failures are re-raised as ``StorageError``.
    """

    @asynccontextmanager
    async def _unit_of_work() -> AsyncIterator[AlertStore]:
        try:
            async with session_factory() as session, session.begin():
                yield SqlAlertStore(session)
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Alert store operation failed: {exc}") from exc

    return _unit_of_work


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Snapshot:
    """Restorable view of an in-memory store.

    Readings and alerts are append-only and alerts only change status, so
    list lengths plus per-alert status are enough to undo a transaction.
    """

    reading_count: int
    alert_count: int
    alert_statuses: dict[uuid.UUID, tuple[AlertStatus, datetime]]
    first_safe_detected_at: datetime | None


class InMemoryAlertStore:
    """AlertStore kept in process memory.

    Transactions are serialized by ``lock``; see ``memory_unit_of_work``.
    """

    def __init__(self) -> None:
        self._readings: list[SensorReading] = []
        self._alerts: list[FloodAlert] = []
        self._state = EvaluationState(id=EvaluationState.SINGLETON_ID, first_safe_detected_at=None)
        self.lock = asyncio.Lock()

    async def add_reading(self, reading: SensorReading) -> uuid.UUID:
        if reading.id is None:
            reading.id = uuid.uuid4()
        self._readings.append(reading)
        return reading.id

    async def latest_reading(self) -> SensorReading | None:
        if not self._readings:
            return None
        # Later insertion wins on equal reading_time.
        return max(reversed(self._readings), key=lambda r: r.reading_time)

    async def load_evaluation_state(self) -> EvaluationState:
        return self._state

    async def insert(self, alert: FloodAlert) -> uuid.UUID:
        if alert.id is None:
            alert.id = uuid.uuid4()
        if alert.status is None:
            alert.status = AlertStatus.ACTIVE
        existing = await self.find_by_reading_and_level(alert.reading_time, alert.alert_level)
        if existing is not None:
            raise StorageError(
                f"Duplicate alert for reading_time={alert.reading_time.isoformat()} level={alert.alert_level}"
            )
        self._alerts.append(alert)
        return alert.id

    async def find_by_reading_and_level(
        self,
        reading_time: datetime,
        level: AlertLevel,
    ) -> FloodAlert | None:
        for alert in self._alerts:
            if alert.reading_time == reading_time and alert.alert_level == level:
                return alert
        return None

    def _newest_first(self, alerts: Iterable[FloodAlert]) -> list[FloodAlert]:
        order = {id(a): i for i, a in enumerate(self._alerts)}
        return sorted(alerts, key=lambda a: (a.created_at, order[id(a)]), reverse=True)

    async def list_active(self) -> list[FloodAlert]:
        return self._newest_first(a for a in self._alerts if a.status == AlertStatus.ACTIVE)

    async def set_status(
        self,
        ids: Iterable[uuid.UUID],
        status: AlertStatus,
        updated_at: datetime,
    ) -> int:
        wanted = set(ids)
        count = 0
        for alert in self._alerts:
            if alert.id in wanted and alert.status == AlertStatus.ACTIVE:
                alert.status = status
                alert.updated_at = updated_at
                count += 1
        return count

    async def mark_all_active_past(self, updated_at: datetime) -> int:
        active_ids = [a.id for a in self._alerts if a.status == AlertStatus.ACTIVE]
        return await self.set_status(active_ids, AlertStatus.PAST, updated_at)

    async def list_all(
        self,
        since: datetime | None = None,
        status: AlertStatus | None = None,
    ) -> list[FloodAlert]:
        alerts = [
            a
            for a in self._alerts
            if (since is None or a.created_at > since) and (status is None or a.status == status)
        ]
        return self._newest_first(alerts)

    def snapshot(self) -> _Snapshot:
        return _Snapshot(
            reading_count=len(self._readings),
            alert_count=len(self._alerts),
            alert_statuses={a.id: (a.status, a.updated_at) for a in self._alerts},
            first_safe_detected_at=self._state.first_safe_detected_at,
        )

    def restore(self, snapshot: _Snapshot) -> None:
        del self._readings[snapshot.reading_count :]
        del self._alerts[snapshot.alert_count :]
        for alert in self._alerts:
            alert.status, alert.updated_at = snapshot.alert_statuses[alert.id]
        self._state.first_safe_detected_at = snapshot.first_safe_detected_at


def memory_unit_of_work(store: InMemoryAlertStore) -> UnitOfWork:
    """Build a unit-of-work factory over an in-memory store.

    Blocks are serialized by the store lock and undone from a snapshot if
    they raise (cancellation included).
    """

    @asynccontextmanager
    async def _unit_of_work() -> AsyncIterator[AlertStore]:
        async with store.lock:
            snapshot = store.snapshot()
            try:
                yield store
            except BaseException:
                store.restore(snapshot)
                logger.debug("In-memory transaction rolled back")
                raise

    return _unit_of_work
