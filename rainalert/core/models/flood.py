"""Flood monitoring models: severity/alert enums, SensorReading, FloodAlert, EvaluationState."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, Float, Index, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from rainalert.core.database import Base


class FloodSeverity(enum.StrEnum):
    """Severity bands derived from the distance to the water surface."""

    SAFE = "Safe"
    WARNING = "Warning"
    DANGER = "Danger"
    CRITICAL = "Critical"


class AlertLevel(enum.StrEnum):
    """Severity levels that produce a flood alert."""

    WARNING = "Warning"
    DANGER = "Danger"
    CRITICAL = "Critical"


class AlertStatus(enum.StrEnum):
    """Lifecycle status of a flood alert. ``past`` is terminal."""

    ACTIVE = "active"
    PAST = "past"


class SensorReading(Base):
    """One timestamped sample from the water level sensor. Immutable once stored."""

    __tablename__ = "sensor_readings"
    __table_args__ = (Index("ix_sensor_readings_reading_time", "reading_time"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    distance: Mapped[float] = mapped_column(Float, nullable=False)
    flood_level: Mapped[float] = mapped_column(Float, nullable=False)
    status_tag: Mapped[str] = mapped_column(String(50), nullable=False)
    reading_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<SensorReading(id={self.id}, distance={self.distance}, reading_time={self.reading_time})>"


class FloodAlert(Base):
    """A recorded flood severity event. Only ``status`` changes after insert."""

    __tablename__ = "flood_alerts"
    __table_args__ = (
        UniqueConstraint("reading_time", "alert_level", name="uq_flood_alert_reading_level"),
        Index("ix_flood_alerts_status_created_at", "status", "created_at"),
        Index("ix_flood_alerts_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    alert_level: Mapped[AlertLevel] = mapped_column(
        Enum(AlertLevel, values_callable=lambda e: [x.value for x in e]), nullable=False
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[AlertStatus] = mapped_column(
        Enum(AlertStatus, values_callable=lambda e: [x.value for x in e]),
        default=AlertStatus.ACTIVE,
        nullable=False,
    )
    source_distance: Mapped[float] = mapped_column(Float, nullable=False)
    source_flood_level: Mapped[float] = mapped_column(Float, nullable=False)
    # Soft reference to the triggering reading; not enforced as a foreign key.
    reading_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    reading_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<FloodAlert(id={self.id}, level='{self.alert_level}', status='{self.status}')>"


class EvaluationState(Base):
    """Singleton row tracking the start of the current unbroken safe streak."""

    __tablename__ = "evaluation_state"
    __table_args__ = (CheckConstraint("id = 1", name="ck_evaluation_state_singleton"),)

    SINGLETON_ID = 1

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=SINGLETON_ID)
    first_safe_detected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<EvaluationState(first_safe_detected_at={self.first_safe_detected_at})>"
