"""SQLAlchemy models for the RainAlert service.

This package re-exports all models and enums so that code can use
``from rainalert.core.models import X``.
"""

from rainalert.core.models.flood import (
    AlertLevel,
    AlertStatus,
    EvaluationState,
    FloodAlert,
    FloodSeverity,
    SensorReading,
)

__all__ = [
    "AlertLevel",
    "AlertStatus",
    "EvaluationState",
    "FloodAlert",
    "FloodSeverity",
    "SensorReading",
]
