"""Flood alert evaluation and storage.

Re-exports from engine (evaluation cycle) and store (alert persistence).
"""

from rainalert.monitoring.alerting.engine import (
    AlertEvaluator,
    EvaluationOutcome,
    OutcomeKind,
)
from rainalert.monitoring.alerting.store import (
    AlertStore,
    InMemoryAlertStore,
    SqlAlertStore,
    StorageError,
    UnitOfWork,
    memory_unit_of_work,
    sql_unit_of_work,
)

__all__ = [
    # Engine
    "AlertEvaluator",
    "EvaluationOutcome",
    "OutcomeKind",
    # Store
    "AlertStore",
    "InMemoryAlertStore",
    "SqlAlertStore",
    "StorageError",
    "UnitOfWork",
    "memory_unit_of_work",
    "sql_unit_of_work",
]
