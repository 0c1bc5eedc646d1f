"""Shared FastAPI dependencies.

Every service object is built once in the application lifespan and stored
on ``app.state``; these helpers hand them to route functions.
"""

from __future__ import annotations

from fastapi import Request

from rainalert.monitoring.alerting.engine import AlertEvaluator
from rainalert.monitoring.alerting.store import UnitOfWork
from rainalert.monitoring.ingest import ReadingIngestor
from rainalert.monitoring.notification import PushNotifier


def get_unit_of_work(request: Request) -> UnitOfWork:
    """Return the unit-of-work factory for read paths.

    Routes open their own short transaction so storage failures can be
    reported in the response body.
    """
    return request.app.state.unit_of_work


def get_evaluator(request: Request) -> AlertEvaluator:
    return request.app.state.evaluator


def get_ingestor(request: Request) -> ReadingIngestor:
    return request.app.state.ingestor


def get_notifier(request: Request) -> PushNotifier:
    return request.app.state.push_notifier
