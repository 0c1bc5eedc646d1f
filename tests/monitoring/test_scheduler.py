"""Tests for the evaluation scheduler loop."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from rainalert.monitoring.alerting.engine import AlertEvaluator, EvaluationOutcome, OutcomeKind
from rainalert.monitoring.scheduler import run_evaluation_loop


def _evaluator() -> AsyncMock:
    evaluator = AsyncMock(spec=AlertEvaluator)
    evaluator.evaluate = AsyncMock(
        return_value=EvaluationOutcome(kind=OutcomeKind.NO_DATA, message="No sensor data found."),
    )
    return evaluator


@pytest.mark.asyncio
async def test_ticks_until_shutdown() -> None:
    evaluator = _evaluator()
    shutdown = asyncio.Event()

    task = asyncio.create_task(run_evaluation_loop(evaluator, 0.01, shutdown))
    await asyncio.sleep(0.1)
    shutdown.set()
    await asyncio.wait_for(task, timeout=1.0)

    assert evaluator.evaluate.await_count >= 2


@pytest.mark.asyncio
async def test_exits_immediately_when_already_shut_down() -> None:
    evaluator = _evaluator()
    shutdown = asyncio.Event()
    shutdown.set()

    await run_evaluation_loop(evaluator, 0.01, shutdown)

    evaluator.evaluate.assert_not_awaited()


@pytest.mark.asyncio
async def test_unexpected_error_does_not_stop_loop() -> None:
    ok = EvaluationOutcome(kind=OutcomeKind.NO_DATA, message="No sensor data found.")
    calls = 0
    shutdown = asyncio.Event()

    async def flaky_evaluate() -> EvaluationOutcome:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("unexpected")
        shutdown.set()
        return ok

    evaluator = AsyncMock(spec=AlertEvaluator)
    evaluator.evaluate = flaky_evaluate

    await asyncio.wait_for(
        run_evaluation_loop(evaluator, 0.01, shutdown, error_backoff_seconds=0.01),
        timeout=1.0,
    )

    assert calls == 2


@pytest.mark.asyncio
async def test_cancellation_stops_loop() -> None:
    evaluator = _evaluator()
    task = asyncio.create_task(run_evaluation_loop(evaluator, 0.01))
    await asyncio.sleep(0.05)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert task.done()
