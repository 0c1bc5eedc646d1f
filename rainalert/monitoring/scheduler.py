"""Internal evaluation tick.

Drives the alert evaluator on a fixed cadence so the safe-streak grace
period advances even when no new readings or dashboard requests arrive.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from rainalert.monitoring.alerting.engine import AlertEvaluator, OutcomeKind

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


async def run_evaluation_loop(
    evaluator: AlertEvaluator,
    interval_seconds: float = 1.0,
    shutdown_event: asyncio.Event | None = None,
    error_backoff_seconds: float = ERROR_BACKOFF_SECONDS,
) -> None:
    """Run evaluation cycles until ``shutdown_event`` is set.

    The evaluator's own lock keeps ticks from overlapping with ingest- or
    API-triggered cycles.
    """
    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    logger.info("Evaluation scheduler started (interval=%.1fs)", interval_seconds)
    while not shutdown_event.is_set():
        delay = interval_seconds
        try:
            outcome = await evaluator.evaluate()
            if outcome.kind == OutcomeKind.ERROR:
                delay = max(interval_seconds, error_backoff_seconds)
        except asyncio.CancelledError:
            break
        except Exception:
            logger.exception("Evaluation tick failed, retrying in %.1fs", error_backoff_seconds)
            delay = error_backoff_seconds

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=delay)

    logger.info("Evaluation scheduler stopped")
