"""Repeat pipeline runs on a fixed interval until asked to stop.

Each scheduled pass is retried ``retry_attempts`` times after a failure,
waiting ``retry_delay_seconds`` between attempts.  Every attempt is its own
tracked run.
"""

from __future__ import annotations

import asyncio
import contextlib

import structlog

from eonet_etl.config.settings import EtlSettings
from eonet_etl.errors import EtlError, PipelineBusyError
from eonet_etl.worker.orchestrator import Pipeline, RunResult

logger = structlog.get_logger()


async def wait_or_stop(stop_event: asyncio.Event, seconds: float) -> bool:
    """Sleep for *seconds* or until *stop_event* is set.

    Returns:
        ``True`` if the stop event fired.
    """
    with contextlib.suppress(TimeoutError):
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    return stop_event.is_set()


async def run_with_retries(
    pipeline: Pipeline,
    retry_attempts: int,
    retry_delay: float,
    stop_event: asyncio.Event | None = None,
) -> RunResult | None:
    """Run the pipeline, retrying failed runs.

    Returns:
        The successful ``RunResult``, or ``None`` when another run was
        already in flight or a stop was requested between attempts.

    Raises:
        EtlError: The last failure once all attempts are used up.
    """
    stop_event = stop_event or asyncio.Event()
    for attempt in range(1, retry_attempts + 2):
        try:
            return await pipeline.run()
        except PipelineBusyError:
            logger.warning("run_skipped_busy")
            return None
        except EtlError as e:
            log = logger.bind(attempt=attempt, max_attempts=retry_attempts + 1)
            if attempt > retry_attempts:
                log.error("run_attempts_exhausted", error=str(e))
                raise
            log.warning("run_attempt_failed", error=str(e), retry_in=retry_delay)
            if await wait_or_stop(stop_event, retry_delay):
                return None
    return None


async def run_periodically(
    pipeline: Pipeline,
    etl: EtlSettings,
    stop_event: asyncio.Event,
) -> int:
    """Run passes every ``etl.interval_seconds`` until *stop_event* is set.

    A pass that fails after all retries is logged and the schedule
    continues.

    Returns:
        Number of passes that completed successfully.
    """
    log = logger.bind(interval_seconds=etl.interval_seconds)
    log.info("scheduler_started")
    completed = 0

    while not stop_event.is_set():
        try:
            result = await run_with_retries(
                pipeline, etl.retry_attempts, etl.retry_delay_seconds, stop_event
            )
        except EtlError:
            result = None
        if result is not None:
            completed += 1

        if await wait_or_stop(stop_event, etl.interval_seconds):
            break

    log.info("scheduler_stopped", completed_runs=completed)
    return completed
