"""Pipeline orchestrator: one tracked fetch/normalize/load pass per call.

A run moves through
``started -> categories -> events -> completed | failed``:

1. Insert a run-tracking row (status ``running``).
2. Fetch, normalize and batch-upsert categories.  Any failure is fatal.
3. Fetch events, normalize each one (bad events are logged and skipped),
   then batch-upsert the survivors.
4. Record the terminal status in a ``finally`` block, so a run is never
   left ``running`` by an error or a cancellation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import structlog

from eonet_etl.config.settings import EtlSettings
from eonet_etl.db.store import EventStore, RunInfo
from eonet_etl.errors import HealthCheckError, NormalizationError, PipelineBusyError, PipelineError
from eonet_etl.feed.schemas import EventsResponse, FeedCategory
from eonet_etl.ingestion.normalizer import EventRecord, normalize_category, normalize_event
from eonet_etl.models import RunStatus

logger = structlog.get_logger()


class Feed(Protocol):
    async def fetch_events(self, days: int, limit: int, status: str = ...) -> EventsResponse: ...

    async def fetch_categories(self) -> list[FeedCategory]: ...

    async def health_check(self) -> None: ...

    async def aclose(self) -> None: ...


@dataclass(frozen=True)
class RunResult:
    run_id: int
    events_processed: int
    categories_processed: int
    events_skipped: int = 0


class Pipeline:
    """Drives runs against a feed and an ``EventStore``.

    Single-flight: a second ``run()`` while one is in progress raises
    ``PipelineBusyError`` without touching the store.  Runs from other
    processes are not coordinated.
    """

    def __init__(self, feed: Feed, store: EventStore, etl: EtlSettings) -> None:
        self.feed = feed
        self.store = store
        self.etl = etl
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run(self) -> RunResult:
        """Execute one complete pass.

        Returns:
            Counts for the completed run.

        Raises:
            PipelineBusyError: If another run is in progress.
            StorageError: If the run row cannot be created.
            PipelineError: If a stage failed; the run is recorded as failed.
            asyncio.CancelledError: If cancelled; the run is recorded as
                failed on a best-effort basis.
        """
        if self._lock.locked():
            raise PipelineBusyError("a run is already in progress")

        async with self._lock:
            run_id = await self.store.start_run()
            log = logger.bind(run_id=run_id)
            log.info("run_started")

            events_processed = 0
            categories_processed = 0
            events_skipped = 0
            failure: BaseException | None = None
            try:
                try:
                    await self._process_categories()
                except Exception as e:
                    raise PipelineError(f"failed to process categories: {e}") from e
                categories_processed = 1  # all categories go in one batch

                try:
                    events_processed, events_skipped = await self._process_events()
                except Exception as e:
                    raise PipelineError(f"failed to process events: {e}") from e
            except (Exception, asyncio.CancelledError) as e:
                failure = e
                raise
            finally:
                await self._finish_run(run_id, failure, events_processed, categories_processed)

            log.info(
                "run_completed",
                events_processed=events_processed,
                events_skipped=events_skipped,
                categories_processed=categories_processed,
            )
            return RunResult(run_id, events_processed, categories_processed, events_skipped)

    async def _finish_run(
        self,
        run_id: int,
        failure: BaseException | None,
        events_processed: int,
        categories_processed: int,
    ) -> None:
        if failure is None:
            status, message = RunStatus.COMPLETED, None
        elif isinstance(failure, asyncio.CancelledError):
            status, message = RunStatus.FAILED, "run cancelled"
        else:
            status, message = RunStatus.FAILED, str(failure)

        log = logger.bind(run_id=run_id, status=status.value)
        if message is not None:
            log.error("run_failed", error=message)
        try:
            await self.store.complete_run(run_id, status, events_processed, categories_processed, message)
        except Exception as e:
            # Known gap: the row stays "running" and is not reconciled later.
            log.error("run_tracking_complete_failed", error=str(e), exc_info=True)

    async def _process_categories(self) -> None:
        logger.info("categories_processing_started")
        categories = await self.feed.fetch_categories()
        records = [normalize_category(category) for category in categories]
        await self.store.batch_upsert_categories(records)
        logger.info("categories_processed", count=len(records))

    async def _process_events(self) -> tuple[int, int]:
        """Return ``(upserted, skipped)`` event counts."""
        logger.info("events_processing_started", days=self.etl.days_window, limit=self.etl.batch_size)
        response = await self.feed.fetch_events(
            days=self.etl.days_window,
            limit=self.etl.batch_size,
            status=self.etl.event_status,
        )

        records: list[EventRecord] = []
        skipped = 0
        for raw_event in response.events:
            try:
                records.append(normalize_event(raw_event))
            except NormalizationError as e:
                skipped += 1
                logger.warning("event_normalization_failed", event_id=e.record_id, error=str(e))

        await self.store.batch_upsert_events(records)
        logger.info("events_processed", count=len(records), skipped=skipped)
        return len(records), skipped

    async def health_check(self) -> None:
        """Raise ``HealthCheckError`` unless both feed and store are healthy."""
        try:
            await self.feed.health_check()
        except Exception as e:
            raise HealthCheckError(f"feed health check failed: {e}") from e
        try:
            await self.store.health_check()
        except Exception as e:
            raise HealthCheckError(f"database health check failed: {e}") from e

    async def last_run_info(self) -> RunInfo | None:
        return await self.store.last_run()

    async def close(self) -> None:
        await self.feed.aclose()
        await self.store.close()
