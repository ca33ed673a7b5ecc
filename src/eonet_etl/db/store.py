"""Event, category and run persistence on top of an async SQLAlchemy engine.

Upserts use the dialect's ``INSERT ... ON CONFLICT (id) DO UPDATE`` so that
re-applying a record overwrites every mutable column and refreshes
``updated_at`` without ever duplicating a key.  Batch upserts run inside one
transaction and either commit every record or none of them.

Nothing here retries; failures surface as ``StorageError`` and the caller
decides what to do next.
"""

from __future__ import annotations

import datetime as dt
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from eonet_etl.db.session import DB_ERRORS, transaction
from eonet_etl.errors import RunStateError, StorageError
from eonet_etl.ingestion.normalizer import CategoryRecord, EventRecord
from eonet_etl.models import Category, EtlRun, Event, RunStatus

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_EVENT_COLUMNS = (
    "title",
    "description",
    "link",
    "categories_json",
    "sources_json",
    "geometry_json",
    "closed",
)
_CATEGORY_COLUMNS = ("title", "link", "description", "layers")


@dataclass(frozen=True)
class RunInfo:
    id: int
    started_at: dt.datetime
    completed_at: dt.datetime | None
    status: str
    events_processed: int
    categories_processed: int
    error_message: str | None = None


class RunIdGenerator:
    """Strictly increasing run ids derived from a microsecond clock.

    Two ids handed out by the same generator never collide, even when the
    clock stalls or steps backwards; the next id is then the previous one
    plus one.
    """

    def __init__(self, clock_ns: Callable[[], int] = time.time_ns) -> None:
        self._clock_ns = clock_ns
        self._last = 0

    def next_id(self) -> int:
        candidate = self._clock_ns() // 1_000
        if candidate <= self._last:
            candidate = self._last + 1
        self._last = candidate
        return candidate


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC).replace(tzinfo=None)


def build_upsert(dialect_name: str, table: sa.Table, mutable_columns: Sequence[str]) -> sa.Executable:
    """Build an insert-or-update statement keyed on the ``id`` primary key.

    Values are bound per execution, so one statement serves a whole batch.

    Raises:
        StorageError: If the dialect has no ``ON CONFLICT`` support here.
    """
    insert = _INSERT_BY_DIALECT.get(dialect_name)
    if insert is None:
        raise StorageError(f"upsert is not supported for dialect {dialect_name!r}")
    stmt = insert(table)
    updates: dict[str, Any] = {name: stmt.excluded[name] for name in mutable_columns}
    updates["updated_at"] = sa.func.current_timestamp()
    return stmt.on_conflict_do_update(index_elements=[table.c.id], set_=updates)


class EventStore:
    """Storage engine shared by the run path and the health-check path.

    The underlying engine owns a bounded connection pool and is safe to use
    from concurrent tasks.
    """

    def __init__(self, engine: AsyncEngine, run_ids: RunIdGenerator | None = None) -> None:
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )
        self._run_ids = run_ids or RunIdGenerator()
        dialect = engine.dialect.name
        self._event_upsert = build_upsert(dialect, Event.__table__, _EVENT_COLUMNS)
        self._category_upsert = build_upsert(dialect, Category.__table__, _CATEGORY_COLUMNS)

    # ---- Events and categories ----

    async def upsert_event(self, record: EventRecord) -> None:
        async with transaction(self.session_factory, f"failed to upsert event {record.id!r}") as session:
            await session.execute(self._event_upsert, record.as_params())

    async def upsert_category(self, record: CategoryRecord) -> None:
        async with transaction(self.session_factory, f"failed to upsert category {record.id}") as session:
            await session.execute(self._category_upsert, record.as_params())

    async def batch_upsert_events(self, records: Sequence[EventRecord]) -> None:
        """Upsert all *records* in one transaction, or none of them."""
        await self._batch_upsert("events", self._event_upsert, records)

    async def batch_upsert_categories(self, records: Sequence[CategoryRecord]) -> None:
        """Upsert all *records* in one transaction, or none of them."""
        await self._batch_upsert("categories", self._category_upsert, records)

    async def _batch_upsert(
        self,
        kind: str,
        stmt: sa.Executable,
        records: Sequence[EventRecord] | Sequence[CategoryRecord],
    ) -> None:
        if not records:
            return
        async with transaction(self.session_factory, f"failed to batch upsert {kind}") as session:
            for record in records:
                await session.execute(stmt, record.as_params())
        logger.info("Batch upserted %d %s", len(records), kind)

    # ---- Run tracking ----

    async def start_run(self) -> int:
        """Insert a ``running`` row and return its id."""
        run_id = self._run_ids.next_id()
        async with transaction(self.session_factory, "failed to start run") as session:
            session.add(EtlRun(id=run_id, started_at=_utcnow(), status=RunStatus.RUNNING.value))
        return run_id

    async def complete_run(
        self,
        run_id: int,
        status: RunStatus | str,
        events_processed: int,
        categories_processed: int,
        error_message: str | None = None,
    ) -> None:
        """Record the terminal state of a run.

        Raises:
            RunStateError: If *status* is not terminal, or the run does not
                exist or has already been completed.
            StorageError: On any store failure.
        """
        status = RunStatus(status)
        if status is RunStatus.RUNNING:
            raise RunStateError(f"run {run_id}: 'running' is not a terminal status")

        stmt = (
            sa.update(EtlRun)
            .where(EtlRun.id == run_id, EtlRun.status == RunStatus.RUNNING.value)
            .values(
                completed_at=_utcnow(),
                status=status.value,
                events_processed=events_processed,
                categories_processed=categories_processed,
                error_message=error_message,
            )
        )
        async with transaction(self.session_factory, f"failed to complete run {run_id}") as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                raise RunStateError(f"run {run_id} does not exist or is no longer running")

    async def last_run(self) -> RunInfo | None:
        """Return the most recently started run, or ``None`` before the first."""
        stmt = sa.select(EtlRun).order_by(EtlRun.started_at.desc(), EtlRun.id.desc()).limit(1)
        try:
            async with self.session_factory() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except DB_ERRORS as e:
            raise StorageError(f"failed to get last run: {e}") from e

        if row is None:
            return None
        return RunInfo(
            id=row.id,
            started_at=row.started_at,
            completed_at=row.completed_at,
            status=row.status,
            events_processed=row.events_processed,
            categories_processed=row.categories_processed,
            error_message=row.error_message,
        )

    # ---- Lifecycle ----

    async def health_check(self) -> None:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(sa.text("SELECT 1"))
        except DB_ERRORS as e:
            raise StorageError(f"database health check failed: {e}") from e

    async def close(self) -> None:
        await self.engine.dispose()
