"""Startup schema initialization: Create, Revive, or Auto-detect.

Runs once before any data load.  ``Create`` issues idempotent
create-if-absent DDL for every table and index, ``Revive`` trusts that the
schema already exists, and ``Auto`` looks the ``events`` table up in the
catalog and creates the schema when it is missing (or when the lookup
itself fails).
"""

from __future__ import annotations

import enum

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from eonet_etl.db.session import DB_ERRORS
from eonet_etl.errors import InvalidInitModeError, SchemaInitError
from eonet_etl.models import Base, Event

logger = structlog.get_logger()


class InitMode(enum.StrEnum):
    CREATE = "Create"
    REVIVE = "Revive"
    AUTO = "Auto"


def parse_init_mode(value: str) -> InitMode:
    """Parse an initialization mode name, ignoring case.

    Raises:
        InvalidInitModeError: For anything other than Create, Revive or Auto.
    """
    normalized = value.lower()
    for mode in InitMode:
        if mode.value.lower() == normalized:
            return mode
    supported = ", ".join(mode.value for mode in InitMode)
    raise InvalidInitModeError(f"invalid initialization mode: {value!r}, supported modes: {supported}")


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables and indexes that do not exist yet."""
    logger.info("schema_create_started")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    except DB_ERRORS as e:
        raise SchemaInitError(f"failed to create database structure: {e}") from e
    logger.info("schema_create_complete", tables=sorted(Base.metadata.tables))


async def schema_exists(engine: AsyncEngine) -> bool:
    """Return whether the events table is present in the catalog.

    Raises:
        SQLAlchemyError, OSError: If the catalog cannot be queried.
    """
    async with engine.connect() as conn:
        return await conn.run_sync(
            lambda sync_conn: sa.inspect(sync_conn).has_table(Event.__tablename__)
        )


async def initialize_schema(engine: AsyncEngine, mode: InitMode) -> None:
    """Bring the schema into a usable state according to *mode*.

    Raises:
        SchemaInitError: If schema creation fails.  Callers treat this as
            fatal.
    """
    log = logger.bind(mode=mode.value)

    if mode is InitMode.CREATE:
        await create_schema(engine)
        return

    if mode is InitMode.REVIVE:
        log.info("schema_init_skipped")
        return

    try:
        exists = await schema_exists(engine)
    except DB_ERRORS as e:
        log.info("schema_lookup_failed", error=str(e))
        exists = False

    if exists:
        log.info("schema_already_exists")
        return

    log.info("schema_not_found")
    await create_schema(engine)
