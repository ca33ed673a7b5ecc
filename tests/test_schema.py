"""Tests for startup schema initialization."""

import pytest
import sqlalchemy as sa
from sqlalchemy.exc import OperationalError

from eonet_etl.db import schema
from eonet_etl.db.schema import InitMode, initialize_schema, parse_init_mode, schema_exists
from eonet_etl.errors import InvalidInitModeError, SchemaInitError
from eonet_etl.models import Base


async def _table_names(engine) -> set[str]:
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda c: sa.inspect(c).get_table_names()))


async def _index_names(engine, table: str) -> set[str]:
    async with engine.connect() as conn:
        indexes = await conn.run_sync(lambda c: sa.inspect(c).get_indexes(table))
    return {index["name"] for index in indexes}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Create", InitMode.CREATE),
        ("create", InitMode.CREATE),
        ("REVIVE", InitMode.REVIVE),
        ("auto", InitMode.AUTO),
        ("AuTo", InitMode.AUTO),
    ],
)
def test_parse_init_mode_ignores_case(value, expected):
    assert parse_init_mode(value) is expected


@pytest.mark.parametrize("value", ["", "bogus", " auto", "create!"])
def test_parse_init_mode_rejects_unknown(value):
    with pytest.raises(InvalidInitModeError, match="supported modes: Create, Revive, Auto"):
        parse_init_mode(value)


def test_invalid_init_mode_is_a_value_error():
    with pytest.raises(ValueError):
        parse_init_mode("bogus")


async def test_create_builds_all_tables(empty_engine):
    await initialize_schema(empty_engine, InitMode.CREATE)

    assert await _table_names(empty_engine) == {"events", "categories", "runs"}


async def test_create_is_idempotent(empty_engine):
    await initialize_schema(empty_engine, InitMode.CREATE)
    await initialize_schema(empty_engine, InitMode.CREATE)

    assert await _table_names(empty_engine) == {"events", "categories", "runs"}


async def test_create_builds_indexes(empty_engine):
    await initialize_schema(empty_engine, InitMode.CREATE)

    assert {"ix_events_closed", "ix_events_created_at"} <= await _index_names(empty_engine, "events")
    assert "ix_categories_title" in await _index_names(empty_engine, "categories")
    assert "ix_runs_started_at" in await _index_names(empty_engine, "runs")


async def test_revive_on_empty_database_creates_nothing(empty_engine):
    await initialize_schema(empty_engine, InitMode.REVIVE)

    assert await _table_names(empty_engine) == set()


async def _schema_snapshot(engine) -> dict[str, set[str]]:
    return {table: await _index_names(engine, table) for table in await _table_names(engine)}


async def test_auto_creates_missing_schema_then_detects_it(empty_engine):
    assert await schema_exists(empty_engine) is False

    await initialize_schema(empty_engine, InitMode.AUTO)
    assert await schema_exists(empty_engine) is True
    created = await _schema_snapshot(empty_engine)
    assert set(created) == {"events", "categories", "runs"}

    # Later starts, in either mode, leave the schema untouched
    await initialize_schema(empty_engine, InitMode.REVIVE)
    assert await _schema_snapshot(empty_engine) == created

    await initialize_schema(empty_engine, InitMode.AUTO)
    assert await _schema_snapshot(empty_engine) == created


async def test_auto_on_unreachable_database_attempts_create(refused_engine):
    with pytest.raises(SchemaInitError, match="failed to create database structure"):
        await initialize_schema(refused_engine, InitMode.AUTO)


async def test_auto_creates_schema_when_lookup_fails(empty_engine, monkeypatch):
    async def broken_lookup(engine):
        raise OperationalError("SELECT name FROM sqlite_master", {}, Exception("catalog unavailable"))

    monkeypatch.setattr(schema, "schema_exists", broken_lookup)

    await initialize_schema(empty_engine, InitMode.AUTO)

    assert "events" in await _table_names(empty_engine)


async def test_create_failure_raises_schema_init_error(empty_engine, monkeypatch):
    def failing_create_all(bind, **kwargs):
        raise OperationalError("CREATE TABLE events", {}, Exception("permission denied"))

    monkeypatch.setattr(Base.metadata, "create_all", failing_create_all)

    with pytest.raises(SchemaInitError, match="failed to create database structure"):
        await initialize_schema(empty_engine, InitMode.CREATE)
