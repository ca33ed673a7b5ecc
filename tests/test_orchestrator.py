"""Tests for the pipeline orchestrator."""

import asyncio
import json
import math

import pytest
import sqlalchemy as sa

from eonet_etl.errors import FeedError, HealthCheckError, PipelineBusyError, PipelineError
from eonet_etl.models import Category, EtlRun, Event
from tests.factories import make_raw_event


async def _rows(store, model):
    async with store.session_factory() as session:
        return list((await session.execute(sa.select(model))).scalars())


async def test_run_loads_categories_and_events(pipeline, fake_feed, store):
    fake_feed.categories = [{"id": 8, "title": "Wildfires"}]
    fake_feed.events = [
        {
            "id": "EONET_1",
            "categories": [{"id": "8"}],
            "geometry": [{"type": "Point", "coordinates": [-120.5, 37.8]}],
        }
    ]

    result = await pipeline.run()

    assert result.events_processed == 1
    assert result.categories_processed == 1
    assert result.events_skipped == 0

    categories = await _rows(store, Category)
    assert [(c.id, c.title) for c in categories] == [(8, "Wildfires")]

    events = await _rows(store, Event)
    assert len(events) == 1
    assert json.loads(events[0].categories_json)[0]["id"] == 8

    run = await store.last_run()
    assert run.id == result.run_id
    assert run.status == "completed"
    assert run.events_processed == 1
    assert run.categories_processed == 1
    assert run.error_message is None


async def test_bad_events_are_skipped(pipeline, fake_feed, store):
    missing_id = make_raw_event()
    del missing_id["id"]
    fake_feed.events = [
        make_raw_event("EONET_1"),
        make_raw_event("EONET_NAN", geometry=[{"type": "Point", "coordinates": [math.nan, 0.0]}]),
        missing_id,
        "not an event",
        make_raw_event("EONET_2"),
    ]

    result = await pipeline.run()

    assert result.events_processed == 2
    assert result.events_skipped == 3
    assert sorted(e.id for e in await _rows(store, Event)) == ["EONET_1", "EONET_2"]
    assert (await store.last_run()).status == "completed"


async def test_categories_failure_fails_run_before_events(pipeline, fake_feed, store):
    fake_feed.categories_error = FeedError("API request failed with status 500: oops")

    with pytest.raises(PipelineError, match="failed to process categories"):
        await pipeline.run()

    assert fake_feed.events_calls == []
    run = await store.last_run()
    assert run.status == "failed"
    assert run.events_processed == 0
    assert run.categories_processed == 0
    assert "failed to process categories" in run.error_message
    assert "status 500" in run.error_message
    assert run.completed_at is not None


async def test_events_failure_keeps_categories(pipeline, fake_feed, store):
    fake_feed.events_error = FeedError("connection reset")

    with pytest.raises(PipelineError, match="failed to process events: connection reset"):
        await pipeline.run()

    assert len(await _rows(store, Category)) == 1
    run = await store.last_run()
    assert run.status == "failed"
    assert run.categories_processed == 1
    assert run.events_processed == 0


async def test_cancelled_run_is_recorded_as_failed(pipeline, fake_feed, store):
    fake_feed.events_gate = asyncio.Event()
    task = asyncio.create_task(pipeline.run())
    await fake_feed.events_started.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    run = await store.last_run()
    assert run.status == "failed"
    assert run.error_message == "run cancelled"
    assert not pipeline.running


async def test_second_run_while_busy_is_rejected(pipeline, fake_feed, store):
    fake_feed.events_gate = asyncio.Event()
    fake_feed.events = [make_raw_event("EONET_1")]
    task = asyncio.create_task(pipeline.run())
    await fake_feed.events_started.wait()
    assert pipeline.running

    with pytest.raises(PipelineBusyError):
        await pipeline.run()

    fake_feed.events_gate.set()
    result = await task

    assert result.events_processed == 1
    assert len(await _rows(store, EtlRun)) == 1


async def test_repeated_runs_do_not_duplicate_rows(pipeline, fake_feed, store):
    fake_feed.events = [make_raw_event("EONET_1"), make_raw_event("EONET_2")]

    first = await pipeline.run()
    second = await pipeline.run()

    assert second.run_id > first.run_id
    assert len(await _rows(store, Event)) == 2
    assert len(await _rows(store, Category)) == 1
    assert len(await _rows(store, EtlRun)) == 2


async def test_run_uses_configured_window(pipeline, fake_feed):
    await pipeline.run()

    assert fake_feed.events_calls == [{"days": 7, "limit": 50, "status": "open"}]


async def test_empty_feed_completes(pipeline, fake_feed, store):
    fake_feed.categories = []

    result = await pipeline.run()

    assert result.events_processed == 0
    assert (await store.last_run()).status == "completed"


async def test_health_check_passes(pipeline):
    await pipeline.health_check()


async def test_health_check_reports_feed(pipeline, fake_feed):
    fake_feed.health_error = FeedError("unreachable")

    with pytest.raises(HealthCheckError, match="feed health check failed: unreachable"):
        await pipeline.health_check()


async def test_health_check_reports_database(pipeline, store, monkeypatch):
    async def broken_health_check():
        raise RuntimeError("pool exhausted")

    monkeypatch.setattr(store, "health_check", broken_health_check)

    with pytest.raises(HealthCheckError, match="database health check failed: pool exhausted"):
        await pipeline.health_check()


async def test_last_run_info(pipeline):
    assert await pipeline.last_run_info() is None

    result = await pipeline.run()

    assert (await pipeline.last_run_info()).id == result.run_id


async def test_close_releases_feed(pipeline, fake_feed):
    await pipeline.close()
    assert fake_feed.closed
