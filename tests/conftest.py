"""Shared test fixtures."""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine

from eonet_etl.api.app import create_app
from eonet_etl.config.settings import EtlSettings
from eonet_etl.db.store import EventStore
from eonet_etl.models.base import Base
from eonet_etl.worker.orchestrator import Pipeline
from tests.factories import FakeFeed


@pytest.fixture
async def empty_engine():
    """Create an async SQLite in-memory engine without any tables."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_engine(empty_engine):
    """Async SQLite in-memory engine with the full schema."""
    async with empty_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return empty_engine


@pytest.fixture
async def refused_engine():
    """Engine whose every connection attempt is refused, like a database that is down."""

    async def refuse():
        raise ConnectionRefusedError(111, "Connect call failed ('127.0.0.1', 5432)")

    engine = create_async_engine("sqlite+aiosqlite://", async_creator=refuse)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(test_engine) -> EventStore:
    return EventStore(test_engine)


@pytest.fixture
def fake_feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def etl_settings() -> EtlSettings:
    return EtlSettings(batch_size=50, days_window=7, event_status="open")


@pytest.fixture
def pipeline(fake_feed: FakeFeed, store: EventStore, etl_settings: EtlSettings) -> Pipeline:
    return Pipeline(fake_feed, store, etl_settings)


@pytest.fixture
async def api_client(pipeline: Pipeline):
    """Async HTTP client hitting the FastAPI app in-process."""
    transport = ASGITransport(app=create_app(pipeline))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
