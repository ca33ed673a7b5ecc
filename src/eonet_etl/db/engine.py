from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine as sa_create_async_engine

from eonet_etl.config.settings import DatabaseSettings


def build_engine(database: DatabaseSettings) -> AsyncEngine:
    """Create an async engine with a bounded connection pool.

    At most ``pool_size + max_overflow`` connections are open at once, and
    connections older than ``pool_recycle_seconds`` are replaced.  SQLite
    (tests, local runs) keeps SQLAlchemy's driver default pool.
    """
    url = make_url(database.url)
    if url.get_backend_name() == "sqlite":
        return sa_create_async_engine(url, echo=database.echo)
    return sa_create_async_engine(
        url,
        echo=database.echo,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_recycle=database.pool_recycle_seconds,
        pool_pre_ping=True,
    )
