from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eonet_etl.errors import StorageError

# Drivers raise connect-time failures (refused, unreachable) as plain OSError.
DB_ERRORS = (SQLAlchemyError, OSError)


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession], operation: str
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session inside one transaction.

    Commits when the block exits normally; any exception (including
    cancellation) rolls the whole transaction back and the connection is
    returned to the pool.  Driver and connection errors are re-raised as
    ``StorageError`` prefixed with *operation*.
    """
    try:
        async with session_factory() as session, session.begin():
            yield session
    except DB_ERRORS as e:
        raise StorageError(f"{operation}: {e}") from e
