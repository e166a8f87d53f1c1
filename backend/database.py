"""Database engine and session management."""

import logging
from collections.abc import AsyncGenerator, Iterator
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from backend.config import settings
from backend.errors import StorageUnavailable

logger = logging.getLogger(__name__)


def enforce_foreign_keys(async_engine: AsyncEngine) -> None:
    """Turn on foreign key enforcement for every new SQLite connection.

    SQLite ignores ON DELETE CASCADE unless the pragma is set per connection.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(settings.database_url, echo=settings.debug)
enforce_foreign_keys(engine)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for FastAPI dependency injection."""
    async with async_session() as session:
        yield session


STORAGE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


@contextmanager
def storage_errors(action: str) -> Iterator[None]:
    """Re-raise connectivity failures as StorageUnavailable.

    Nothing is retried; the caller decides whether to repeat the request.
    """
    try:
        yield
    except STORAGE_ERRORS as exc:
        logger.error("Storage unavailable during %s: %s", action, exc)
        raise StorageUnavailable(f"Storage unavailable during {action}") from exc
