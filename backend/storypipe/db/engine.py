"""
Database engine configuration for storypipe.

Provides async SQLAlchemy engine with SQLite WAL mode,
crash-safe PRAGMA configuration, and session management.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from storypipe.config import settings


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """
    Configure SQLite PRAGMA settings for crash safety and performance.

    - WAL mode: checkpoint writes do not block status readers
    - FULL synchronous: a committed checkpoint survives a crash
    - Busy timeout: Wait up to 5s for locks
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def create_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, registering the SQLite pragmas when applicable."""
    new_engine = create_async_engine(database_url, echo=False)
    if new_engine.dialect.name == "sqlite":
        # Use sync_engine for aiosqlite compatibility
        event.listens_for(new_engine.sync_engine, "connect")(configure_sqlite_pragmas)
    return new_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False prevents greenlet errors on attribute access after commit
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


engine = create_engine(settings.storage.database_url)
async_session = create_session_factory(engine)


async def shutdown():
    """Dispose of engine and close all connections."""
    await engine.dispose()
