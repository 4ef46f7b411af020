"""
Database module for storypipe.

Provides async SQLAlchemy engine with SQLite WAL mode,
session management, and schema initialization.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from storypipe.db.engine import (
    async_session,
    create_engine,
    create_session_factory,
    engine,
    shutdown,
)
from storypipe.db.models import Base, StoryboardRecord

logger = logging.getLogger(__name__)


async def init_database(bind: Optional[AsyncEngine] = None):
    """Initialize database schema on first run."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug(f"Database schema ready ({bind.url})")


__all__ = [
    "Base",
    "StoryboardRecord",
    "engine",
    "async_session",
    "create_engine",
    "create_session_factory",
    "shutdown",
    "init_database",
]
