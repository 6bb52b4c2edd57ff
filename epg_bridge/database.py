"""
Provider storage

SQLite (through aiosqlite) holds the registered upstream providers and the
streams selected from each catalog. EPG data never touches the database; it
lives in the in-memory caches.
"""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from epg_bridge.config import settings
from epg_bridge.models import Base

logger = logging.getLogger(__name__)

# Set by init_db() during startup, cleared by close_db()
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",  # selections cascade with their provider
)


def _apply_pragmas(dbapi_conn, _) -> None:
    cursor = dbapi_conn.cursor()
    for pragma in SQLITE_PRAGMAS:
        cursor.execute(pragma)
    cursor.close()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory (initialized in init_db)"""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() during startup.")
    return _session_factory


async def get_db() -> AsyncIterator[AsyncSession]:
    """Read-only session dependency for request handlers"""
    async with get_session_factory()() as session:
        yield session


async def init_db(database_path: str | None = None) -> None:
    """
    Open the provider database and create missing tables.

    Calling it again (tests do) disposes of the previous engine first.

    Args:
        database_path: SQLite file to use (defaults to settings.database_path)
    """
    global _engine, _session_factory

    if _engine is not None:
        await close_db()

    database_path = database_path or settings.database_path
    logger.info(f"Opening provider database at {database_path}")

    _engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        pool_pre_ping=True,
        connect_args={"timeout": 30, "check_same_thread": False},
    )
    event.listen(_engine.sync_engine, "connect", _apply_pragmas)

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    _session_factory = async_sessionmaker(_engine, expire_on_commit=False, autoflush=False)
    logger.info("Provider database ready")


async def close_db() -> None:
    """Dispose of the engine on shutdown"""
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("Provider database closed")


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session wrapped in a transaction: committed on exit, rolled back on error"""
    async with get_session_factory()() as session:
        async with session.begin():
            yield session
