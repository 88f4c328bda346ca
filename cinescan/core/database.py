"""Async database engine and session management.

Provides an async SQLAlchemy engine, session factory, and simple helpers for
initializing the schema (for dev) and checking connectivity. This module does
not run on import; call start_db() from the app lifespan or a script.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator, Optional

from fastapi import HTTPException, status
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from cinescan.core import config
from cinescan.models.database import Base

logger = logging.getLogger(__name__)

# Async engine/session globals; initialize on app startup to bind to the running loop
engine: Optional[AsyncEngine] = None
SessionLocal: Optional[async_sessionmaker] = None
_DB_ENABLED = False


def is_db_enabled() -> bool:
    """Return True if the async DB is usable in this process."""
    return bool(_DB_ENABLED and engine is not None and SessionLocal is not None)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency-style session generator."""
    if not is_db_enabled():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Database unavailable")
    async with SessionLocal() as session:  # type: ignore[misc]
        yield session


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Session context for code running outside a request (indexer, watcher, scripts).

    Commits on success and rolls back on error.
    """
    if not is_db_enabled():
        raise RuntimeError("Database disabled")
    async with SessionLocal() as session:  # type: ignore[misc]
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def _engine_kwargs_for(url: str) -> dict:
    """Construct engine kwargs appropriate for a given database URL."""
    engine_kwargs = {
        "echo": config.DB_ECHO,
        "pool_pre_ping": config.DB_POOL_PRE_PING,
    }
    if str(url).startswith("sqlite"):
        engine_kwargs["poolclass"] = NullPool
    else:
        engine_kwargs.update({
            "pool_size": config.DB_POOL_SIZE,
            "max_overflow": config.DB_MAX_OVERFLOW,
            "pool_timeout": config.DB_POOL_TIMEOUT,
            "pool_recycle": config.DB_POOL_RECYCLE,
        })
    return engine_kwargs


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    # ON DELETE CASCADE is only honoured with this pragma on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


async def init_db() -> None:
    """Initialize database schema in dev environments using metadata.create_all.

    For production, prefer Alembic migrations instead of create_all.
    """
    if not is_db_enabled():
        logger.warning("init_db called but database is disabled")
        return
    async with engine.begin() as conn:  # type: ignore[union-attr]
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured via metadata.create_all")


async def check_database() -> bool:
    """Perform a simple health check against the database connection."""
    if not is_db_enabled():
        return False
    try:
        async with engine.connect() as conn:  # type: ignore[union-attr]
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as exc:
        logger.warning("DB health check failed: %s", exc)
        return False


async def start_db() -> None:
    """Initialize the async engine/sessionmaker within the current event loop.

    Safe to call multiple times; a no-op if already started.
    """
    global engine, SessionLocal, _DB_ENABLED
    if not config.get_enable_db():
        logger.info("Database disabled by configuration")
        _DB_ENABLED = False
        return
    if engine is not None and SessionLocal is not None:
        _DB_ENABLED = True
        return
    url = config.get_database_url()
    engine = create_async_engine(url, **_engine_kwargs_for(url))
    if url.startswith("sqlite"):
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    _DB_ENABLED = True


async def shutdown_db() -> None:
    """Dispose the async engine within the running event loop.

    This ensures connections are closed on the correct asyncio loop, avoiding
    asyncpg cross-loop termination errors during application shutdown.
    """
    global engine, SessionLocal, _DB_ENABLED
    try:
        if engine is not None:
            await engine.dispose()
    except Exception as exc:
        logger.warning("Error disposing DB engine: %s", exc)
    finally:
        engine = None
        SessionLocal = None
        _DB_ENABLED = False
