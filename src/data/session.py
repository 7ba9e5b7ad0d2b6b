"""
Async session management for SQLAlchemy.

Provides:
- Async engine and session factory
- FastAPI dependency for injecting sessions
- Lifecycle management (init_db, close_db)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.data.config import get_settings
from src.data.models import Base

logger = logging.getLogger(__name__)

# Global engine and session factory (initialized once)
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the global async engine.

    Raises:
        RuntimeError: If engine not initialized (call init_db first)
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_db() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the global async session factory.

    Raises:
        RuntimeError: If session factory not initialized
    """
    if _async_session_factory is None:
        raise RuntimeError("Session factory not initialized. Call init_db() first.")
    return _async_session_factory


def _engine_kwargs(url: str) -> Dict[str, Any]:
    settings = get_settings()
    if not url.startswith("sqlite"):
        return settings.get_engine_kwargs()
    kwargs: Dict[str, Any] = {"echo": settings.db_echo}
    # In-memory SQLite lives inside a single connection
    if url.rstrip("/") in {"sqlite+aiosqlite:", "sqlite+aiosqlite:///:memory:"}:
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


async def init_db(database_url: Optional[str] = None) -> None:
    """
    Initialize the database engine and session factory.

    This should be called once at application startup (e.g., in FastAPI lifespan).

    Args:
        database_url: Optional override of DATABASE_URL (used by tests)
    """
    global _engine, _async_session_factory

    url = database_url or get_settings().database_url
    logger.info(f"Initializing database connection: {url.split('@')[-1]}")

    _engine = create_async_engine(url, **_engine_kwargs(url))

    _async_session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Don't expire objects after commit
        autoflush=False,  # Manual control over when to flush
    )

    logger.info("Database initialized successfully")


async def close_db() -> None:
    """
    Close the database engine and cleanup resources.

    This should be called at application shutdown (e.g., in FastAPI lifespan).
    """
    global _engine, _async_session_factory

    if _engine is not None:
        logger.info("Closing database connection")
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")


async def create_tables() -> None:
    """
    Create all tables defined in Base.metadata.

    WARNING: This is for development and tests. In production, use Alembic migrations.
    """
    engine = get_engine()
    logger.warning("Creating tables directly (dev mode) - use Alembic in production!")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Tables created successfully")


async def drop_tables() -> None:
    """
    Drop all tables defined in Base.metadata.

    WARNING: This is destructive and for testing only!
    """
    engine = get_engine()
    logger.warning("Dropping all tables (testing mode)")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    logger.info("Tables dropped successfully")


# ---- FastAPI Dependency ----


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for read-only request sessions.

    Mutations go through the command dispatcher, which owns its own
    transaction; this session is committed on success and rolled back
    on error like any other.
    """
    factory = get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# ---- Context Manager (Alternative Usage) ----


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager for database sessions.

    Usage outside FastAPI:
        async with session_scope() as session:
            game = await session.get(Game, game_id)
            ...

    Auto-commits on success, rolls back on exception.
    """
    factory = get_session_factory()

    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
