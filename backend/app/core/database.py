"""
Database layer — async SQLAlchemy 2.0 (asyncpg in production).

Provides:
    • Lazily-built async engine and session factory
    • Declarative base for ORM rows (notification records, user contacts)
    • Table creation / disposal hooks for the application lifespan

The engine is only created when a database-backed store is configured,
so the default in-memory setup never imports a driver.

Usage:
    from backend.app.core.database import get_session_factory

    session_factory = get_session_factory()
    async with session_factory() as session:
        ...
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ── ORM Base ──
class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_engine_for(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        echo=echo,
    )


def get_engine() -> AsyncEngine:
    """Get or create the process-wide engine for ``settings.DATABASE_URL``."""
    global _engine
    if _engine is None:
        _engine = create_engine_for(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory bound to :func:`get_engine`."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


# ── Lifecycle ──
async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create all tables (dev/test only — use migrations in production)."""
    # Registers the ORM rows on Base.metadata
    from backend.app.notifications import contacts, store  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def close_db() -> None:
    """Dispose engine connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database connections closed")
    _engine = None
    _session_factory = None
