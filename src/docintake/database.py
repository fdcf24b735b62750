"""
Database Connection Management
==============================
Async SQLAlchemy engine, session factory, and FastAPI session dependency.
"""

from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import DatabaseConfig, get_config

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


def get_async_engine(config: Optional[DatabaseConfig] = None) -> AsyncEngine:
    """Get or create the async engine with connection pooling."""
    global _engine
    if _engine is None:
        db_config = config or get_config().database
        _engine = create_async_engine(
            db_config.async_dsn,
            echo=db_config.echo_sql,
            pool_size=db_config.pool_size,
            max_overflow=db_config.max_overflow,
            pool_pre_ping=True,
        )
        logger.info(f"Created database engine for {db_config.host}:{db_config.port}/{db_config.database}")
    return _engine


def get_async_session_factory() -> async_sessionmaker:
    """
    Get the async session factory.

    Sessions do not expire objects on commit, so services can keep using
    rows after committing a step.
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_async_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a request-scoped session."""
    factory = get_async_session_factory()
    async with factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def dispose_engine() -> None:
    """Dispose the engine and drop pooled connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Disposed database engine")
    _engine = None
    _session_factory = None
