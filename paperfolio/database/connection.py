"""
Paperfolio Database Connection Management
SQLAlchemy 2.0 async database engine and session management.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from paperfolio.config.settings import settings

# Configure logging
logger = logging.getLogger(__name__)

# Base class for all models
Base = declarative_base()

# Global engine and session factory (initialized on first use)
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine

    if _engine is None:
        options = {"echo": settings.database.echo}
        if not settings.database.is_sqlite:
            options.update(
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                pool_timeout=settings.database.pool_timeout,
                pool_recycle=settings.database.pool_recycle,
                pool_pre_ping=True,
            )
        _engine = create_async_engine(settings.database.async_url, **options)

        @event.listens_for(_engine.sync_engine, "connect")
        def on_connect(dbapi_conn, connection_record):
            logger.debug("New database connection established")

        logger.info("Database engine initialized")

    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the async session maker.

    Returns:
        async_sessionmaker: The session maker configured with the engine.
    """
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Session maker initialized")

    return _async_session_maker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database sessions in FastAPI endpoints.

    The whole request runs in one transaction: it commits when the endpoint
    returns and rolls back when it raises, so a rejected trade leaves no
    partial writes behind.

    Yields:
        AsyncSession: A database session that is automatically closed.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.debug(f"Database session rolled back: {type(e).__name__}: {e}")
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of a request.

    Example:
        async with get_db_context() as db:
            await PasscodeService(db).seed(raw)

    Yields:
        AsyncSession: A database session.
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database context error: {e}")
            raise


async def init_database() -> None:
    """
    Initialize the database by creating all tables.

    This should be called during application startup.
    """
    engine = get_engine()

    try:
        # Import all models to ensure they're registered with Base
        from paperfolio.database import models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_database() -> None:
    """
    Close the database engine and cleanup resources.

    This should be called during application shutdown.
    """
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None
        logger.info("Database engine disposed")


async def check_database_health() -> dict:
    """
    Check database connectivity and return health status.

    Returns:
        dict: Health check results with status and details.
    """
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            start_time = time.perf_counter()
            await conn.execute(text("SELECT 1"))
            latency_ms = (time.perf_counter() - start_time) * 1000

            return {
                "status": "healthy",
                "connected": True,
                "latency_ms": round(latency_ms, 2),
            }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e),
        }


__all__ = [
    "Base",
    "get_engine",
    "get_session_maker",
    "get_db_session",
    "get_db_context",
    "init_database",
    "close_database",
    "check_database_health",
]
