"""
Database connection management.
Handles async SQLAlchemy engine and session creation.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from jobqueue.config import get_settings
from jobqueue.db.models import Base

logger = logging.getLogger(__name__)

# Global engine instance
_engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _create_engine(database_url: str) -> AsyncEngine:
    settings = get_settings()
    options: dict = {
        "echo": settings.log_level == "DEBUG",
        "pool_pre_ping": True,
    }
    # SQLite pools do not accept sizing arguments
    if make_url(database_url).get_backend_name() != "sqlite":
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    return create_async_engine(database_url, **options)


def get_engine() -> AsyncEngine:
    """
    Get or create the async database engine.

    Returns:
        AsyncEngine: The SQLAlchemy async engine instance.
    """
    global _engine
    if _engine is None:
        _engine = _create_engine(get_settings().database_url)
    return _engine


async def init_db(database_url: str | None = None) -> None:
    """
    Initialize the database connection and session factory.
    Should be called on application startup.

    Args:
        database_url: Optional URL overriding the configured one.
    """
    global _engine, AsyncSessionLocal
    if database_url is not None:
        if _engine is not None:
            await _engine.dispose()
        _engine = _create_engine(database_url)

    engine = get_engine()
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    if get_settings().database_auto_create:
        await create_schema()

    logger.info(
        "Database connection initialized",
        extra={"backend": engine.dialect.name},
    )


async def create_schema() -> None:
    """
    Create the job table if it does not exist.
    Production deployments use the Alembic migration instead.
    """
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """
    Close the database connection.
    Should be called on application shutdown.
    """
    global _engine, AsyncSessionLocal
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        AsyncSessionLocal = None
        logger.info("Database connection closed")


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """
    Dependency for getting async database sessions.

    Yields:
        AsyncSession: An async database session.

    Raises:
        RuntimeError: If the database is not initialized.
    """
    if AsyncSessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
