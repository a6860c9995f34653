"""
Database configuration - SQLAlchemy 2.0 Async
Project: BuildLedger (contractor billing)

Defines the engine, the session factory, the FastAPI session dependency
and the development table reset.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from buildledger.core.config import settings
from buildledger.models import Base

logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Async engine
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,  # log SQL in debug mode
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency.

    Opens one database session per request and closes it when the
    request is done. Any exception rolls the session back.

    Yields:
        AsyncSession: Async database session
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Check that the database is reachable.

    Runs a trivial query at startup so a bad DATABASE_URL fails fast.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection established")
    except Exception as e:
        logger.error("Database connection error: %s", e)
        raise


async def reset_tables(drop: bool = True) -> list[str]:
    """
    Recreate the document tables from the ORM metadata.

    Development helper: every stored invoice and quote is lost when
    `drop` is True. Production schemas are not managed here.

    Args:
        drop: Drop the existing tables first

    Returns:
        list[str]: Names of the tables (re)created
    """
    if settings.is_production:
        raise RuntimeError("Refusing to reset tables in production")

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            logger.warning("Dropped tables: %s", ", ".join(Base.metadata.tables))
        await conn.run_sync(Base.metadata.create_all)

    tables = sorted(Base.metadata.tables)
    logger.info("Created tables: %s", ", ".join(tables))
    return tables


async def close_db() -> None:
    """Dispose the connection pool on shutdown."""
    await engine.dispose()
    logger.info("Database connections closed")
