"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL, plus the explicit
transaction scope used by every ledger write.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm.exc import StaleDataError
from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import ConcurrencyConflictError, PersistenceFailureError

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Explicit transaction scope for multi-step writes.

    Commits when the block exits cleanly and rolls back on any exception,
    so a failed operation never leaves a half-written record behind.

    Raises:
        ConcurrencyConflictError: a versioned row changed underneath us
        PersistenceFailureError: the store rejected or failed the write
    """
    try:
        yield db
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        raise ConcurrencyConflictError(str(exc)) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Persistence failure, transaction rolled back: %s", exc)
        raise PersistenceFailureError() from exc
    except BaseException:
        await db.rollback()
        raise
