"""
Database Configuration
Async SQLAlchemy setup with session management.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from avdesign.config import get_settings
from avdesign.errors import PartialApplyFailure


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Create async engine
settings = get_settings()
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    # SQLite specific settings
    connect_args={"check_same_thread": False} if settings.is_sqlite else {},
)


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """Have SQLite enforce FOREIGN KEY clauses (cascades, SET NULL) on every connection."""

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


if settings.is_sqlite:
    enable_sqlite_foreign_keys(engine)

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Initialize database tables."""
    # Register every mapped table before create_all
    import avdesign.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get async database session with automatic cleanup.

    Everything written through the session (template row, version row,
    pointer update, applied entities) commits together or not at all. A
    PartialApplyFailure is the exception: it is raised only once the apply
    gave up on undoing its writes, and what it lists is committed.
    """
    session = async_session_factory()
    try:
        yield session
        await session.commit()
    except PartialApplyFailure:
        # The failure reports these entities as left behind, so they must persist
        await session.commit()
        raise
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for FastAPI route injection."""
    async with get_session() as session:
        yield session
