"""
Database configuration with SQLAlchemy async support.
Uses SQLite for development, any async SQLAlchemy URL for production.
"""

import os
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import DATABASE_URL


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def utc_isoformat(value: Optional[datetime]) -> Optional[str]:
    """
    ISO 8601 with an explicit UTC offset.

    SQLite hands DateTime(timezone=True) columns back naive; those values
    were stored as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def build_engine(url: str = DATABASE_URL, **engine_options) -> AsyncEngine:
    """Create an async engine; SQLite connections get foreign keys enabled."""
    engine = create_async_engine(
        url,
        echo=os.getenv("SQL_DEBUG", "false").lower() == "true",
        future=True,
        **engine_options,
    )

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine()
async_session_maker = build_session_maker(engine)


async def get_db() -> AsyncSession:
    """Dependency for getting database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine):
    """Initialize the database tables."""
    # Register every model on the metadata before create_all
    import app.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(bind: AsyncEngine = engine):
    """Close database connections."""
    await bind.dispose()
