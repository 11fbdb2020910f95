"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workorder_payroll.config import Settings, get_settings
from workorder_payroll.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create async database engine."""
    settings = settings or get_settings()
    if settings.database_url.startswith("sqlite"):
        # SQLite serialises writers; give waiting writers the same bound as our locks.
        return create_async_engine(
            settings.database_url,
            echo=False,
            connect_args={"timeout": max(settings.lock_timeout_seconds * 2, 5.0)},
        )
    return create_async_engine(
        settings.database_url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Build the session factory used by every service."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(
    settings: Settings | None = None,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Initialize database engine and session factory."""
    global _engine, _session_factory
    if _engine is None or _session_factory is None:
        _engine = get_engine(settings)
        _session_factory = create_session_factory(_engine)
    return _engine, _session_factory


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables for local runs and tests."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def apply_lock_timeout(session: AsyncSession, seconds: float) -> None:
    """Bound row-lock waits for the current transaction.

    Only PostgreSQL honours ``lock_timeout``; SQLite relies on its busy timeout.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    milliseconds = int(seconds * 1000)
    await session.execute(text(f"SET LOCAL lock_timeout = {milliseconds}"))
