"""Async SQLAlchemy engine and declarative bases.

Provides:
- CrmBase: Declarative base for the tables this service owns and migrates
- PlatformBase: Declarative base for the hosting platform's tables (read-mostly,
  created and migrated by the platform, never by init_db)
- get_session(): AsyncSession factory used by every repository
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from src.app.config import get_settings

# ── Module-level engine (lazy init) ────────────────────────────────────────

_engine: AsyncEngine | None = None


def get_engine() -> AsyncEngine:
    """Get or create the async engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.DATABASE_URL,
            pool_size=20,
            max_overflow=10,
            echo=False,
        )
    return _engine


# ── Declarative Bases ───────────────────────────────────────────────────────

crm_metadata = MetaData()
platform_metadata = MetaData()


class CrmBase(DeclarativeBase):
    """Base class for CRM-owned tables (contacts, deals, drafts, ...)."""

    metadata = crm_metadata


class PlatformBase(DeclarativeBase):
    """Base class for platform tables read by the admin console.

    Kept on separate metadata so create_all and Alembic autogenerate
    never touch tables owned by the main application.
    """

    metadata = platform_metadata


# ── Session Factory ─────────────────────────────────────────────────────────


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession bound to the shared engine."""
    engine = get_engine()
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session


# ── Database Initialization ─────────────────────────────────────────────────


async def init_db() -> None:
    """Create the CRM tables if they don't exist."""
    # Import registers the models on CrmBase.metadata
    import src.app.crm.models  # noqa: F401

    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(CrmBase.metadata.create_all)


async def close_db() -> None:
    """Dispose of the engine and close all connections."""
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None
