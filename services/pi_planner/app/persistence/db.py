"""Async engine and session factory for stored planning runs."""
from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..config import get_settings

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine() -> AsyncEngine:
    """Create the engine on first use from ``storage.database_url``."""
    global _engine, _session_factory
    if _engine is None:
        url = get_settings().storage.database_url
        _engine = create_async_engine(url, future=True, echo=False)
        if _engine.dialect.name == "sqlite":
            # plan items, iterations and edges reference plan_run rows
            event.listen(_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    get_engine()
    assert _session_factory is not None
    return _session_factory


async def init_db() -> None:
    """Create the plan tables if they are missing."""
    from .models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close pooled connections and forget the engine so the next call rebuilds it."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


__all__ = ["get_engine", "get_session_factory", "init_db", "dispose_engine"]
