"""FastAPI dependency helpers."""
from __future__ import annotations

from typing import AsyncIterator

import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.planner_service import PlannerService
from ..persistence.db import get_session_factory

logger = structlog.get_logger(__name__)


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """One session per request; committed on success, rolled back on any error."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.warning("db.rollback")
            await session.rollback()
            raise


def get_planner_service(session: AsyncSession = Depends(get_db_session)) -> PlannerService:
    return PlannerService(session)


__all__ = ["get_db_session", "get_planner_service"]
