"""
FastAPI dependencies
"""

from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import async_session_maker
from ingestion.run_guard import SingleFlightGuard, run_guard


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


def get_guard(request: Request) -> SingleFlightGuard:
    """Run guard shared with the scheduler"""
    return getattr(request.app.state, "run_guard", run_guard)
