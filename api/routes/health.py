"""
Health check endpoint with database and checkpoint status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db, get_guard
from core.config import settings
from ingestion.checkpoint_store import SQLCheckpointStore
from ingestion.run_guard import SingleFlightGuard
from schemas.api import HealthCheckResponse, CheckpointInfo
from datetime import datetime, timedelta
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    guard: SingleFlightGuard = Depends(get_guard)
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Live checkpoints (unfinished runs), flagged stale when they stopped
      advancing and no run holds the owner
    - Owners with a run in progress in this process
    """

    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    active_checkpoints = []
    stale_count = 0

    if db_connected:
        cutoff = datetime.utcnow() - timedelta(minutes=settings.STALE_CHECKPOINT_MINUTES)
        try:
            for snapshot in await SQLCheckpointStore(db).list_all():
                stale = snapshot.last_checkpoint_time < cutoff and not guard.is_running(snapshot.owner_id)
                if stale:
                    stale_count += 1
                active_checkpoints.append(CheckpointInfo.from_snapshot(snapshot, stale=stale))
        except Exception as e:
            logger.error(f"Failed to fetch checkpoints: {str(e)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        active_checkpoints=active_checkpoints,
        stale_checkpoints=stale_count,
        runs_in_progress=guard.active,
    )
