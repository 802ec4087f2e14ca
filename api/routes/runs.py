"""
Extraction run endpoints: trigger, inspect and clear runs
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_guard
from core.exceptions import (
    FatalConfigurationError,
    PipelineException,
    RunInProgressError,
    TransientStoreError,
)
from ingestion.checkpoint_store import SQLCheckpointStore
from ingestion.pipeline import reconcile_owner, run_extraction
from ingestion.run_guard import SingleFlightGuard
from ingestion.run_recorder import SQLRunRecorder
from schemas.api import CheckpointInfo, ExtractionRunItem, RunHistoryResponse, RunRequest
from schemas.run import ReconciliationReport, RunSummary
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/runs", tags=["Runs"])


def _http_error(e: PipelineException) -> HTTPException:
    """Map pipeline errors onto HTTP status codes"""
    if isinstance(e, RunInProgressError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    if isinstance(e, FatalConfigurationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    if isinstance(e, TransientStoreError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)


@router.post("/{owner_id}", response_model=RunSummary)
async def start_run(
    owner_id: str,
    request: Request,
    body: Optional[RunRequest] = Body(None),
    db: AsyncSession = Depends(get_db),
    guard: SingleFlightGuard = Depends(get_guard)
):
    """
    Run (or resume) extraction for an owner and return its summary.

    The request blocks until the run finishes; a second request for the
    same owner while it runs gets 409.
    """
    request_id = getattr(request.state, "request_id", "-")
    interval = body.checkpoint_interval if body else None
    logger.info(f"[{request_id}] POST /runs/{owner_id} - checkpoint_interval={interval}")

    try:
        return await run_extraction(db, owner_id, checkpoint_interval=interval, guard=guard)
    except PipelineException as e:
        logger.error(
            f"[{request_id}] Run for {owner_id} failed: {e.message}",
            extra={"error_context": e.to_dict()}
        )
        raise _http_error(e)


@router.post("/{owner_id}/reconcile", response_model=ReconciliationReport)
async def reconcile_run(
    owner_id: str,
    db: AsyncSession = Depends(get_db),
    guard: SingleFlightGuard = Depends(get_guard)
):
    """Reprocess the owner's failed or short units"""
    try:
        return await reconcile_owner(db, owner_id, guard=guard)
    except PipelineException as e:
        raise _http_error(e)


@router.get("/{owner_id}/checkpoint", response_model=CheckpointInfo)
async def get_checkpoint(owner_id: str, db: AsyncSession = Depends(get_db)):
    """Live checkpoint of an unfinished run"""
    try:
        snapshot = await SQLCheckpointStore(db).load(owner_id)
    except PipelineException as e:
        raise _http_error(e)

    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No checkpoint for owner")
    return CheckpointInfo.from_snapshot(snapshot)


@router.delete("/{owner_id}/checkpoint", status_code=status.HTTP_204_NO_CONTENT)
async def clear_checkpoint(
    owner_id: str,
    db: AsyncSession = Depends(get_db),
    guard: SingleFlightGuard = Depends(get_guard)
):
    """Discard an owner's checkpoint so the next run starts from scratch"""
    if guard.is_running(owner_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Run in progress for owner")

    try:
        await SQLCheckpointStore(db).clear(owner_id)
    except PipelineException as e:
        raise _http_error(e)

    logger.info(f"Checkpoint cleared for {owner_id} via API")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("", response_model=RunHistoryResponse)
async def list_runs(
    owner_id: Optional[str] = Query(None, description="Filter by owner"),
    limit: int = Query(50, ge=1, le=500, description="Maximum runs returned"),
    db: AsyncSession = Depends(get_db)
):
    """Recent runs, newest first"""
    runs = await SQLRunRecorder(db).recent(limit=limit, owner_id=owner_id)
    items = [ExtractionRunItem.model_validate(run) for run in runs]
    return RunHistoryResponse(runs=items, total=len(items))
