"""
Reference data import endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from core.exceptions import PipelineException, TransientStoreError
from ingestion.pipeline import import_symptom_rows
from schemas.api import ImportResponse, SymptomImportRequest
from schemas.run import WriteOutcome
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/reference", tags=["Reference"])


@router.post("/symptoms", response_model=ImportResponse)
async def import_symptoms(payload: SymptomImportRequest, db: AsyncSession = Depends(get_db)):
    """
    Import symptom-library rows.

    Rows whose (symptom_id, symptom_segment, diagnosis, diagnostic_category)
    is already stored are skipped; invalid rows are reported and the rest
    of the batch is still imported.
    """
    try:
        result = await import_symptom_rows(db, payload.rows)
    except PipelineException as e:
        code = (
            status.HTTP_503_SERVICE_UNAVAILABLE
            if isinstance(e, TransientStoreError)
            else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        raise HTTPException(status_code=code, detail=e.message)

    errors = [
        {"row": outcome.index, "error": outcome.error}
        for outcome in result.outcomes
        if outcome.outcome == WriteOutcome.ERRORED
    ]
    return ImportResponse(
        added=result.added,
        skipped=result.skipped,
        errored=result.errored,
        errors=errors,
    )
