"""
Audit trail of coordinator invocations (extraction_runs table)
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import PipelineException, wrap_database_error
from models.base import ExtractionStatus, RunStatus
from models.extraction_run import ExtractionRun
from schemas.run import RunSummary
import logging

logger = logging.getLogger(__name__)


class SQLRunRecorder:
    """
    Record one ExtractionRun row per invocation.

    Recording is best effort: a failed audit write is logged and never
    changes the outcome of the run itself.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def start(self, owner_id: str, total_units: int, resumed: bool) -> Optional[int]:
        """Create a RUNNING row; returns its id, or None if it could not be written"""
        run = ExtractionRun(
            owner_id=owner_id,
            status=RunStatus.RUNNING,
            resumed=resumed,
            total_units=total_units,
            started_at=datetime.utcnow(),
        )
        try:
            self.db.add(run)
            await self.db.commit()
            await self.db.refresh(run)
        except Exception as e:
            await self._log_failure(e, "start", owner_id)
            return None

        logger.info(f"Run {run.run_id} started for {owner_id} (resumed={resumed})")
        return run.id

    async def finish(self, record_id: Optional[int], summary: RunSummary) -> None:
        """Close the row with the run summary"""
        if record_id is None:
            return
        try:
            run = await self.db.get(ExtractionRun, record_id)
            if run is None:
                return
            run.status = summary.status
            run.completed_at = datetime.utcnow()
            run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
            run.total_units = summary.total_units
            run.units_processed = summary.processed
            run.units_skipped = summary.skipped
            run.units_failed = summary.failed
            run.records_added = summary.derived_count
            run.records_skipped = summary.records_skipped
            failed_units = [r.unit_id for r in summary.unit_results if r.status == ExtractionStatus.FAILED]
            if failed_units:
                run.error_message = f"{len(failed_units)} units failed"
                run.error_details = {"failed_units": failed_units}
            await self.db.commit()
        except Exception as e:
            await self._log_failure(e, "finish", summary.owner_id)

    async def fail(self, record_id: Optional[int], error: Exception) -> None:
        """Mark the row FAILED when the run aborted with an error"""
        if record_id is None:
            return
        try:
            run = await self.db.get(ExtractionRun, record_id)
            if run is None:
                return
            run.status = RunStatus.FAILED
            run.completed_at = datetime.utcnow()
            run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
            run.error_message = error.message if isinstance(error, PipelineException) else str(error)
            run.error_details = {"error_type": type(error).__name__}
            await self.db.commit()
        except Exception as e:
            await self._log_failure(e, "fail", None)

    async def recent(self, limit: int = 50, owner_id: Optional[str] = None) -> List[ExtractionRun]:
        stmt = select(ExtractionRun).order_by(ExtractionRun.started_at.desc(), ExtractionRun.id.desc())
        if owner_id:
            stmt = stmt.where(ExtractionRun.owner_id == owner_id)
        result = await self.db.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def _log_failure(self, exc: Exception, operation: str, owner_id: Optional[str]) -> None:
        await self.db.rollback()
        error = wrap_database_error(
            exc,
            "Failed to record extraction run",
            context={"owner_id": owner_id, "operation": operation, "table_name": "extraction_runs"}
        )
        logger.warning(error.message, extra={"error_context": error.to_dict()})
