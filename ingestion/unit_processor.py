"""
Per-unit callback: extract, write through the dedup loader, record the outcome
"""

from typing import Optional

from core.exceptions import PipelineException, UnitProcessingError
from ingestion.base import BatchExtractor
from ingestion.loaders.dedup_loader import DedupLoader
from ingestion.outcome_ledger import UnitOutcomeLedger
from models.base import ExtractionStatus
from schemas.run import UnitResult
from schemas.work_unit import WorkUnit
import logging

logger = logging.getLogger(__name__)


class ExtractionUnitProcessor:
    """
    Glue between the coordinator and the domain adapter.

    Every derived record is committed (or found already stored) before
    process() returns, so the coordinator may mark the unit completed as
    soon as it gets the result back.

    Outcome mapping:
    - Extractor raised: FAILED, nothing written
    - Any record write errored: FAILED (the rest of the unit is still written)
    - Otherwise: the extractor's status (SUCCESS or PARTIAL, or FAILED)
    """

    def __init__(
        self,
        extractor: BatchExtractor,
        loader: DedupLoader,
        owner_id: str,
        ledger: Optional[UnitOutcomeLedger] = None
    ):
        self.extractor = extractor
        self.loader = loader
        self.owner_id = owner_id
        self.ledger = ledger if ledger is not None else UnitOutcomeLedger(loader.db)

    async def __call__(self, unit: WorkUnit) -> UnitResult:
        return await self.process(unit)

    async def process(self, unit: WorkUnit) -> UnitResult:
        try:
            extraction = self.extractor.extract(unit)
        except Exception as e:
            error = UnitProcessingError(
                "Extractor failed",
                context={"owner_id": self.owner_id, "unit_id": unit.unit_id, "extractor": self.extractor.name},
                original_exception=e
            )
            logger.error(
                f"Extraction failed for unit {unit.unit_id}: {e}",
                extra={"error_context": error.to_dict()}
            )
            result = UnitResult.failed(unit.unit_id, detail=f"{type(e).__name__}: {e}")
            await self._record(result)
            return result

        load = await self.loader.write_records(extraction.records)

        status = extraction.status
        detail = extraction.detail
        if load.errored:
            status = ExtractionStatus.FAILED
            write_detail = f"{load.errored} record writes failed: {load.errors[0]}"
            detail = f"{detail}; {write_detail}" if detail else write_detail

        result = UnitResult(
            unit_id=unit.unit_id,
            status=status,
            records_expected=len(extraction.records),
            records_added=load.added,
            records_skipped=load.skipped,
            detail=detail,
        )
        await self._record(result)

        logger.debug(
            f"Unit {unit.unit_id}: {status.value}, "
            f"added={load.added}, skipped={load.skipped}, errored={load.errored}"
        )
        return result

    async def _record(self, result: UnitResult) -> None:
        try:
            await self.ledger.record(
                owner_id=self.owner_id,
                unit_id=result.unit_id,
                status=result.status,
                expected_records=result.records_expected,
                detail=result.detail,
            )
        except PipelineException as e:
            # Records are already committed; only reconciliation loses sight of the unit
            logger.warning(
                f"Outcome ledger write failed for unit {result.unit_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
