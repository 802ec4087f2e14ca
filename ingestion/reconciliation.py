"""
Reconciliation pass: reprocess units that failed or came up short
"""

from typing import List

from core.exceptions import PipelineException
from ingestion.base import WorkUnitSource
from ingestion.outcome_ledger import UnitOutcomeLedger
from ingestion.unit_processor import ExtractionUnitProcessor
from models.base import ExtractionStatus
from schemas.run import ReconciliationReport
import logging

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Out-of-core repair for finished runs.

    Candidates come from the outcome ledger: units whose last outcome was
    FAILED, or whose stored derived records number fewer than the extractor
    produced. They go through the same unit processor, so records that did
    make it are absorbed as duplicates.
    """

    def __init__(
        self,
        ledger: UnitOutcomeLedger,
        source: WorkUnitSource,
        processor: ExtractionUnitProcessor
    ):
        self.ledger = ledger
        self.source = source
        self.processor = processor

    async def find_candidates(self, owner_id: str) -> List[str]:
        outcomes = await self.ledger.find_incomplete(owner_id)
        return [outcome.unit_id for outcome in outcomes]

    async def reconcile(self, owner_id: str) -> ReconciliationReport:
        candidates = await self.find_candidates(owner_id)
        report = ReconciliationReport(owner_id=owner_id, checked=len(candidates))

        if not candidates:
            logger.info(f"Reconciliation for {owner_id}: nothing to do")
            return report

        logger.info(f"Reconciliation for {owner_id}: {len(candidates)} candidate units")

        for unit_id in candidates:
            try:
                unit = await self.source.get_unit(unit_id)
            except KeyError:
                logger.warning(f"Unit {unit_id} is no longer in the source for {owner_id}")
                report.still_failing.append(unit_id)
                continue

            report.reprocessed += 1
            try:
                result = await self.processor.process(unit)
            except PipelineException as e:
                logger.error(
                    f"Reprocessing unit {unit_id} failed: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                report.still_failing.append(unit_id)
                continue

            if result.status == ExtractionStatus.FAILED:
                report.still_failing.append(unit_id)
            else:
                report.recovered += 1

        logger.info(
            f"Reconciliation for {owner_id}: reprocessed={report.reprocessed}, "
            f"recovered={report.recovered}, still_failing={len(report.still_failing)}"
        )
        return report
