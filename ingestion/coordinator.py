# ============================================================================
# File: ingestion/coordinator.py
# Description: Resumable run coordinator with periodic checkpoints
# ============================================================================
"""
Run Coordinator - drives one owner's work units to completion.

This module provides resumable run orchestration with:
- Input validation before any processing
- Resume from the last durable checkpoint (completed units are skipped)
- Per-unit failure isolation (a failed unit never aborts the run)
- Periodic checkpoint saves that never claim uncommitted progress
- A RunSummary as the sole success/failure signal
"""

import inspect
import time
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import List, Optional, Set, Tuple, Union

from core.config import settings
from core.exceptions import FatalConfigurationError, PipelineException, UnitProcessingError
from core.logging import log_context
from ingestion.base import ProcessUnit, WorkUnitSource
from ingestion.checkpoint_store import CheckpointStore
from models.base import ExtractionStatus, RunStatus
from schemas.checkpoint import CheckpointSnapshot
from schemas.run import RunSummary, UnitDisposition, UnitResult
from schemas.work_unit import WorkUnit
import logging

logger = logging.getLogger(__name__)


WorkUnits = Union[WorkUnitSource, Iterable]


class RunCoordinator:
    """
    Sequential, resumable run over a deterministic sequence of work units.

    Responsibilities:
    - Validate owner, interval, callback and source
    - Load the owner's checkpoint and filter completed units
    - Invoke the per-unit callback in order (sync or async)
    - Save a checkpoint every `checkpoint_interval` completed units
    - Clear the checkpoint once every unit is done

    The callback must have committed a unit's writes before it returns;
    the unit only enters the completed set afterwards, and saves only
    happen between units.
    """

    def __init__(
        self,
        checkpoint_store: CheckpointStore,
        checkpoint_interval: Optional[int] = None,
        run_recorder=None
    ):
        self.store = checkpoint_store
        self.checkpoint_interval = checkpoint_interval
        self.run_recorder = run_recorder

    async def run(
        self,
        owner_id: str,
        work_units: WorkUnits,
        process_unit: ProcessUnit,
        checkpoint_interval: Optional[int] = None
    ) -> RunSummary:
        """
        Run (or resume) the owner's run to completion.

        Args:
            owner_id: Run owner; keys the checkpoint
            work_units: WorkUnitSource or iterable of WorkUnit, same order every call
            process_unit: Callback returning a UnitResult (sync or async)
            checkpoint_interval: Units between saves (defaults to CHECKPOINT_INTERVAL)

        Returns:
            RunSummary; processed, failed and derived_count are cumulative
            across resumes

        Raises:
            FatalConfigurationError: Invalid input, or a checkpoint written for
                other units; raised before any processing
            TransientStoreError / CheckpointError: Checkpoint load or clear failed
        """
        with log_context(owner_id=owner_id):
            return await self._run(owner_id, work_units, process_unit, checkpoint_interval)

    async def _run(
        self,
        owner_id: str,
        work_units: WorkUnits,
        process_unit: ProcessUnit,
        checkpoint_interval: Optional[int]
    ) -> RunSummary:
        interval = self._resolve_interval(checkpoint_interval)
        self._validate(owner_id, process_unit)
        units = await self._materialize(owner_id, work_units)

        started = time.monotonic()

        # --------------------------------------------------
        # PHASE 1: RESTORE
        # --------------------------------------------------
        snapshot = await self.store.load(owner_id)
        resumed = snapshot is not None
        unit_ids = {unit.unit_id for unit in units}

        source_kind, source_location = self._describe_source(work_units)

        if snapshot is None:
            snapshot = CheckpointSnapshot(
                owner_id=owner_id,
                total_units=len(units),
                source_kind=source_kind,
                source_location=source_location,
            )
        else:
            self._check_resumable(owner_id, snapshot, source_kind, source_location, unit_ids)
            snapshot.total_units = len(units)
            logger.info(
                f"Resuming run for {owner_id}: {snapshot.completed_count} units completed "
                f"at {snapshot.last_checkpoint_time.isoformat()}"
            )

        pending: List[WorkUnit] = []
        for unit in units:
            if unit.unit_id in snapshot.completed_unit_ids:
                unit.mark_done()
            else:
                pending.append(unit)

        summary = RunSummary(
            owner_id=owner_id,
            total_units=len(units),
            skipped=len(units) - len(pending),
            processed=len(units) - len(pending),
            failed=len(snapshot.failed_unit_ids & unit_ids),
            derived_count=snapshot.derived_record_count,
            records_skipped=snapshot.records_skipped,
            resumed=resumed,
        )

        logger.info(
            f"Starting run for {owner_id}: {len(units)} units, "
            f"{len(pending)} pending, checkpoint every {interval}"
        )

        record_id = None
        if self.run_recorder is not None:
            record_id = await self.run_recorder.start(owner_id, len(units), resumed)

        # --------------------------------------------------
        # PHASE 2: PROCESS
        # --------------------------------------------------
        try:
            since_save = 0
            for unit in pending:
                with log_context(unit_id=unit.unit_id):
                    result = await self._process_one(owner_id, unit, process_unit)

                unit.mark_done()
                self._apply(snapshot, summary, result)

                since_save += 1
                if since_save >= interval:
                    since_save = 0
                    await self._save(owner_id, snapshot)

            # --------------------------------------------------
            # PHASE 3: COMPLETE
            # --------------------------------------------------
            await self.store.clear(owner_id)

        except Exception as e:
            if self.run_recorder is not None:
                await self.run_recorder.fail(record_id, e)
            raise

        summary.status = RunStatus.PARTIAL if (summary.failed or summary.partial) else RunStatus.COMPLETED
        summary.elapsed_ms = int((time.monotonic() - started) * 1000)

        if self.run_recorder is not None:
            await self.run_recorder.finish(record_id, summary)

        logger.info(
            f"Run completed for {owner_id}: {summary.status.value} - "
            f"processed={summary.processed}, skipped={summary.skipped}, failed={summary.failed}, "
            f"derived={summary.derived_count}, elapsed={summary.elapsed_ms}ms"
        )
        return summary

    async def _process_one(self, owner_id: str, unit: WorkUnit, process_unit: ProcessUnit) -> UnitResult:
        """Invoke the callback; any Exception becomes a FAILED result"""
        try:
            result = process_unit(unit)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, UnitResult):
                raise UnitProcessingError(
                    "Callback did not return a UnitResult",
                    context={"owner_id": owner_id, "unit_id": unit.unit_id, "returned": type(result).__name__}
                )
            return result

        except Exception as e:
            error = e if isinstance(e, PipelineException) else UnitProcessingError(
                "Unit processing failed",
                context={"owner_id": owner_id, "unit_id": unit.unit_id},
                original_exception=e
            )
            logger.error(
                f"Unit {unit.unit_id} failed: {e}",
                extra={"error_context": error.to_dict()}
            )
            return UnitResult.failed(unit.unit_id, detail=f"{type(e).__name__}: {e}")

    @staticmethod
    def _apply(snapshot: CheckpointSnapshot, summary: RunSummary, result: UnitResult) -> None:
        snapshot.completed_unit_ids.add(result.unit_id)
        snapshot.last_processed_unit_id = result.unit_id
        snapshot.derived_record_count += result.records_added
        snapshot.records_skipped += result.records_skipped

        summary.processed += 1
        summary.derived_count += result.records_added
        summary.records_skipped += result.records_skipped
        summary.unit_results.append(result)

        if result.status == ExtractionStatus.FAILED:
            snapshot.failed_unit_ids.add(result.unit_id)
            summary.failed += 1
        elif result.status == ExtractionStatus.PARTIAL:
            summary.partial += 1

        if result.disposition == UnitDisposition.SKIPPED_DUPLICATE:
            summary.duplicate_units += 1
            summary.skipped += 1

    async def _save(self, owner_id: str, snapshot: CheckpointSnapshot) -> None:
        """Save failures are logged; the run keeps going in memory"""
        snapshot.last_checkpoint_time = datetime.utcnow()
        try:
            await self.store.save(owner_id, snapshot.model_copy(deep=True))
        except Exception as e:
            context = e.to_dict() if isinstance(e, PipelineException) else {"error_type": type(e).__name__}
            logger.error(
                f"Checkpoint save failed for {owner_id} at {snapshot.completed_count} units: {e}",
                extra={"error_context": context}
            )
            return

        logger.info(
            f"Checkpoint saved for {owner_id}: "
            f"{snapshot.completed_count}/{snapshot.total_units} units"
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _resolve_interval(self, checkpoint_interval: Optional[int]) -> int:
        interval = checkpoint_interval
        if interval is None:
            interval = self.checkpoint_interval
        if interval is None:
            interval = settings.CHECKPOINT_INTERVAL

        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            raise FatalConfigurationError(
                "Checkpoint interval must be a positive integer",
                context={"checkpoint_interval": interval}
            )
        return interval

    @staticmethod
    def _describe_source(work_units: WorkUnits) -> Tuple[Optional[str], Optional[str]]:
        if isinstance(work_units, WorkUnitSource):
            return work_units.kind, work_units.location
        return None, None

    @staticmethod
    def _check_resumable(
        owner_id: str,
        snapshot: CheckpointSnapshot,
        source_kind: Optional[str],
        source_location: Optional[str],
        unit_ids: Set[str]
    ) -> None:
        """
        Refuse to resume a checkpoint against units it was not written for.

        Finishing such a run would clear the checkpoint and lose the real
        run's progress.
        """
        context = {
            "owner_id": owner_id,
            "checkpoint_source": snapshot.source_kind,
            "checkpoint_location": snapshot.source_location,
            "source": source_kind,
            "location": source_location,
        }
        if snapshot.source_kind and source_kind and (
            (snapshot.source_kind, snapshot.source_location) != (source_kind, source_location)
        ):
            raise FatalConfigurationError("Checkpoint belongs to a different work-unit source", context=context)

        if snapshot.completed_unit_ids and not (snapshot.completed_unit_ids & unit_ids):
            raise FatalConfigurationError(
                "No completed unit of the checkpoint is in the work-unit source",
                context={**context, "completed_units": snapshot.completed_count, "source_units": len(unit_ids)}
            )

    @staticmethod
    def _validate(owner_id: str, process_unit: ProcessUnit) -> None:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise FatalConfigurationError(
                "Owner id is required",
                context={"owner_id": owner_id}
            )
        if not callable(process_unit):
            raise FatalConfigurationError(
                "process_unit must be callable",
                context={"owner_id": owner_id, "process_unit": type(process_unit).__name__}
            )

    @staticmethod
    async def _materialize(owner_id: str, work_units: WorkUnits) -> List[WorkUnit]:
        if isinstance(work_units, WorkUnitSource):
            units = await work_units.list_units()
        elif isinstance(work_units, (str, bytes, Mapping)) or not isinstance(work_units, Iterable):
            raise FatalConfigurationError(
                "Work units must be a WorkUnitSource or an iterable of WorkUnit",
                context={"owner_id": owner_id, "work_units": type(work_units).__name__}
            )
        else:
            units = list(work_units)

        seen = set()
        for position, unit in enumerate(units):
            if not isinstance(unit, WorkUnit):
                raise FatalConfigurationError(
                    "Work unit source yielded a non-WorkUnit item",
                    context={"owner_id": owner_id, "position": position, "item": type(unit).__name__}
                )
            if unit.unit_id in seen:
                raise FatalConfigurationError(
                    "Duplicate work unit id",
                    context={"owner_id": owner_id, "unit_id": unit.unit_id}
                )
            seen.add(unit.unit_id)

        return units
