"""
Pydantic schemas for per-unit outcomes, run summaries and import results
"""

import enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from models.base import ExtractionStatus, RunStatus
from schemas.records import RecordBase


class WriteOutcome(str, enum.Enum):
    """Result of a single dedup write"""
    ADDED = "added"
    SKIPPED = "skipped"
    ERRORED = "errored"


class UnitDisposition(str, enum.Enum):
    """What a processed unit amounted to for the run"""
    DONE = "done"
    SKIPPED_DUPLICATE = "skipped-duplicate"
    FAILED = "failed"


class ExtractionResult(BaseModel):
    """Output of a BatchExtractor for one work unit"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    unit_id: str
    records: List[RecordBase] = Field(default_factory=list)
    status: ExtractionStatus = ExtractionStatus.SUCCESS
    detail: Optional[str] = None


class LoadResult(BaseModel):
    """Counts from writing a set of derived records"""
    added: int = 0
    skipped: int = 0
    errored: int = 0
    errors: List[str] = Field(default_factory=list)


class UnitResult(BaseModel):
    """Terminal outcome of one work unit as reported to the coordinator"""
    unit_id: str
    status: ExtractionStatus
    records_expected: int = 0
    records_added: int = 0
    records_skipped: int = 0
    detail: Optional[str] = None

    @property
    def disposition(self) -> UnitDisposition:
        if self.status == ExtractionStatus.FAILED:
            return UnitDisposition.FAILED
        if self.records_added == 0 and self.records_skipped > 0:
            return UnitDisposition.SKIPPED_DUPLICATE
        return UnitDisposition.DONE

    @classmethod
    def failed(cls, unit_id: str, detail: Optional[str] = None) -> "UnitResult":
        return cls(unit_id=unit_id, status=ExtractionStatus.FAILED, detail=detail)


class RunSummary(BaseModel):
    """
    Sole success/failure signal of a run.

    processed, failed and derived_count are cumulative over every
    invocation of the same run (restored from the checkpoint on resume).
    skipped counts the units of this invocation that added no new record:
    units the checkpoint filtered out plus units whose every record was
    already stored (duplicate_units). elapsed_ms covers this invocation only.

    derived_count counts records newly written. A unit re-done after a
    crash finds the records it committed before the crash already stored,
    so they count towards records_skipped rather than derived_count; the
    two together cover every record the run stored.
    """
    owner_id: str
    status: RunStatus = RunStatus.COMPLETED
    total_units: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    partial: int = 0
    duplicate_units: int = 0
    derived_count: int = 0
    records_skipped: int = 0
    elapsed_ms: int = 0
    resumed: bool = False
    unit_results: List[UnitResult] = Field(default_factory=list)


class RowOutcome(BaseModel):
    """Per-row outcome of an import batch"""
    index: int
    outcome: WriteOutcome
    natural_key: Optional[Tuple[Any, ...]] = None
    error: Optional[str] = None


class ImportResult(BaseModel):
    """Result of DedupLoader.import_batch"""
    added: int = 0
    skipped: int = 0
    errored: int = 0
    outcomes: List[RowOutcome] = Field(default_factory=list)

    def record(self, outcome: RowOutcome) -> None:
        self.outcomes.append(outcome)
        if outcome.outcome == WriteOutcome.ADDED:
            self.added += 1
        elif outcome.outcome == WriteOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.errored += 1


class ReconciliationReport(BaseModel):
    """Result of one reconciliation pass"""
    owner_id: str
    checked: int = 0
    reprocessed: int = 0
    recovered: int = 0
    still_failing: List[str] = Field(default_factory=list)
