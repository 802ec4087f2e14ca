"""
Pydantic schema for checkpoint snapshots
"""

from datetime import datetime
from typing import Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class CheckpointSnapshot(BaseModel):
    """
    In-memory form of a run checkpoint.

    completed_unit_ids is a set here and a sorted list on disk; a snapshot
    never lists a unit whose writes were not committed before the save.
    """
    model_config = ConfigDict(from_attributes=True)

    owner_id: str = Field(..., min_length=1, max_length=100)
    last_processed_unit_id: Optional[str] = None
    completed_unit_ids: Set[str] = Field(default_factory=set)
    failed_unit_ids: Set[str] = Field(default_factory=set)
    total_units: int = Field(0, ge=0)
    start_time: datetime = Field(default_factory=datetime.utcnow)
    last_checkpoint_time: datetime = Field(default_factory=datetime.utcnow)
    derived_record_count: int = Field(0, ge=0)
    records_skipped: int = Field(0, ge=0)
    source_kind: Optional[str] = None
    source_location: Optional[str] = None

    @field_serializer("completed_unit_ids", "failed_unit_ids")
    def serialize_id_set(self, ids: Set[str]):
        return sorted(ids)

    @property
    def completed_count(self) -> int:
        return len(self.completed_unit_ids)

    @classmethod
    def from_row(cls, row) -> "CheckpointSnapshot":
        """Build a snapshot from a RunCheckpoint row"""
        return cls(
            owner_id=row.owner_id,
            last_processed_unit_id=row.last_processed_unit_id,
            completed_unit_ids=set(row.processed_unit_ids or []),
            failed_unit_ids=set(row.failed_unit_ids or []),
            total_units=row.total_units or 0,
            start_time=row.start_time,
            last_checkpoint_time=row.last_checkpoint_time,
            derived_record_count=row.derived_record_count or 0,
            records_skipped=row.records_skipped or 0,
            source_kind=row.source_kind,
            source_location=row.source_location,
        )
