"""
Pydantic schemas for work units and the notes they carry
"""

import enum
from datetime import date
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WorkUnitState(str, enum.Enum):
    """Scheduling state of a work unit"""
    PENDING = "pending"
    DONE = "done"


class WorkUnit(BaseModel):
    """
    Smallest item tracked for checkpoint/resume: one patient's note set.

    payload holds the raw note mappings exactly as the source produced them;
    the extractor validates them, so a bad note degrades the unit instead of
    breaking the source.
    """
    unit_id: str = Field(..., min_length=1, max_length=255)
    payload: List[Any] = Field(default_factory=list)
    state: WorkUnitState = WorkUnitState.PENDING

    @field_validator("unit_id", mode="before")
    @classmethod
    def coerce_unit_id(cls, v):
        if v is None:
            return v
        return str(v).strip()

    def mark_done(self) -> None:
        self.state = WorkUnitState.DONE


class NoteInput(BaseModel):
    """One clinical note inside a work unit payload"""
    model_config = ConfigDict(str_strip_whitespace=True)

    patient_id: str = Field(..., min_length=1)
    dos_date: date
    note_text: str = Field(..., min_length=1)
    note_id: Optional[str] = None
    provider_id: Optional[str] = None

    @field_validator("patient_id", "note_id", "provider_id", mode="before")
    @classmethod
    def stringify_ids(cls, v):
        """CSV readers hand back ints and NaN for id columns"""
        if v is None:
            return None
        if isinstance(v, float):
            if v != v:  # NaN
                return None
            if v.is_integer():
                return str(int(v))
        return str(v)

    @field_validator("note_id", "provider_id")
    @classmethod
    def blank_to_none(cls, v):
        return v or None

    @field_validator("dos_date", mode="before")
    @classmethod
    def parse_dos_date(cls, v):
        if hasattr(v, "date") and callable(v.date):
            return v.date()
        if isinstance(v, str):
            return v.strip()[:10]
        return v
