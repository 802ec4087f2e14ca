"""
Tagged record schemas with natural-key projection.

Every record type declares the fields of its natural key; natural_key()
projects a record onto that tuple without touching storage, which is what
the dedup loader compares against existing rows.
"""

import hashlib
import uuid
from datetime import date
from typing import Any, ClassVar, Dict, Iterable, Literal, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Namespace for deterministic mention ids
MENTION_NAMESPACE = uuid.UUID("5b0c6c1e-3f0a-4c52-9d1e-8f9a2b7d4e60")


def normalize_key_value(value: Any) -> Any:
    """Blank strings and NaN compare as NULL; strings are stripped"""
    if value is None:
        return None
    if isinstance(value, float) and value != value:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def project_natural_key(row: Union[Mapping[str, Any], BaseModel], fields: Iterable[str]) -> Tuple[Any, ...]:
    """
    Project a row (mapping or pydantic model) onto its natural key.

    Missing fields project to None, so optional key columns need not be
    present in the input row.
    """
    if isinstance(row, BaseModel):
        row = row.model_dump()
    return tuple(normalize_key_value(row.get(field)) for field in fields)


class RecordBase(BaseModel):
    """Base for all tagged records"""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = ()

    def natural_key(self) -> Tuple[Any, ...]:
        return project_natural_key(self, self.NATURAL_KEY_FIELDS)

    def natural_key_dict(self) -> Dict[str, Any]:
        return dict(zip(self.NATURAL_KEY_FIELDS, self.natural_key()))

    def to_row(self) -> Dict[str, Any]:
        """Column values for the target table (tag excluded)"""
        return self.model_dump(exclude={"record_type"})


class ExtractedSymptomCreate(RecordBase):
    """Derived record produced by the symptom extractor"""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "owner_id",
        "patient_id",
        "note_id",
        "dos_date",
        "symptom_segment",
        "position_in_text",
    )

    record_type: Literal["extracted_symptom"] = "extracted_symptom"

    mention_id: Optional[str] = None
    owner_id: str = Field(..., min_length=1, max_length=100)
    patient_id: str = Field(..., min_length=1, max_length=100)
    note_id: Optional[str] = Field(None, max_length=255)
    dos_date: date
    symptom_segment: str = Field(..., min_length=1)
    position_in_text: int = Field(..., ge=0)

    symptom_id: Optional[str] = None
    diagnosis: Optional[str] = None
    diagnosis_icd10_code: Optional[str] = None
    diagnostic_category: Optional[str] = None
    symp_prob: Optional[str] = None
    zcode_hrsn: Optional[str] = None
    hrsn_indicators: Optional[Dict[str, str]] = None
    provider_id: Optional[str] = None

    @field_validator("note_id", "symptom_id", "diagnosis", "diagnostic_category", "provider_id")
    @classmethod
    def blank_to_none(cls, v):
        return v or None

    def model_post_init(self, __context: Any) -> None:
        if self.mention_id is None:
            self.mention_id = str(self.compute_mention_id())

    def compute_mention_id(self) -> uuid.UUID:
        """UUIDv5 over the natural key: same mention, same id, every run"""
        key = "|".join("" if v is None else str(v) for v in self.natural_key())
        return uuid.uuid5(MENTION_NAMESPACE, key)


class SymptomMasterCreate(RecordBase):
    """Reference record: one symptom library row"""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "symptom_id",
        "symptom_segment",
        "diagnosis",
        "diagnostic_category",
    )

    record_type: Literal["symptom_master"] = "symptom_master"

    symptom_id: str = Field(..., min_length=1, max_length=100)
    symptom_segment: str = Field(..., min_length=1)
    diagnosis: Optional[str] = None
    diagnostic_category: Optional[str] = None
    diagnosis_icd10_code: Optional[str] = Field(None, max_length=50)
    symp_prob: Optional[str] = Field(None, max_length=20)
    zcode_hrsn: Optional[str] = Field(None, max_length=50)
    hrsn_category: Optional[str] = Field(None, max_length=100)

    @field_validator(
        "diagnosis", "diagnostic_category", "diagnosis_icd10_code",
        "symp_prob", "zcode_hrsn", "hrsn_category",
        mode="before",
    )
    @classmethod
    def clean_optional(cls, v):
        return normalize_key_value(v)

    @field_validator("symptom_id", mode="before")
    @classmethod
    def stringify_symptom_id(cls, v):
        if isinstance(v, float) and v.is_integer():
            return str(int(v))
        if isinstance(v, int):
            return str(v)
        return v


class ClinicalNoteCreate(RecordBase):
    """Import row for the clinical_notes table"""

    NATURAL_KEY_FIELDS: ClassVar[Tuple[str, ...]] = (
        "owner_id",
        "patient_id",
        "dos_date",
        "content_hash",
    )

    record_type: Literal["clinical_note"] = "clinical_note"

    owner_id: str = Field(..., min_length=1, max_length=100)
    patient_id: str = Field(..., min_length=1, max_length=100)
    note_id: Optional[str] = Field(None, max_length=255)
    provider_id: Optional[str] = Field(None, max_length=100)
    dos_date: date
    note_text: str = Field(..., min_length=1)
    content_hash: Optional[str] = None

    def model_post_init(self, __context: Any) -> None:
        if self.content_hash is None:
            self.content_hash = hashlib.sha256(self.note_text.encode("utf-8")).hexdigest()


DerivedRecord = ExtractedSymptomCreate
ReferenceRecord = SymptomMasterCreate
