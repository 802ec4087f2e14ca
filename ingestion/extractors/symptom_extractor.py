"""
Symptom and HRSN mention extractor: pure pattern matching over clinical notes
"""

from typing import Any, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ValidationError

from ingestion.base import BatchExtractor
from models.base import ExtractionStatus
from schemas.records import ExtractedSymptomCreate, SymptomMasterCreate
from schemas.run import ExtractionResult
from schemas.work_unit import NoteInput, WorkUnit
import logging

logger = logging.getLogger(__name__)


ZCODE_HRSN = "ZCode/HRSN"
ZCODE_NONE = "No"
PROBLEM = "Problem"
SYMPTOM = "Symptom"
PROBLEM_IDENTIFIED = "Problem Identified"

_LIBRARY_FIELDS = tuple(SymptomMasterCreate.model_fields)


class SymptomExtractor(BatchExtractor):
    """
    Match a symptom library against every note of a work unit.

    Matching rules:
    - Case-insensitive substring search
    - Longest pattern first; one library entry per distinct segment text
    - Every occurrence is a separate mention, keyed by its position
    - symp_prob == "Problem" marks an HRSN problem (zcode_hrsn "ZCode/HRSN"
      plus an hrsn_indicators entry for its category)

    Unit status:
    - SUCCESS: every note parsed (including a unit with no notes)
    - PARTIAL: some notes were unusable and were skipped
    - FAILED: the unit has notes and none of them is usable
    """

    name = "symptom_extractor"

    def __init__(self, symptom_library: Iterable[Any], owner_id: str):
        self.owner_id = owner_id
        self.patterns: Tuple[Tuple[str, SymptomMasterCreate], ...] = self._build_patterns(symptom_library)
        logger.info(f"{self.name}: {len(self.patterns)} patterns loaded for {owner_id}")

    def extract(self, unit: WorkUnit) -> ExtractionResult:
        records: List[ExtractedSymptomCreate] = []
        rejected: List[str] = []

        for index, raw in enumerate(unit.payload):
            try:
                note = raw if isinstance(raw, NoteInput) else NoteInput.model_validate(raw)
            except ValidationError as e:
                fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
                rejected.append(f"note {index}: invalid {', '.join(fields) or 'note'}")
                continue

            records.extend(self._extract_note(note))

        if rejected and len(rejected) == len(unit.payload):
            status = ExtractionStatus.FAILED
        elif rejected:
            status = ExtractionStatus.PARTIAL
        else:
            status = ExtractionStatus.SUCCESS

        detail = "; ".join(rejected) if rejected else None
        if rejected:
            logger.warning(f"Unit {unit.unit_id}: skipped {len(rejected)}/{len(unit.payload)} notes")

        return ExtractionResult(
            unit_id=unit.unit_id,
            records=records,
            status=status,
            detail=detail,
        )

    def _extract_note(self, note: NoteInput) -> List[ExtractedSymptomCreate]:
        text = note.note_text.lower()
        mentions = []

        for segment, entry in self.patterns:
            start = 0
            while True:
                position = text.find(segment, start)
                if position == -1:
                    break
                mentions.append(self._build_record(note, entry, position))
                start = position + len(segment)

        return mentions

    def _build_record(self, note: NoteInput, entry: SymptomMasterCreate, position: int) -> ExtractedSymptomCreate:
        is_problem = entry.symp_prob == PROBLEM
        indicators = None
        if is_problem and entry.hrsn_category:
            indicators = {entry.hrsn_category: PROBLEM_IDENTIFIED}

        return ExtractedSymptomCreate(
            owner_id=self.owner_id,
            patient_id=note.patient_id,
            note_id=note.note_id,
            dos_date=note.dos_date,
            symptom_segment=entry.symptom_segment,
            position_in_text=position,
            symptom_id=entry.symptom_id,
            diagnosis=entry.diagnosis,
            diagnosis_icd10_code=entry.diagnosis_icd10_code,
            diagnostic_category=entry.diagnostic_category,
            symp_prob=entry.symp_prob or SYMPTOM,
            zcode_hrsn=ZCODE_HRSN if is_problem else ZCODE_NONE,
            hrsn_indicators=indicators,
            provider_id=note.provider_id,
        )

    @staticmethod
    def _as_entry(item: Any) -> Optional[SymptomMasterCreate]:
        if isinstance(item, SymptomMasterCreate):
            return item
        if isinstance(item, BaseModel):
            item = item.model_dump()
        elif not isinstance(item, Mapping):
            # ORM row
            item = {field: getattr(item, field) for field in _LIBRARY_FIELDS if hasattr(item, field)}
        try:
            return SymptomMasterCreate.model_validate(dict(item))
        except ValidationError as e:
            logger.warning(f"Ignoring invalid symptom library entry: {e.error_count()} errors")
            return None

    @classmethod
    def _build_patterns(cls, library: Iterable[Any]) -> Tuple[Tuple[str, SymptomMasterCreate], ...]:
        patterns = {}
        for item in library:
            entry = cls._as_entry(item)
            if entry is None:
                continue
            segment = entry.symptom_segment.lower()
            # First entry for a segment text wins
            patterns.setdefault(segment, entry)

        ordered = sorted(patterns.items(), key=lambda kv: (-len(kv[0]), kv[0]))
        return tuple(ordered)
