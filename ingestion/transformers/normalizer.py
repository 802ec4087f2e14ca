"""
Map CSV columns of notes files and symptom libraries onto canonical field names
"""

import re
from typing import Any, Dict, Mapping, Optional
from datetime import date, datetime

import pandas as pd
import logging

logger = logging.getLogger(__name__)


# Compact header (lowercase, alphanumerics only) -> canonical field
NOTE_COLUMNS = {
    "patientid": "patient_id",
    "patient": "patient_id",
    "dosdate": "dos_date",
    "dateofservice": "dos_date",
    "notetext": "note_text",
    "note": "note_text",
    "noteid": "note_id",
    "providerid": "provider_id",
}

SYMPTOM_COLUMNS = {
    "symptomid": "symptom_id",
    "symptomsegment": "symptom_segment",
    "diagnosis": "diagnosis",
    "diagnosticcategory": "diagnostic_category",
    "diagnosisicd10code": "diagnosis_icd10_code",
    "icd10code": "diagnosis_icd10_code",
    "sympprob": "symp_prob",
    "zcodehrsn": "zcode_hrsn",
    "hrsncategory": "hrsn_category",
    "hrsnmapping": "hrsn_category",
}

HRSN_CATEGORIES = (
    "housing_status",
    "food_status",
    "financial_status",
    "transportation_needs",
    "has_a_car",
    "utility_insecurity",
    "childcare_needs",
    "elder_care_needs",
    "employment_status",
    "education_needs",
    "legal_needs",
    "social_isolation",
)


def compact_header(name: Any) -> str:
    """'\\ufeffdiagnosticCategory' -> 'diagnosticcategory', 'Diagnosis_ICD-10_Code' -> 'diagnosisicd10code'"""
    text = str(name).replace("\ufeff", "").strip().lower()
    return re.sub(r"[^a-z0-9]", "", text)


class ColumnNormalizer:
    """
    Normalize tabular input into canonical records.

    Handles:
    - Header variants (camelCase, snake_case, spaces, UTF-8 BOM)
    - NaN and blank cells (become None)
    - Numeric ids read as floats by pandas
    - Dates as strings, datetimes or pandas Timestamps
    """

    def __init__(self, column_map: Mapping[str, str]):
        self.column_map = dict(column_map)

    @classmethod
    def for_notes(cls) -> "ColumnNormalizer":
        return cls(NOTE_COLUMNS)

    @classmethod
    def for_symptoms(cls) -> "ColumnNormalizer":
        return cls(SYMPTOM_COLUMNS)

    def rename_columns(self, df: pd.DataFrame) -> pd.DataFrame:
        """Rename known columns to canonical names; unknown columns are dropped"""
        renamed = {}
        for column in df.columns:
            canonical = self.column_map.get(compact_header(column))
            if canonical and canonical not in renamed.values():
                renamed[column] = canonical

        dropped = [c for c in df.columns if c not in renamed]
        if dropped:
            logger.debug(f"Ignoring columns: {dropped}")

        return df[list(renamed)].rename(columns=renamed)

    def normalize_record(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Map one raw mapping (CSV row or JSON object) onto canonical fields"""
        normalized: Dict[str, Any] = {}
        for key, value in record.items():
            canonical = self.column_map.get(compact_header(key))
            if canonical is None:
                # Already-canonical keys pass through
                canonical = key if key in self.column_map.values() else None
            if canonical is None or canonical in normalized:
                continue
            normalized[canonical] = self._parse_cell(value)

        if "dos_date" in normalized:
            normalized["dos_date"] = self._parse_date(normalized["dos_date"])
        for field in ("patient_id", "symptom_id", "note_id", "provider_id"):
            if field in normalized:
                normalized[field] = self._parse_id(normalized[field])
        if "hrsn_category" in normalized:
            normalized["hrsn_category"] = self._parse_hrsn_category(normalized["hrsn_category"])

        return normalized

    @staticmethod
    def _parse_cell(value: Any) -> Any:
        """Safely parse a cell: NaN and blank strings become None"""
        if value is None:
            return None
        if isinstance(value, float) and value != value:
            return None
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @staticmethod
    def _parse_id(value: Any) -> Optional[str]:
        """Safely parse an identifier (pandas reads '1001' as 1001.0)"""
        if value is None:
            return None
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        return str(value)

    @staticmethod
    def _parse_date(value: Any) -> Optional[date]:
        """Safely parse a date value"""
        if value is None:
            return None
        if isinstance(value, pd.Timestamp):
            return value.date()
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return pd.to_datetime(str(value)).date()
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_hrsn_category(value: Any) -> Optional[str]:
        """'Housing Status' -> 'housing_status'; unknown categories are dropped"""
        if value is None:
            return None
        category = re.sub(r"[^a-z0-9]+", "_", str(value).strip().lower()).strip("_")
        if category in HRSN_CATEGORIES:
            return category
        logger.debug(f"Unknown HRSN category: {value!r}")
        return None
