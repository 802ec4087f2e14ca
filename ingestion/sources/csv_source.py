"""
Work units read from a notes CSV file with pandas
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from core.exceptions import FatalConfigurationError
from ingestion.base import WorkUnitSource
from ingestion.transformers.normalizer import ColumnNormalizer
from schemas.work_unit import WorkUnit
import logging

logger = logging.getLogger(__name__)


class CSVNoteSource(WorkUnitSource):
    """
    Notes CSV grouped per patient.

    Supports:
    - Header variants (patientId, Patient_ID, "Note Text", BOM-prefixed)
    - Rows without a patient id are dropped (they belong to no unit)
    - Units sorted by patient id; notes keep file order within a unit
    """

    kind = "csv"

    def __init__(self, file_path: str, owner_id: str, normalizer: Optional[ColumnNormalizer] = None):
        super().__init__(owner_id)
        self.file_path = Path(file_path)
        self.normalizer = normalizer or ColumnNormalizer.for_notes()
        self._units: Optional[List[WorkUnit]] = None

    @property
    def location(self) -> str:
        return str(self.file_path.resolve())

    async def list_units(self) -> List[WorkUnit]:
        if self._units is None:
            self._units = self._read()
        return list(self._units)

    def read_notes(self) -> List[Dict[str, Any]]:
        """All normalized note rows of the file (used by the notes import)"""
        if not self.file_path.exists():
            raise FatalConfigurationError(
                "Notes file not found",
                context={"file_path": str(self.file_path)}
            )

        logger.info(f"Reading notes CSV from {self.file_path}")

        try:
            df = pd.read_csv(self.file_path, encoding="utf-8-sig")
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise FatalConfigurationError(
                "Notes file is not a readable CSV",
                context={"file_path": str(self.file_path)},
                original_exception=e
            )

        renamed = self.normalizer.rename_columns(df)
        if "patient_id" not in renamed.columns:
            raise FatalConfigurationError(
                "Notes file has no patient id column",
                context={"file_path": str(self.file_path), "columns": list(df.columns)}
            )

        rows = [self.normalizer.normalize_record(row) for row in renamed.to_dict(orient="records")]
        logger.info(f"Read {len(rows)} notes from CSV")
        return rows

    def _read(self) -> List[WorkUnit]:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        dropped = 0

        for row in self.read_notes():
            patient_id = row.get("patient_id")
            if not patient_id:
                dropped += 1
                continue
            grouped.setdefault(patient_id, []).append(row)

        if dropped:
            logger.warning(f"Dropped {dropped} notes without a patient id")

        return [
            WorkUnit(unit_id=patient_id, payload=grouped[patient_id])
            for patient_id in sorted(grouped)
        ]
