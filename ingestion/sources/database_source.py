"""
Work units built from the clinical_notes table (one unit per patient)
"""

from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import wrap_database_error
from ingestion.base import WorkUnitSource
from models.clinical_note import ClinicalNote
from schemas.work_unit import WorkUnit
import logging

logger = logging.getLogger(__name__)


class DatabaseNoteSource(WorkUnitSource):
    """
    All notes of one owner, grouped per patient.

    Units are ordered by patient_id and each unit's notes by (dos_date, id),
    so the sequence is identical across invocations.
    """

    kind = "database"

    def __init__(self, db_session: AsyncSession, owner_id: str):
        super().__init__(owner_id)
        self.db = db_session

    async def list_units(self) -> List[WorkUnit]:
        notes = await self._fetch(
            select(ClinicalNote)
            .where(ClinicalNote.owner_id == self.owner_id)
            .order_by(ClinicalNote.patient_id, ClinicalNote.dos_date, ClinicalNote.id)
        )

        units: Dict[str, List[Dict[str, Any]]] = {}
        for note in notes:
            units.setdefault(note.patient_id, []).append(self._to_payload(note))

        logger.info(f"Loaded {len(notes)} notes as {len(units)} units for {self.owner_id}")
        return [WorkUnit(unit_id=patient_id, payload=payload) for patient_id, payload in units.items()]

    async def get_unit(self, unit_id: str) -> WorkUnit:
        notes = await self._fetch(
            select(ClinicalNote)
            .where(
                ClinicalNote.owner_id == self.owner_id,
                ClinicalNote.patient_id == unit_id,
            )
            .order_by(ClinicalNote.dos_date, ClinicalNote.id)
        )
        if not notes:
            raise KeyError(unit_id)
        return WorkUnit(unit_id=unit_id, payload=[self._to_payload(note) for note in notes])

    async def _fetch(self, stmt) -> List[ClinicalNote]:
        try:
            result = await self.db.execute(stmt)
            return list(result.scalars().all())
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(
                e,
                "Failed to read clinical notes",
                context={"owner_id": self.owner_id, "operation": "SELECT", "table_name": "clinical_notes"}
            )

    @staticmethod
    def _to_payload(note: ClinicalNote) -> Dict[str, Any]:
        return {
            "patient_id": note.patient_id,
            # Stored notes without an upstream id fall back to the row id
            "note_id": note.note_id or str(note.id),
            "provider_id": note.provider_id,
            "dos_date": note.dos_date,
            "note_text": note.note_text,
        }
