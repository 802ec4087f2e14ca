"""
Per-unit outcome ledger (work_unit_outcomes) read by reconciliation
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_name
from core.exceptions import wrap_database_error
from models.base import ExtractionStatus
from models.extracted_symptom import ExtractedSymptom
from models.unit_outcome import WorkUnitOutcome
import logging

logger = logging.getLogger(__name__)


class UnitOutcomeLedger:
    """Upserted (owner_id, unit_id) -> last status and expected record count"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def record(
        self,
        owner_id: str,
        unit_id: str,
        status: ExtractionStatus,
        expected_records: int,
        detail: Optional[str] = None
    ) -> None:
        insert = pg_insert if dialect_name(self.db) == "postgresql" else sqlite_insert
        stmt = insert(WorkUnitOutcome).values(
            owner_id=owner_id,
            unit_id=unit_id,
            status=status,
            expected_records=expected_records,
            detail=detail,
            recorded_at=datetime.utcnow(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_id", "unit_id"],
            set_={
                "status": stmt.excluded.status,
                "expected_records": stmt.excluded.expected_records,
                "detail": stmt.excluded.detail,
                "recorded_at": stmt.excluded.recorded_at,
            }
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(
                e,
                "Failed to record unit outcome",
                context={"owner_id": owner_id, "unit_id": unit_id, "table_name": "work_unit_outcomes"}
            )

    async def get(self, owner_id: str, unit_id: str) -> Optional[WorkUnitOutcome]:
        result = await self.db.execute(
            select(WorkUnitOutcome).where(
                WorkUnitOutcome.owner_id == owner_id,
                WorkUnitOutcome.unit_id == unit_id,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def stored_counts(self, owner_id: str) -> Dict[str, int]:
        """Derived records actually stored per unit (patient)"""
        result = await self.db.execute(
            select(ExtractedSymptom.patient_id, func.count(ExtractedSymptom.id))
            .where(ExtractedSymptom.owner_id == owner_id)
            .group_by(ExtractedSymptom.patient_id)
        )
        return {patient_id: count for patient_id, count in result.all()}

    async def find_incomplete(self, owner_id: str) -> List[WorkUnitOutcome]:
        """
        Units needing another pass: FAILED outcome, or fewer stored
        records than the extractor produced.
        """
        result = await self.db.execute(
            select(WorkUnitOutcome)
            .where(WorkUnitOutcome.owner_id == owner_id)
            .order_by(WorkUnitOutcome.unit_id)
            .execution_options(populate_existing=True)
        )
        outcomes = list(result.scalars().all())
        stored = await self.stored_counts(owner_id)

        incomplete = []
        for outcome in outcomes:
            if outcome.status == ExtractionStatus.FAILED:
                incomplete.append(outcome)
            elif stored.get(outcome.unit_id, 0) < outcome.expected_records:
                incomplete.append(outcome)

        return incomplete
