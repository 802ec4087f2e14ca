"""
Durable per-owner checkpoint store backed by the run_checkpoints table
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import dialect_name
from core.exceptions import CheckpointError, wrap_database_error
from models.checkpoint import RunCheckpoint
from schemas.checkpoint import CheckpointSnapshot
import logging

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """
    Progress snapshots keyed by owner id.

    At most one active run per owner is assumed; the store does not lock.
    """

    @abstractmethod
    async def save(self, owner_id: str, snapshot: CheckpointSnapshot) -> None:
        """Durable upsert, replacing any prior snapshot for the owner"""
        pass

    @abstractmethod
    async def load(self, owner_id: str) -> Optional[CheckpointSnapshot]:
        """Return the owner's snapshot, or None"""
        pass

    @abstractmethod
    async def clear(self, owner_id: str) -> None:
        """Delete the owner's snapshot"""
        pass


class SQLCheckpointStore(CheckpointStore):
    """
    Checkpoint store on the application database.

    save() is a single INSERT ... ON CONFLICT (owner_id) DO UPDATE, committed
    immediately, so the snapshot is durable when save() returns.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def save(self, owner_id: str, snapshot: CheckpointSnapshot) -> None:
        values = {
            "owner_id": owner_id,
            "last_processed_unit_id": snapshot.last_processed_unit_id,
            "processed_unit_ids": sorted(snapshot.completed_unit_ids),
            "failed_unit_ids": sorted(snapshot.failed_unit_ids),
            "total_units": snapshot.total_units,
            "start_time": snapshot.start_time,
            "last_checkpoint_time": snapshot.last_checkpoint_time,
            "derived_record_count": snapshot.derived_record_count,
            "records_skipped": snapshot.records_skipped,
            "source_kind": snapshot.source_kind,
            "source_location": snapshot.source_location,
        }

        insert = pg_insert if dialect_name(self.db) == "postgresql" else sqlite_insert
        stmt = insert(RunCheckpoint).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_id"],
            set_={
                "last_processed_unit_id": stmt.excluded.last_processed_unit_id,
                "processed_unit_ids": stmt.excluded.processed_unit_ids,
                "failed_unit_ids": stmt.excluded.failed_unit_ids,
                "total_units": stmt.excluded.total_units,
                "start_time": stmt.excluded.start_time,
                "last_checkpoint_time": stmt.excluded.last_checkpoint_time,
                "derived_record_count": stmt.excluded.derived_record_count,
                "records_skipped": stmt.excluded.records_skipped,
                "source_kind": stmt.excluded.source_kind,
                "source_location": stmt.excluded.source_location,
            }
        )

        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(
                e,
                "Failed to save checkpoint",
                context={"owner_id": owner_id, "operation": "save", "table_name": "run_checkpoints"}
            )

        logger.debug(
            f"Checkpoint saved for {owner_id}: "
            f"{snapshot.completed_count}/{snapshot.total_units} units"
        )

    async def load(self, owner_id: str) -> Optional[CheckpointSnapshot]:
        try:
            result = await self.db.execute(
                select(RunCheckpoint)
                .where(RunCheckpoint.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(
                e,
                "Failed to load checkpoint",
                context={"owner_id": owner_id, "operation": "load", "table_name": "run_checkpoints"}
            )

        if row is None:
            return None

        try:
            return CheckpointSnapshot.from_row(row)
        except ValueError as e:
            raise CheckpointError(
                "Stored checkpoint is unreadable",
                context={"owner_id": owner_id, "operation": "load"},
                original_exception=e
            )

    async def clear(self, owner_id: str) -> None:
        try:
            await self.db.execute(
                delete(RunCheckpoint).where(RunCheckpoint.owner_id == owner_id)
            )
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise wrap_database_error(
                e,
                "Failed to clear checkpoint",
                context={"owner_id": owner_id, "operation": "clear", "table_name": "run_checkpoints"}
            )

        logger.debug(f"Checkpoint cleared for {owner_id}")

    async def list_all(self) -> List[CheckpointSnapshot]:
        """All live checkpoints, oldest activity first"""
        result = await self.db.execute(
            select(RunCheckpoint)
            .order_by(RunCheckpoint.last_checkpoint_time)
            .execution_options(populate_existing=True)
        )
        return [CheckpointSnapshot.from_row(row) for row in result.scalars().all()]

    async def list_stale(self, older_than: timedelta) -> List[CheckpointSnapshot]:
        """Checkpoints not advanced within `older_than`: interrupted runs"""
        cutoff = datetime.utcnow() - older_than
        result = await self.db.execute(
            select(RunCheckpoint)
            .where(RunCheckpoint.last_checkpoint_time < cutoff)
            .order_by(RunCheckpoint.last_checkpoint_time)
            .execution_options(populate_existing=True)
        )
        return [CheckpointSnapshot.from_row(row) for row in result.scalars().all()]
