from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime
from models.base import Base, JSONType


class RunCheckpoint(Base):
    """
    Durable progress snapshot of an extraction run, one row per owner.

    Purpose:
    - Resume a run after a crash without reprocessing completed units
    - Never claim more progress than has been committed

    Design:
    - owner_id is the upsert key; at most one live checkpoint per owner
    - processed_unit_ids stores the completed set as a sorted JSON list
    - Created lazily on the first periodic save, deleted on full completion
    """
    __tablename__ = "run_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(String(100), nullable=False)

    # Progress
    last_processed_unit_id = Column(String(255), nullable=True)
    processed_unit_ids = Column(JSONType, nullable=False, default=list)
    failed_unit_ids = Column(JSONType, nullable=False, default=list)
    total_units = Column(Integer, nullable=False, default=0)

    # Source the run reads its units from ("database", "csv", ...)
    source_kind = Column(String(50), nullable=True)
    source_location = Column(String(1024), nullable=True)

    # Statistics
    derived_record_count = Column(Integer, nullable=False, default=0)
    records_skipped = Column(Integer, nullable=False, default=0)

    # Timestamps
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    last_checkpoint_time = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_checkpoint_owner", "owner_id", unique=True),
    )
