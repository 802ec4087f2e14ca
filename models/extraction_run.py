from sqlalchemy import Column, Integer, String, Enum, DateTime, Float, Text, Boolean, Index
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, RunStatus


class ExtractionRun(Base):
    """
    Audit record for each coordinator invocation.

    Purpose:
    - Audit trail of all runs, including resumed ones
    - Performance monitoring
    - Error tracking and debugging
    """
    __tablename__ = "extraction_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False, index=True)

    owner_id = Column(String(100), nullable=False, index=True)

    status = Column(Enum(RunStatus), default=RunStatus.RUNNING, nullable=False, index=True)
    resumed = Column(Boolean, nullable=False, default=False)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    total_units = Column(Integer, default=0)
    units_processed = Column(Integer, default=0)
    units_skipped = Column(Integer, default=0)
    units_failed = Column(Integer, default=0)
    records_added = Column(Integer, default=0)
    records_skipped = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_extraction_run_owner_started", "owner_id", "started_at"),
    )
