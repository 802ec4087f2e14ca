from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from datetime import datetime
from models.base import Base, ExtractionStatus


class WorkUnitOutcome(Base):
    """
    Ledger of the last terminal outcome of every work unit.

    Reconciliation compares expected_records (what the extractor produced)
    with the rows actually stored for the unit to find units that need a
    second pass. One row per (owner_id, unit_id), upserted.
    """
    __tablename__ = "work_unit_outcomes"

    id = Column(Integer, primary_key=True, autoincrement=True)

    owner_id = Column(String(100), nullable=False)
    unit_id = Column(String(255), nullable=False)

    status = Column(Enum(ExtractionStatus), nullable=False, index=True)
    expected_records = Column(Integer, nullable=False, default=0)
    detail = Column(Text, nullable=True)

    recorded_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ux_unit_outcome_owner_unit", "owner_id", "unit_id", unique=True),
    )
