from sqlalchemy import Column, Integer, String, Text, DateTime, Index
from datetime import datetime
from models.base import Base


class SymptomMaster(Base):
    """
    Symptom library: the patterns extraction matches note text against.

    Rows are imported from a reference CSV through the dedup loader. The
    natural key is (symptom_id, symptom_segment, diagnosis,
    diagnostic_category); diagnosis and diagnostic_category are optional and
    compare NULL-equal during dedup.
    """
    __tablename__ = "symptom_master"

    id = Column(Integer, primary_key=True, autoincrement=True)

    symptom_id = Column(String(100), nullable=False, index=True)
    symptom_segment = Column(Text, nullable=False)
    diagnosis = Column(Text, nullable=True)
    diagnostic_category = Column(Text, nullable=True, index=True)

    diagnosis_icd10_code = Column(String(50), nullable=True)
    symp_prob = Column(String(20), nullable=True)  # "Symptom" or "Problem"
    zcode_hrsn = Column(String(50), nullable=True)
    hrsn_category = Column(String(100), nullable=True)  # e.g. housing_status

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "ux_symptom_master_natural_key",
            "symptom_id", "symptom_segment", "diagnosis", "diagnostic_category",
            unique=True,
            postgresql_nulls_not_distinct=True,
        ),
    )
