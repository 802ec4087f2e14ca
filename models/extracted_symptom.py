from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONType


class ExtractedSymptom(Base):
    """
    Derived record: one symptom or HRSN mention found in a clinical note.

    Natural key:
    - owner_id, patient_id, note_id, dos_date, symptom_segment, position_in_text
    - note_id is optional (CSV notes may not carry one) and compares NULL-equal

    mention_id is a UUIDv5 over the natural key, so re-extracting the same
    unit after a crash produces identical rows.
    """
    __tablename__ = "extracted_symptoms"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    mention_id = Column(String(36), nullable=False, unique=True)

    # Natural key
    owner_id = Column(String(100), nullable=False, index=True)
    patient_id = Column(String(100), nullable=False, index=True)
    note_id = Column(String(255), nullable=True)
    dos_date = Column(Date, nullable=False)
    symptom_segment = Column(Text, nullable=False)
    position_in_text = Column(Integer, nullable=False)

    # Symptom library attributes copied at extraction time
    symptom_id = Column(String(100), nullable=True)
    diagnosis = Column(Text, nullable=True)
    diagnosis_icd10_code = Column(String(50), nullable=True)
    diagnostic_category = Column(Text, nullable=True)
    symp_prob = Column(String(20), nullable=True)
    zcode_hrsn = Column(String(50), nullable=True)
    hrsn_indicators = Column(JSONType, nullable=True)

    provider_id = Column(String(100), nullable=True)
    extracted_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "ux_extracted_symptoms_natural_key",
            "owner_id", "patient_id", "note_id", "dos_date",
            "symptom_segment", "position_in_text",
            unique=True,
            postgresql_nulls_not_distinct=True,
        ),
        Index("idx_extracted_owner_patient", "owner_id", "patient_id"),
    )
