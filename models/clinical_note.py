from sqlalchemy import Column, String, Text, Date, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK


class ClinicalNote(Base):
    """
    Unstructured clinical note, the raw input of extraction.

    Purpose:
    - Source of work units (all notes of one patient form one unit)
    - Immutable input; extraction never rewrites it

    Design Decisions:
    - content_hash (SHA-256 of the note text) is part of the natural key so
      re-importing the same file never duplicates notes
    - note_id keeps the identifier from the upstream system when it has one
    """
    __tablename__ = "clinical_notes"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    owner_id = Column(String(100), nullable=False, index=True)
    patient_id = Column(String(100), nullable=False, index=True)
    note_id = Column(String(255), nullable=True)
    provider_id = Column(String(100), nullable=True)

    dos_date = Column(Date, nullable=False)
    note_text = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=False)

    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "ux_clinical_notes_natural_key",
            "owner_id", "patient_id", "dos_date", "content_hash",
            unique=True,
        ),
        Index("idx_clinical_notes_owner_patient", "owner_id", "patient_id"),
    )
