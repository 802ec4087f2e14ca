"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class, portable column types and shared enums
    clinical_note: Unstructured notes, the raw input of extraction
    symptom_master: Symptom library imported from reference files
    extracted_symptom: Derived records produced by extraction
    checkpoint: Per-owner progress snapshot for resume-on-failure
    extraction_run: Run audit trail and metrics
    unit_outcome: Per-unit outcome ledger used by reconciliation

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and fall back to JSON on other dialects, so the
    same schema runs on SQLite for tests.

Usage:
    from models import ClinicalNote, ExtractedSymptom, RunCheckpoint
    from models.base import ExtractionStatus, RunStatus

Relationships:
    - ClinicalNote (per patient) → WorkUnit → ExtractedSymptom (one-to-many)
    - RunCheckpoint → ExtractionRun (one live checkpoint, many audit rows)
"""

from models.base import Base, ExtractionStatus, RunStatus
from models.checkpoint import RunCheckpoint
from models.clinical_note import ClinicalNote
from models.extracted_symptom import ExtractedSymptom
from models.extraction_run import ExtractionRun
from models.symptom_master import SymptomMaster
from models.unit_outcome import WorkUnitOutcome

__all__ = [
    "Base",
    "ExtractionStatus",
    "RunStatus",
    "ClinicalNote",
    "SymptomMaster",
    "ExtractedSymptom",
    "RunCheckpoint",
    "ExtractionRun",
    "WorkUnitOutcome",
]
