"""
Pydantic schemas for data validation and serialization.

This package defines the typed values that flow through the pipeline:

Schemas:
    work_unit: WorkUnit and the NoteInput rows it carries
    records: Tagged derived/reference records with natural-key projection
    checkpoint: CheckpointSnapshot, the in-memory form of a checkpoint row
    run: Per-unit outcomes, run summaries, import and reconciliation results
    api: API endpoint request/response schemas

Usage:
    from schemas.records import ExtractedSymptomCreate, project_natural_key
    from schemas.run import RunSummary, UnitResult

Example:
    record = SymptomMasterCreate(
        symptom_id="S001",
        symptom_segment="trouble sleeping",
        diagnosis=None,
    )

    # Blank and missing optional key fields project to None
    assert record.natural_key() == ("S001", "trouble sleeping", None, None)
"""

__all__ = [
    "WorkUnit",
    "NoteInput",
    "ExtractedSymptomCreate",
    "SymptomMasterCreate",
    "ClinicalNoteCreate",
    "CheckpointSnapshot",
    "UnitResult",
    "RunSummary",
    "ImportResult",
    "HealthCheckResponse",
]
