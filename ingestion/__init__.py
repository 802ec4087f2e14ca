"""
Extraction pipeline components: resumable runs over clinical notes.

This package contains everything between a work-unit source and the
derived-record tables:

Modules:
    base: WorkUnitSource and BatchExtractor contracts
    checkpoint_store: Durable per-owner progress snapshots
    coordinator: RunCoordinator, the resumable run loop
    unit_processor: Per-unit callback (extract, dedup-write, record outcome)
    outcome_ledger: Per-unit outcomes read by reconciliation
    reconciliation: Reprocessing of failed or short units
    run_guard: Single-flight guard (one active run per owner)
    run_recorder: extraction_runs audit trail
    pipeline: Wiring used by the API, the scripts and the scheduler
    scheduler: APScheduler jobs for resume and reconciliation

Subpackages:
    extractors: SymptomExtractor (symptom library pattern matching)
    sources: Database- and CSV-backed work-unit sources
    transformers: CSV column normalization
    loaders: DedupLoader (existence check, then insert)

Architecture:
    A run walks the owner's work units in a fixed order:

    1. Restore - load the checkpoint, skip completed units
    2. Process - extract and write each unit, committing every record
    3. Checkpoint - save progress every CHECKPOINT_INTERVAL units
    4. Complete - clear the checkpoint, return a RunSummary

    A crash loses at most one interval of progress; the repeated units are
    absorbed by the dedup layer.

Usage:
    from ingestion.pipeline import run_extraction

    summary = await run_extraction(session, "clinic_42")
    print(f"{summary.processed}/{summary.total_units} units, {summary.derived_count} mentions")

Error Handling:
    Per-unit failures become FAILED outcomes in the summary; checkpoint and
    configuration problems raise exceptions from core.exceptions.
"""

__all__ = [
    "WorkUnitSource",
    "BatchExtractor",
    "SQLCheckpointStore",
    "RunCoordinator",
    "ExtractionUnitProcessor",
    "SymptomExtractor",
    "DedupLoader",
    "Reconciler",
    "SingleFlightGuard",
]
