"""
Wiring of the extraction run: library, extractor, loader, store, coordinator
"""

from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import FatalConfigurationError
from ingestion.base import WorkUnitSource
from ingestion.checkpoint_store import SQLCheckpointStore
from ingestion.coordinator import RunCoordinator
from ingestion.extractors.symptom_extractor import SymptomExtractor
from ingestion.loaders.dedup_loader import DedupLoader
from ingestion.outcome_ledger import UnitOutcomeLedger
from ingestion.reconciliation import Reconciler
from ingestion.run_guard import SingleFlightGuard, run_guard
from ingestion.run_recorder import SQLRunRecorder
from ingestion.sources.csv_source import CSVNoteSource
from ingestion.sources.database_source import DatabaseNoteSource
from ingestion.transformers.normalizer import ColumnNormalizer
from ingestion.unit_processor import ExtractionUnitProcessor
from models.symptom_master import SymptomMaster
from schemas.records import ClinicalNoteCreate, SymptomMasterCreate
from schemas.run import ImportResult, ReconciliationReport, RunSummary
import logging

logger = logging.getLogger(__name__)


async def load_symptom_library(session: AsyncSession) -> List[SymptomMaster]:
    result = await session.execute(select(SymptomMaster).order_by(SymptomMaster.id))
    return list(result.scalars().all())


async def build_processor(session: AsyncSession, owner_id: str) -> ExtractionUnitProcessor:
    """Extractor over the stored symptom library, writing through the dedup loader"""
    library = await load_symptom_library(session)
    if not library:
        raise FatalConfigurationError(
            "Symptom library is empty; import reference rows first",
            context={"owner_id": owner_id}
        )
    extractor = SymptomExtractor(library, owner_id)
    return ExtractionUnitProcessor(extractor, DedupLoader(session), owner_id)


async def resolve_source(session: AsyncSession, owner_id: str) -> WorkUnitSource:
    """
    Source a run reads when the caller names none.

    An interrupted run over a notes file resumes from that file; everything
    else reads the owner's stored notes.
    """
    snapshot = await SQLCheckpointStore(session).load(owner_id)
    if snapshot is None or snapshot.source_kind in (None, DatabaseNoteSource.kind):
        return DatabaseNoteSource(session, owner_id)

    if snapshot.source_kind == CSVNoteSource.kind and snapshot.source_location:
        logger.info(f"Resuming {owner_id} from notes file {snapshot.source_location}")
        return CSVNoteSource(snapshot.source_location, owner_id)

    raise FatalConfigurationError(
        "Checkpoint was written by a source that cannot be rebuilt; pass it explicitly or clear the checkpoint",
        context={
            "owner_id": owner_id,
            "source_kind": snapshot.source_kind,
            "source_location": snapshot.source_location,
        }
    )


async def run_extraction(
    session: AsyncSession,
    owner_id: str,
    source: Optional[WorkUnitSource] = None,
    checkpoint_interval: Optional[int] = None,
    guard: Optional[SingleFlightGuard] = None
) -> RunSummary:
    """
    Run (or resume) extraction for one owner.

    Raises:
        RunInProgressError: The owner already has a run in this process
        FatalConfigurationError: Empty library, invalid input or a checkpoint
            that does not match the source
    """
    guard = guard or run_guard
    async with guard.hold(owner_id):
        processor = await build_processor(session, owner_id)
        coordinator = RunCoordinator(
            SQLCheckpointStore(session),
            run_recorder=SQLRunRecorder(session),
        )
        return await coordinator.run(
            owner_id,
            source or await resolve_source(session, owner_id),
            processor,
            checkpoint_interval=checkpoint_interval,
        )


async def reconcile_owner(
    session: AsyncSession,
    owner_id: str,
    source: Optional[WorkUnitSource] = None,
    guard: Optional[SingleFlightGuard] = None
) -> ReconciliationReport:
    """Reprocess the owner's failed or short units"""
    guard = guard or run_guard
    async with guard.hold(owner_id):
        processor = await build_processor(session, owner_id)
        reconciler = Reconciler(
            UnitOutcomeLedger(session),
            source or await resolve_source(session, owner_id),
            processor,
        )
        return await reconciler.reconcile(owner_id)


async def import_symptom_rows(session: AsyncSession, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
    """Normalize symptom-library rows and import them with dedup"""
    normalizer = ColumnNormalizer.for_symptoms()
    loader = DedupLoader(session)
    return await loader.import_batch(
        (normalizer.normalize_record(row) for row in rows),
        SymptomMasterCreate.NATURAL_KEY_FIELDS,
        "symptom_master",
    )


async def import_note_rows(
    session: AsyncSession,
    owner_id: str,
    rows: Iterable[Mapping[str, Any]]
) -> ImportResult:
    """Normalize clinical-note rows for an owner and import them with dedup"""
    normalizer = ColumnNormalizer.for_notes()
    loader = DedupLoader(session)
    return await loader.import_batch(
        ({**normalizer.normalize_record(row), "owner_id": owner_id} for row in rows),
        ClinicalNoteCreate.NATURAL_KEY_FIELDS,
        "clinical_note",
    )
