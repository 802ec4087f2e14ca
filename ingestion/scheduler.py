import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import distinct, select

from core.config import settings
from core.database import async_session_maker
from core.exceptions import PipelineException, RunInProgressError
from ingestion.checkpoint_store import SQLCheckpointStore
from ingestion.pipeline import reconcile_owner, run_extraction
from ingestion.run_guard import SingleFlightGuard, run_guard
from models.unit_outcome import WorkUnitOutcome

logger = logging.getLogger(__name__)


class ExtractionScheduler:
    """
    Background jobs:
    - resume_job: restart runs whose checkpoint stopped advancing
    - reconcile_job: reprocess failed or short units of finished runs
    """

    def __init__(self, session_factory=None, guard: SingleFlightGuard = None):
        self.scheduler = AsyncIOScheduler()
        self.session_factory = session_factory or async_session_maker
        self.guard = guard or run_guard

    async def resume_stale_runs(self):
        """Job to resume interrupted runs"""
        logger.info("Scheduler: checking for stale checkpoints")
        async with self.session_factory() as session:
            store = SQLCheckpointStore(session)
            stale = await store.list_stale(timedelta(minutes=settings.STALE_CHECKPOINT_MINUTES))

        for snapshot in stale:
            if self.guard.is_running(snapshot.owner_id):
                continue
            logger.info(
                f"Scheduler: resuming {snapshot.owner_id} "
                f"({snapshot.completed_count}/{snapshot.total_units} units done)"
            )
            async with self.session_factory() as session:
                try:
                    summary = await run_extraction(session, snapshot.owner_id, guard=self.guard)
                    logger.info(
                        f"Scheduler: resumed run for {snapshot.owner_id} finished "
                        f"({summary.status.value}, processed={summary.processed})"
                    )
                except RunInProgressError:
                    logger.info(f"Scheduler: {snapshot.owner_id} started elsewhere, skipping")
                except PipelineException as e:
                    logger.error(
                        f"Scheduler: resume failed for {snapshot.owner_id} - {e.message}",
                        extra={"error_context": e.to_dict()}
                    )

    async def reconcile_owners(self):
        """Job to reconcile every owner without a live checkpoint"""
        async with self.session_factory() as session:
            result = await session.execute(select(distinct(WorkUnitOutcome.owner_id)))
            owners = sorted(result.scalars().all())
            live = {s.owner_id for s in await SQLCheckpointStore(session).list_all()}

        for owner_id in owners:
            if owner_id in live or self.guard.is_running(owner_id):
                continue
            async with self.session_factory() as session:
                try:
                    await reconcile_owner(session, owner_id, guard=self.guard)
                except RunInProgressError:
                    logger.info(f"Scheduler: {owner_id} busy, reconciliation skipped")
                except PipelineException as e:
                    logger.error(
                        f"Scheduler: reconciliation failed for {owner_id} - {e.message}",
                        extra={"error_context": e.to_dict()}
                    )

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.resume_stale_runs,
            trigger=IntervalTrigger(minutes=settings.RESUME_INTERVAL_MINUTES),
            id="resume_job",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self.reconcile_owners,
            trigger=IntervalTrigger(minutes=settings.RECONCILE_INTERVAL_MINUTES),
            id="reconcile_job",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info("Extraction scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Extraction scheduler stopped")
