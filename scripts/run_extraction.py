"""
Script to run (or resume) symptom extraction for one owner
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import async_session_maker, engine
from core.exceptions import PipelineException
from core.logging import setup_logging
from ingestion.pipeline import reconcile_owner, run_extraction
from ingestion.sources.csv_source import CSVNoteSource

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run resumable symptom extraction for an owner")
    parser.add_argument("owner_id", help="Owner whose notes are processed")
    parser.add_argument("--interval", type=int, default=None, help="Units between checkpoint saves")
    parser.add_argument("--notes-csv", default=None, help="Read work units from a notes CSV instead of the database")
    parser.add_argument("--reconcile", action="store_true", help="Reprocess failed or short units afterwards")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        async with async_session_maker() as session:
            source = CSVNoteSource(args.notes_csv, args.owner_id) if args.notes_csv else None
            summary = await run_extraction(
                session,
                args.owner_id,
                source=source,
                checkpoint_interval=args.interval,
            )
            logger.info(
                f"Extraction {summary.status.value} for {args.owner_id}: "
                f"processed={summary.processed}/{summary.total_units}, "
                f"skipped={summary.skipped}, failed={summary.failed}, "
                f"derived={summary.derived_count}, elapsed={summary.elapsed_ms}ms"
            )

            if args.reconcile:
                report = await reconcile_owner(session, args.owner_id, source=source)
                logger.info(
                    f"Reconciliation: checked={report.checked}, recovered={report.recovered}, "
                    f"still_failing={len(report.still_failing)}"
                )
    except PipelineException as e:
        logger.error(f"Extraction failed: {e}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
