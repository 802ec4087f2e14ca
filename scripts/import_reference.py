"""
Script to import a symptom library or clinical notes CSV with dedup
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

import pandas as pd

from core.database import async_session_maker, engine
from core.exceptions import PipelineException
from core.logging import setup_logging
from ingestion.pipeline import import_note_rows, import_symptom_rows

setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Import reference rows with natural-key dedup")
    parser.add_argument("kind", choices=["symptoms", "notes"], help="What the CSV contains")
    parser.add_argument("file", help="CSV file path")
    parser.add_argument("--owner", default=None, help="Owner id (required for notes)")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    if args.kind == "notes" and not args.owner:
        logger.error("--owner is required when importing notes")
        return 2

    logger.info(f"Reading {args.file}")
    rows = pd.read_csv(args.file, encoding="utf-8-sig").to_dict(orient="records")
    logger.info(f"Read {len(rows)} rows")

    try:
        async with async_session_maker() as session:
            if args.kind == "symptoms":
                result = await import_symptom_rows(session, rows)
            else:
                result = await import_note_rows(session, args.owner, rows)
    except PipelineException as e:
        logger.error(f"Import failed: {e}", extra={"error_context": e.to_dict()})
        return 1
    finally:
        await engine.dispose()

    logger.info(f"Import finished: added={result.added}, skipped={result.skipped}, errored={result.errored}")
    return 0 if result.errored == 0 else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
