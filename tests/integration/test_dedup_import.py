"""
Tests for natural-key dedup against a real database
"""

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import func, select

from ingestion.loaders.dedup_loader import DedupLoader
from ingestion.pipeline import import_symptom_rows
from models.symptom_master import SymptomMaster
from schemas.records import SymptomMasterCreate
from schemas.run import WriteOutcome

KEY = SymptomMasterCreate.NATURAL_KEY_FIELDS


async def library_size(session):
    result = await session.execute(select(func.count()).select_from(SymptomMaster))
    return result.scalar_one()


def library_rows(count):
    return [
        {
            "symptom_id": f"S{i:04d}",
            "symptom_segment": f"symptom {i}",
            "diagnosis": f"Diagnosis {i % 7}" if i % 3 else None,
            "diagnostic_category": "General",
        }
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_batch_with_prestored_rows(db_session):
    """1000 candidate rows, 40 already stored: 960 added, 40 skipped"""
    rows = library_rows(1000)
    loader = DedupLoader(db_session)

    prestored = await loader.import_batch(rows[100:140], KEY, "symptom_master")
    assert prestored.added == 40

    result = await loader.import_batch(rows, KEY, "symptom_master")

    assert (result.added, result.skipped, result.errored) == (960, 40, 0)
    assert [o.index for o in result.outcomes if o.outcome == WriteOutcome.SKIPPED] == list(range(100, 140))
    assert await library_size(db_session) == 1000


@pytest.mark.asyncio
async def test_missing_optional_key_fields_compare_equal(db_session):
    """Absent, blank and NULL diagnosis are the same natural key"""
    rows = [
        {"symptom_id": "S1", "symptom_segment": "cough"},
        {"symptom_id": "S1", "symptom_segment": "cough", "diagnosis": None},
        {"symptom_id": "S1", "symptom_segment": "cough", "diagnosis": "  ", "diagnostic_category": ""},
        {"symptom_id": "S1", "symptom_segment": "cough", "diagnosis": "Bronchitis"},
    ]

    result = await DedupLoader(db_session).import_batch(rows, KEY, "symptom_master")

    assert [o.outcome for o in result.outcomes] == [
        WriteOutcome.ADDED, WriteOutcome.SKIPPED, WriteOutcome.SKIPPED, WriteOutcome.ADDED
    ]
    assert await library_size(db_session) == 2


@pytest.mark.asyncio
async def test_lost_race_counts_as_skipped(db_session):
    """A row stored between the existence check and the insert is a benign duplicate"""
    row = {"symptom_id": "S1", "symptom_segment": "cough", "diagnosis": "Bronchitis", "diagnostic_category": "Resp"}
    loader = DedupLoader(db_session)
    assert await loader.insert_if_absent(SymptomMaster, row, KEY) == WriteOutcome.ADDED

    with patch.object(DedupLoader, "exists", AsyncMock(return_value=False)):
        outcome = await loader.insert_if_absent(SymptomMaster, row, KEY)

    assert outcome == WriteOutcome.SKIPPED
    assert await library_size(db_session) == 1


@pytest.mark.asyncio
async def test_import_symptom_rows_maps_csv_headers(db_session):
    rows = [
        {"symptomId": 1001.0, "symptomSegment": "Trouble sleeping", "\ufeffdiagnosticCategory": "Sleep",
         "Diagnosis": "Insomnia", "sympProb": "Symptom"},
        {"symptomId": 1002.0, "symptomSegment": "homeless", "Diagnosis": "Homelessness",
         "sympProb": "Problem", "HRSN Mapping": "Housing Status"},
        {"symptomId": 1003.0, "Diagnosis": "missing segment"},
    ]

    result = await import_symptom_rows(db_session, rows)

    assert (result.added, result.skipped, result.errored) == (2, 0, 1)

    stored = await db_session.execute(select(SymptomMaster).where(SymptomMaster.symptom_id == "1002"))
    homeless = stored.scalar_one()
    assert homeless.hrsn_category == "housing_status"
    assert homeless.symp_prob == "Problem"

    again = await import_symptom_rows(db_session, rows[:2])
    assert (again.added, again.skipped) == (0, 2)
