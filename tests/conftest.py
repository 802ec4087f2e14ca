"""
Pytest configuration and fixtures
"""

import os

# Settings are read at import time; keep the app off the production database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator, Dict, List, Optional

from models import Base
from models.symptom_master import SymptomMaster
from core.exceptions import TransientStoreError
from ingestion.checkpoint_store import CheckpointStore
from schemas.checkpoint import CheckpointSnapshot
from schemas.work_unit import WorkUnit


# "chest pain" at 16, "pain" at 22, "trouble sleeping" at 31
NOTE_TEXT = "Patient reports chest pain and trouble sleeping."
MENTIONS_PER_NOTE = 3


def make_work_units(count: int, note_text: str = NOTE_TEXT) -> List[WorkUnit]:
    """One single-note unit per patient, ids P0000, P0001, ..."""
    return [
        WorkUnit(
            unit_id=f"P{i:04d}",
            payload=[{
                "patient_id": f"P{i:04d}",
                "note_id": f"N{i:04d}",
                "dos_date": "2024-01-15",
                "note_text": note_text,
            }],
        )
        for i in range(count)
    ]


class InMemoryCheckpointStore(CheckpointStore):
    """Checkpoint store double recording every save"""

    def __init__(self):
        self.snapshots: Dict[str, CheckpointSnapshot] = {}
        self.history: List[CheckpointSnapshot] = []
        self.cleared: List[str] = []
        self.fail_saves = False
        self.load_error: Optional[Exception] = None
        self.clear_error: Optional[Exception] = None

    async def save(self, owner_id, snapshot):
        if self.fail_saves:
            raise TransientStoreError("Checkpoint store unreachable", context={"owner_id": owner_id})
        self.snapshots[owner_id] = snapshot.model_copy(deep=True)
        self.history.append(snapshot.model_copy(deep=True))

    async def load(self, owner_id):
        if self.load_error is not None:
            raise self.load_error
        snapshot = self.snapshots.get(owner_id)
        return snapshot.model_copy(deep=True) if snapshot else None

    async def clear(self, owner_id):
        if self.clear_error is not None:
            raise self.clear_error
        self.snapshots.pop(owner_id, None)
        self.cleared.append(owner_id)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine (SQLite file unless TEST_DATABASE_URL is set)"""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # Disable connection pooling for tests
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def memory_store():
    return InMemoryCheckpointStore()


@pytest.fixture
def symptom_library():
    """Symptom library rows in canonical form"""
    return [
        {
            "symptom_id": "S001",
            "symptom_segment": "chest pain",
            "diagnosis": "Angina pectoris",
            "diagnostic_category": "Cardiovascular",
            "diagnosis_icd10_code": "I20.9",
            "symp_prob": "Symptom",
        },
        {
            "symptom_id": "S002",
            "symptom_segment": "pain",
            "diagnosis": "Pain, unspecified",
            "diagnostic_category": "General",
            "diagnosis_icd10_code": "R52",
            "symp_prob": "Symptom",
        },
        {
            "symptom_id": "S003",
            "symptom_segment": "trouble sleeping",
            "diagnosis": "Insomnia",
            "diagnostic_category": "Sleep",
            "diagnosis_icd10_code": "G47.00",
            "symp_prob": "Symptom",
        },
        {
            "symptom_id": "H001",
            "symptom_segment": "homeless",
            "diagnosis": "Homelessness",
            "diagnostic_category": "Housing",
            "diagnosis_icd10_code": "Z59.0",
            "symp_prob": "Problem",
            "zcode_hrsn": "ZCode/HRSN",
            "hrsn_category": "housing_status",
        },
        {
            "symptom_id": "H002",
            "symptom_segment": "food insecurity",
            "diagnosis": "Lack of adequate food",
            "diagnostic_category": "Food",
            "diagnosis_icd10_code": "Z59.4",
            "symp_prob": "Problem",
            "zcode_hrsn": "ZCode/HRSN",
            "hrsn_category": "food_status",
        },
    ]


@pytest_asyncio.fixture
async def seeded_library(db_session, symptom_library):
    """Symptom library stored in the test database"""
    for row in symptom_library:
        db_session.add(SymptomMaster(**row))
    await db_session.commit()
    return symptom_library


@pytest.fixture
def unit_factory():
    """make_work_units as a fixture"""
    return make_work_units
