"""
Unit tests for the log context
"""

import logging

import pytest

from core.logging import LOG_FORMAT, ContextFilter, current_context, log_context
from ingestion.coordinator import RunCoordinator
from models.base import ExtractionStatus
from schemas.run import UnitResult


def make_record(message="hello"):
    return logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)


def render(record):
    ContextFilter().filter(record)
    return logging.Formatter(LOG_FORMAT).format(record)


class TestContextFilter:

    def test_defaults_outside_any_context(self):
        line = render(make_record())

        assert "req=- owner=- unit=- | hello" in line

    def test_bound_values_rendered(self):
        with log_context(request_id="req-1", owner_id="clinic_1"):
            with log_context(unit_id="P0007"):
                line = render(make_record())

        assert "req=req-1 owner=clinic_1 unit=P0007" in line

    def test_context_restored_on_exit(self):
        with log_context(owner_id="clinic_1"):
            with log_context(owner_id="clinic_2"):
                assert current_context()["owner_id"] == "clinic_2"
            assert current_context()["owner_id"] == "clinic_1"

        assert current_context() == {"request_id": None, "owner_id": None, "unit_id": None}

    def test_context_restored_after_error(self):
        with pytest.raises(RuntimeError):
            with log_context(unit_id="P0001"):
                raise RuntimeError("boom")

        assert current_context()["unit_id"] is None

    def test_explicit_extra_wins(self):
        record = make_record()
        record.owner_id = "from_extra"

        with log_context(owner_id="clinic_1"):
            ContextFilter().filter(record)

        assert record.owner_id == "from_extra"

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            with log_context(patient="P1"):
                pass


@pytest.mark.asyncio
async def test_coordinator_binds_owner_and_unit(memory_store, unit_factory):
    seen = []

    def callback(unit):
        seen.append(current_context())
        return UnitResult(unit_id=unit.unit_id, status=ExtractionStatus.SUCCESS)

    await RunCoordinator(memory_store).run("clinic_1", unit_factory(2), callback)

    assert [(c["owner_id"], c["unit_id"]) for c in seen] == [("clinic_1", "P0000"), ("clinic_1", "P0001")]
    assert current_context()["owner_id"] is None
