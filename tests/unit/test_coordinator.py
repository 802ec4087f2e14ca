"""
Unit tests for the run coordinator
"""

import pytest
from unittest.mock import AsyncMock

from core.exceptions import FatalConfigurationError, TransientStoreError
from ingestion.base import WorkUnitSource
from ingestion.coordinator import RunCoordinator
from models.base import ExtractionStatus, RunStatus
from schemas.checkpoint import CheckpointSnapshot
from schemas.run import UnitResult
from schemas.work_unit import WorkUnitState


class SimulatedCrash(BaseException):
    """Process-level interruption (not an Exception)"""


def ok(unit, added=3, skipped=0):
    return UnitResult(
        unit_id=unit.unit_id,
        status=ExtractionStatus.SUCCESS,
        records_expected=added + skipped,
        records_added=added,
        records_skipped=skipped,
    )


class Recorder:
    """Async per-unit callback that remembers which units it saw"""

    def __init__(self, crash_after=None, fail_ids=()):
        self.seen = []
        self.crash_after = crash_after
        self.fail_ids = set(fail_ids)

    async def __call__(self, unit):
        if self.crash_after is not None and len(self.seen) == self.crash_after:
            raise SimulatedCrash()
        self.seen.append(unit.unit_id)
        if unit.unit_id in self.fail_ids:
            raise ValueError(f"cannot parse {unit.unit_id}")
        return ok(unit)


class FileUnits(WorkUnitSource):
    """Fixed units that claim to come from a file"""

    kind = "csv"

    def __init__(self, owner_id, units, path):
        super().__init__(owner_id)
        self.units = units
        self.path = path

    @property
    def location(self):
        return self.path

    async def list_units(self):
        return list(self.units)


class TestRunCoordinator:
    """Test resumable run orchestration"""

    @pytest.mark.asyncio
    async def test_fresh_run_processes_every_unit(self, memory_store, unit_factory):
        units = unit_factory(120)
        callback = Recorder()

        summary = await RunCoordinator(memory_store).run("clinic_1", units, callback, checkpoint_interval=50)

        assert callback.seen == [u.unit_id for u in units]
        assert summary.status == RunStatus.COMPLETED
        assert summary.processed == 120
        assert summary.skipped == 0
        assert summary.failed == 0
        assert summary.derived_count == 360
        assert summary.resumed is False
        assert all(u.state == WorkUnitState.DONE for u in units)

        # Saved at 50 and 100, cleared at the end
        assert [s.completed_count for s in memory_store.history] == [50, 100]
        assert memory_store.cleared == ["clinic_1"]
        assert "clinic_1" not in memory_store.snapshots

    @pytest.mark.asyncio
    async def test_resume_skips_completed_units(self, memory_store, unit_factory):
        units = unit_factory(120)
        memory_store.snapshots["clinic_1"] = CheckpointSnapshot(
            owner_id="clinic_1",
            completed_unit_ids={u.unit_id for u in units[:50]},
            last_processed_unit_id="P0049",
            total_units=120,
            derived_record_count=150,
        )
        callback = Recorder()

        summary = await RunCoordinator(memory_store).run("clinic_1", units, callback, checkpoint_interval=50)

        assert callback.seen == [u.unit_id for u in units[50:]]
        assert summary.resumed is True
        assert summary.skipped == 50
        assert summary.processed == 120
        assert summary.derived_count == 360

    @pytest.mark.asyncio
    async def test_crash_keeps_last_saved_checkpoint(self, memory_store, unit_factory):
        """Scenario A: crash after 103 units, resume processes the remaining 20"""
        units = unit_factory(120)
        coordinator = RunCoordinator(memory_store, checkpoint_interval=50)

        with pytest.raises(SimulatedCrash):
            await coordinator.run("clinic_1", units, Recorder(crash_after=103))

        snapshot = memory_store.snapshots["clinic_1"]
        assert snapshot.completed_count == 100
        assert snapshot.last_processed_unit_id == "P0099"
        assert memory_store.cleared == []

        callback = Recorder()
        summary = await coordinator.run("clinic_1", unit_factory(120), callback)

        assert len(callback.seen) == 20
        assert callback.seen[0] == "P0100"
        assert summary.processed == 120
        assert summary.skipped == 100
        assert memory_store.cleared == ["clinic_1"]

    @pytest.mark.asyncio
    async def test_completed_set_only_grows(self, memory_store, unit_factory):
        await RunCoordinator(memory_store).run("clinic_1", unit_factory(30), Recorder(), checkpoint_interval=7)

        saved = [s.completed_unit_ids for s in memory_store.history]
        assert len(saved) == 4
        for earlier, later in zip(saved, saved[1:]):
            assert earlier < later

    @pytest.mark.asyncio
    async def test_unit_failure_does_not_abort_run(self, memory_store, unit_factory):
        callback = Recorder(fail_ids={"P0003"})

        summary = await RunCoordinator(memory_store).run("clinic_1", unit_factory(10), callback, checkpoint_interval=5)

        assert len(callback.seen) == 10
        assert summary.processed == 10
        assert summary.failed == 1
        assert summary.status == RunStatus.PARTIAL
        failed = [r for r in summary.unit_results if r.status == ExtractionStatus.FAILED]
        assert [r.unit_id for r in failed] == ["P0003"]
        assert "ValueError" in failed[0].detail
        # Failed units still count as done for the checkpoint
        assert "P0003" in memory_store.history[0].completed_unit_ids
        assert "P0003" in memory_store.history[0].failed_unit_ids

    @pytest.mark.asyncio
    async def test_save_failure_is_logged_and_run_continues(self, memory_store, unit_factory):
        memory_store.fail_saves = True
        callback = Recorder()

        summary = await RunCoordinator(memory_store).run("clinic_1", unit_factory(12), callback, checkpoint_interval=5)

        assert len(callback.seen) == 12
        assert summary.processed == 12
        assert memory_store.history == []
        assert memory_store.cleared == ["clinic_1"]

    @pytest.mark.asyncio
    async def test_load_failure_surfaces_before_processing(self, memory_store, unit_factory):
        memory_store.load_error = TransientStoreError("store down")
        callback = Recorder()

        with pytest.raises(TransientStoreError):
            await RunCoordinator(memory_store).run("clinic_1", unit_factory(5), callback)

        assert callback.seen == []

    @pytest.mark.asyncio
    async def test_sync_callback_supported(self, memory_store, unit_factory):
        summary = await RunCoordinator(memory_store).run("clinic_1", unit_factory(4), ok)

        assert summary.processed == 4
        assert summary.derived_count == 12

    @pytest.mark.asyncio
    async def test_callback_returning_wrong_type_fails_unit(self, memory_store, unit_factory):
        summary = await RunCoordinator(memory_store).run("clinic_1", unit_factory(3), lambda unit: {"ok": True})

        assert summary.failed == 3
        assert summary.processed == 3

    @pytest.mark.asyncio
    async def test_duplicate_units_counted(self, memory_store, unit_factory):
        summary = await RunCoordinator(memory_store).run(
            "clinic_1", unit_factory(4), lambda unit: ok(unit, added=0, skipped=3)
        )

        assert summary.duplicate_units == 4
        assert summary.skipped == 4
        assert summary.derived_count == 0
        assert summary.records_skipped == 12

    @pytest.mark.asyncio
    async def test_default_interval_from_settings(self, memory_store, unit_factory, monkeypatch):
        monkeypatch.setattr("ingestion.coordinator.settings.CHECKPOINT_INTERVAL", 2)

        await RunCoordinator(memory_store).run("clinic_1", unit_factory(5), ok)

        assert [s.completed_count for s in memory_store.history] == [2, 4]

    @pytest.mark.asyncio
    async def test_run_recorder_notified(self, memory_store, unit_factory):
        recorder = AsyncMock()
        recorder.start.return_value = 7

        summary = await RunCoordinator(memory_store, run_recorder=recorder).run("clinic_1", unit_factory(2), ok)

        recorder.start.assert_awaited_once_with("clinic_1", 2, False)
        recorder.finish.assert_awaited_once_with(7, summary)

    @pytest.mark.asyncio
    async def test_clear_failure_surfaces_and_keeps_checkpoint(self, memory_store, unit_factory):
        memory_store.clear_error = TransientStoreError("store down")
        recorder = AsyncMock()
        recorder.start.return_value = 7

        with pytest.raises(TransientStoreError) as exc_info:
            await RunCoordinator(memory_store, run_recorder=recorder).run(
                "clinic_1", unit_factory(120), Recorder(), checkpoint_interval=50
            )

        assert memory_store.snapshots["clinic_1"].completed_count == 100
        assert memory_store.cleared == []
        recorder.fail.assert_awaited_once_with(7, exc_info.value)
        recorder.finish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_source_recorded_in_checkpoint(self, memory_store, unit_factory):
        source = FileUnits("clinic_1", unit_factory(10), "/data/notes.csv")

        await RunCoordinator(memory_store).run("clinic_1", source, Recorder(), checkpoint_interval=5)

        assert memory_store.history[0].source_kind == "csv"
        assert memory_store.history[0].source_location == "/data/notes.csv"


class TestRunCoordinatorResumeMismatch:
    """A checkpoint is never resumed (and cleared) against other units"""

    @staticmethod
    def checkpoint(units, **kwargs):
        return CheckpointSnapshot(
            owner_id="clinic_1",
            completed_unit_ids={u.unit_id for u in units},
            last_processed_unit_id=units[-1].unit_id,
            total_units=120,
            **kwargs
        )

    @pytest.mark.asyncio
    async def test_disjoint_units_refused(self, memory_store, unit_factory):
        memory_store.snapshots["clinic_1"] = self.checkpoint(unit_factory(50))
        other_units = [u.model_copy(update={"unit_id": f"X{u.unit_id}"}) for u in unit_factory(3)]
        callback = Recorder()

        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", other_units, callback)

        assert callback.seen == []
        assert memory_store.cleared == []
        assert memory_store.snapshots["clinic_1"].completed_count == 50

    @pytest.mark.asyncio
    async def test_empty_source_refused(self, memory_store, unit_factory):
        memory_store.snapshots["clinic_1"] = self.checkpoint(unit_factory(50))

        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", [], Recorder())

        assert memory_store.cleared == []
        assert "clinic_1" in memory_store.snapshots

    @pytest.mark.asyncio
    async def test_other_file_refused(self, memory_store, unit_factory):
        units = unit_factory(120)
        memory_store.snapshots["clinic_1"] = self.checkpoint(
            units[:50], source_kind="csv", source_location="/data/january.csv"
        )
        callback = Recorder()

        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run(
                "clinic_1", FileUnits("clinic_1", units, "/data/february.csv"), callback
            )

        assert callback.seen == []
        assert memory_store.cleared == []

    @pytest.mark.asyncio
    async def test_same_file_resumes(self, memory_store, unit_factory):
        units = unit_factory(120)
        memory_store.snapshots["clinic_1"] = self.checkpoint(
            units[:50], source_kind="csv", source_location="/data/january.csv"
        )
        callback = Recorder()

        summary = await RunCoordinator(memory_store).run(
            "clinic_1", FileUnits("clinic_1", units, "/data/january.csv"), callback
        )

        assert len(callback.seen) == 70
        assert summary.resumed is True
        assert summary.skipped == 50


class TestRunCoordinatorValidation:
    """Invalid input is rejected before any processing"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("interval", [0, -5, "10", True])
    async def test_invalid_interval(self, memory_store, unit_factory, interval):
        callback = Recorder()
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", unit_factory(3), callback, checkpoint_interval=interval)
        assert callback.seen == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("owner_id", ["", "   ", None])
    async def test_missing_owner(self, memory_store, unit_factory, owner_id):
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run(owner_id, unit_factory(3), Recorder())

    @pytest.mark.asyncio
    async def test_duplicate_unit_ids(self, memory_store, unit_factory):
        units = unit_factory(3) + unit_factory(1)
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", units, Recorder())

    @pytest.mark.asyncio
    @pytest.mark.parametrize("source", [42, "P0001", [{"unit_id": "P0001"}]])
    async def test_malformed_source(self, memory_store, source):
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", source, Recorder())

    @pytest.mark.asyncio
    async def test_non_callable_callback(self, memory_store, unit_factory):
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", unit_factory(1), "not callable")

    @pytest.mark.asyncio
    async def test_no_checkpoint_written_on_invalid_input(self, memory_store):
        with pytest.raises(FatalConfigurationError):
            await RunCoordinator(memory_store).run("clinic_1", 42, Recorder(), checkpoint_interval=1)
        assert memory_store.history == []
        assert memory_store.cleared == []
