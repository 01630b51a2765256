"""Tests for the worker protocol.

Interleavings are forced deterministically: the delay window's sleep
function runs a competing worker, so the "other process" always lands
inside the critical section.
"""

from pathlib import Path

import pytest

from racelab.core.delay import DelayWindow
from racelab.core.lock_manager import FileLock
from racelab.core.store import MemoryResourceStore
from racelab.core.verify import verify_counter, verify_stock
from racelab.core.worker import check_then_act, read_modify_write, run_worker
from racelab.models import RunReport, WorkerRun, WorkerShape, WorkerSpec


def _interleave(action) -> DelayWindow:
    """Window whose 'sleep' runs ``action`` once, then does nothing."""
    done = False

    def sleep(_: float) -> None:
        nonlocal done
        if not done:
            done = True
            action()

    return DelayWindow(1, 1, sleep=sleep)


@pytest.mark.unit
class TestReadModifyWrite:
    """Tests for read_modify_write."""

    def test_increments_value(self, memory_store: MemoryResourceStore) -> None:
        """Unprotected cycle adds delta when nobody interferes."""
        assert read_modify_write(memory_store, 3, "w1", DelayWindow.none())
        record = memory_store.read()
        assert record.value == 3
        assert record.last_writer == "w1"

    def test_unprotected_loses_update(self, memory_store: MemoryResourceStore) -> None:
        """A write inside the window is overwritten with a stale value."""
        window = _interleave(
            lambda: read_modify_write(memory_store, 1, "w2", DelayWindow.none())
        )
        read_modify_write(memory_store, 1, "w1", window)
        # Two increments, one survives
        assert memory_store.read().value == 1
        assert memory_store.read().last_writer == "w1"

    def test_locked_excludes_competitor(
        self, memory_store: MemoryResourceStore, tmp_path: Path
    ) -> None:
        """A competitor cannot enter while the lock is held."""
        competitor = FileLock("counter", tmp_path, max_retries=1, owner="w2")
        competitor_result: list[bool] = []
        window = _interleave(
            lambda: competitor_result.append(
                read_modify_write(memory_store, 1, "w2", DelayWindow.none(), competitor)
            )
        )
        holder = FileLock("counter", tmp_path, owner="w1")
        assert read_modify_write(memory_store, 1, "w1", window, holder)

        assert competitor_result == [False]
        assert memory_store.read().value == 1
        assert not holder.path.exists()

    def test_locked_sequential_is_exact(
        self, memory_store: MemoryResourceStore, tmp_path: Path
    ) -> None:
        """Back-to-back locked cycles all land."""
        lock = FileLock("counter", tmp_path)
        for _ in range(10):
            assert read_modify_write(memory_store, 1, "w1", DelayWindow.none(), lock)
        assert memory_store.read().value == 10
        assert memory_store.read().writes == 10

    def test_lock_failure_skips_write(
        self, memory_store: MemoryResourceStore, tmp_path: Path
    ) -> None:
        """Exhausted acquisition returns False without touching the store."""
        FileLock("counter", tmp_path, owner="holder").acquire()
        lock = FileLock("counter", tmp_path, max_retries=1, owner="w1")
        assert read_modify_write(memory_store, 1, "w1", DelayWindow.none(), lock) is False
        assert memory_store.read().value == 0


@pytest.mark.unit
class TestCheckThenAct:
    """Tests for check_then_act."""

    def test_takes_when_available(self) -> None:
        """Sufficient value is taken."""
        store = MemoryResourceStore()
        store.initialize(1000)
        assert check_then_act(store, 300, "w1", DelayWindow.none()) is True
        assert store.read().value == 700

    def test_rejects_when_insufficient(self) -> None:
        """Insufficient value is rejected and nothing is written."""
        store = MemoryResourceStore()
        store.initialize(100)
        assert check_then_act(store, 300, "w1", DelayWindow.none()) is False
        assert store.read().value == 100
        assert store.read().writes == 0

    def test_exact_amount_is_allowed(self) -> None:
        """Taking everything that is left succeeds."""
        store = MemoryResourceStore()
        store.initialize(300)
        assert check_then_act(store, 300, "w1", DelayWindow.none())
        assert store.read().value == 0

    def test_unprotected_oversells(self) -> None:
        """Two buyers both pass the check for the last unit."""
        store = MemoryResourceStore()
        store.initialize(1)
        second: list[bool | None] = []
        window = _interleave(
            lambda: second.append(check_then_act(store, 1, "c2", DelayWindow.none()))
        )
        assert check_then_act(store, 1, "c1", window) is True
        assert second == [True]
        # Two sales recorded against one unit of stock
        assert store.read().value == 0

    def test_locked_prevents_oversell(self, tmp_path: Path) -> None:
        """The competitor cannot check while the holder is between check and act."""
        store = MemoryResourceStore()
        store.initialize(1)
        competitor = FileLock("stock", tmp_path, max_retries=1, owner="c2")
        second: list[bool | None] = []
        window = _interleave(
            lambda: second.append(
                check_then_act(store, 1, "c2", DelayWindow.none(), competitor)
            )
        )
        assert check_then_act(store, 1, "c1", window, FileLock("stock", tmp_path, owner="c1"))
        assert second == [None]

        # Once the holder is done, the competitor sees the real stock
        assert check_then_act(store, 1, "c2", DelayWindow.none(), competitor) is False
        assert store.read().value == 0

    def test_lock_failure_returns_none(self, tmp_path: Path) -> None:
        """Exhausted acquisition is distinct from a rejection."""
        store = MemoryResourceStore()
        store.initialize(10)
        FileLock("stock", tmp_path, owner="holder").acquire()
        lock = FileLock("stock", tmp_path, max_retries=1, owner="c1")
        assert check_then_act(store, 1, "c1", DelayWindow.none(), lock) is None
        assert store.read().value == 10


@pytest.mark.unit
class TestRunWorker:
    """Tests for run_worker."""

    def test_rmw_tally(self, memory_store: MemoryResourceStore) -> None:
        """Every repetition is attempted and applied."""
        spec = WorkerSpec(worker_id="worker-1", repetitions=5, amount=2)
        outcome = run_worker(
            spec,
            WorkerShape.READ_MODIFY_WRITE,
            memory_store,
            DelayWindow.none(),
            DelayWindow.none(),
        )
        assert outcome.worker_id == "worker-1"
        assert (outcome.attempted, outcome.applied, outcome.rejected) == (5, 5, 0)
        assert outcome.ok
        assert memory_store.read().value == 10

    def test_cta_tally(self) -> None:
        """Repetitions beyond the available stock are rejected."""
        store = MemoryResourceStore()
        store.initialize(2)
        spec = WorkerSpec(worker_id="Customer-1", repetitions=3, amount=1)
        outcome = run_worker(
            spec, WorkerShape.CHECK_THEN_ACT, store, DelayWindow.none(), DelayWindow.none()
        )
        assert (outcome.attempted, outcome.applied, outcome.rejected) == (3, 2, 1)
        assert store.read().value == 0

    def test_lock_failures_counted(
        self, memory_store: MemoryResourceStore, tmp_path: Path
    ) -> None:
        """Skipped cycles are reported and the worker is not ok."""
        FileLock("counter", tmp_path, owner="holder").acquire()
        lock = FileLock("counter", tmp_path, max_retries=1, owner="w1")
        spec = WorkerSpec(worker_id="worker-1", repetitions=3)
        outcome = run_worker(
            spec,
            WorkerShape.READ_MODIFY_WRITE,
            memory_store,
            DelayWindow.none(),
            DelayWindow.none(),
            lock,
        )
        assert outcome.lock_failures == 3
        assert outcome.applied == 0
        assert not outcome.ok
        assert memory_store.read().value == 0

    def test_pause_runs_before_check(self) -> None:
        """Check-then-act pauses before each check, read-modify-write after each write."""
        events: list[str] = []
        store = MemoryResourceStore()
        store.initialize(5)

        class RecordingStore(MemoryResourceStore):
            def read(self):
                events.append("read")
                return store.read()

            def write(self, record):
                events.append("write")
                store.write(record)

        pause = DelayWindow(1, 1, sleep=lambda _: events.append("pause"))
        spec = WorkerSpec(worker_id="c", repetitions=1)

        run_worker(spec, WorkerShape.CHECK_THEN_ACT, RecordingStore(), DelayWindow.none(), pause)
        assert events == ["pause", "read", "write"]

        events.clear()
        run_worker(
            spec, WorkerShape.READ_MODIFY_WRITE, RecordingStore(), DelayWindow.none(), pause
        )
        assert events == ["read", "write", "pause"]


@pytest.mark.unit
class TestInterleavingVerification:
    """Forced interleavings are caught by the verifiers."""

    def test_lost_update_detected(self, memory_store: MemoryResourceStore) -> None:
        """Counter verification reports the overwritten increment."""
        window = _interleave(
            lambda: read_modify_write(memory_store, 1, "w2", DelayWindow.none())
        )
        read_modify_write(memory_store, 1, "w1", window)

        report = RunReport(
            runs=[
                WorkerRun(
                    spec=WorkerSpec(worker_id=w),
                    exit_code=0,
                    outcome={"worker_id": w, "pid": 1, "attempted": 1, "applied": 1},
                )
                for w in ("w1", "w2")
            ]
        )
        result = verify_counter(0, memory_store.read(), report)
        assert result.race_detected
        assert result.lost == 1

    def test_oversell_detected(self) -> None:
        """Stock verification reports two sales of one unit."""
        store = MemoryResourceStore()
        store.initialize(1)
        window = _interleave(lambda: check_then_act(store, 1, "c2", DelayWindow.none()))
        check_then_act(store, 1, "c1", window)

        report = RunReport(
            runs=[
                WorkerRun(
                    spec=WorkerSpec(worker_id=c),
                    exit_code=0,
                    outcome={"worker_id": c, "pid": 1, "attempted": 1, "applied": 1},
                )
                for c in ("c1", "c2")
            ]
        )
        result = verify_stock(1, store.read(), report)
        assert result.race_detected
        assert not result.consistent
        assert result.succeeded_count == 2
        assert result.taken == 1
