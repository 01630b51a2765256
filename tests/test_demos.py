"""Tests for demo scenario construction."""

from pathlib import Path

import pytest

from racelab.config import RacelabConfig
from racelab.core import (
    FileBufferStore,
    FileLock,
    verify_balance,
    verify_buffer,
    verify_counter,
    verify_stock,
)
from racelab.demos import SCENARIO_KINDS, build_scenario, transfer_args, worker_args
from racelab.models import WorkerShape, WorkerSpec


@pytest.mark.unit
class TestBuildScenario:
    """Tests for build_scenario function."""

    def test_counter(self) -> None:
        """Counter workers increment repeatedly."""
        scenario = build_scenario("counter", RacelabConfig())
        assert scenario.shape is WorkerShape.READ_MODIFY_WRITE
        assert scenario.initial == 0
        assert len(scenario.specs) == 5
        assert all(s.repetitions == 20 and s.amount == 1 for s in scenario.specs)
        assert scenario.verifier is verify_counter

    def test_bank(self) -> None:
        """Bank withdrawers each try once."""
        scenario = build_scenario("bank", RacelabConfig())
        assert scenario.shape is WorkerShape.CHECK_THEN_ACT
        assert scenario.initial == 1000
        assert [s.worker_id for s in scenario.specs] == [
            "withdrawer-1",
            "withdrawer-2",
            "withdrawer-3",
            "withdrawer-4",
        ]
        assert all(s.amount == 300 for s in scenario.specs)
        assert scenario.verifier is verify_balance

    def test_inventory(self) -> None:
        """Customers buy one unit each, launched with a stagger."""
        scenario = build_scenario("inventory", RacelabConfig())
        assert scenario.shape is WorkerShape.CHECK_THEN_ACT
        assert scenario.initial == 10
        assert len(scenario.specs) == 15
        assert scenario.specs[0].worker_id == "Customer-1"
        assert scenario.stagger == pytest.approx(0.01)
        assert scenario.verifier is verify_stock
        assert "Laptop" in scenario.title

    def test_buffer(self) -> None:
        """Producers add items and consumers share them out."""
        scenario = build_scenario("buffer", RacelabConfig())
        producers = [s for s in scenario.specs if s.shape is WorkerShape.PRODUCE]
        consumers = [s for s in scenario.specs if s.shape is WorkerShape.CONSUME]
        assert [s.worker_id for s in producers] == ["Producer-1", "Producer-2"]
        assert [s.worker_id for s in consumers] == ["Consumer-1", "Consumer-2"]
        assert all(s.repetitions == 5 for s in scenario.specs)
        assert scenario.capacity == 5
        assert scenario.verifier is verify_buffer

    def test_buffer_workers_override(self) -> None:
        """The override sets both the producer and the consumer count."""
        scenario = build_scenario("buffer", RacelabConfig(), workers=3)
        assert len(scenario.specs) == 6
        assert {scenario.shape_of(s) for s in scenario.specs} == {
            WorkerShape.PRODUCE,
            WorkerShape.CONSUME,
        }

    def test_buffer_store(self, tmp_path: Path) -> None:
        """Buffer scenarios open a buffer store; the others a plain one."""
        buffer = build_scenario("buffer", RacelabConfig())
        counter = build_scenario("counter", RacelabConfig())
        assert isinstance(buffer.open_store(tmp_path / "b.json"), FileBufferStore)
        assert not isinstance(counter.open_store(tmp_path / "c.json"), FileBufferStore)

    def test_workers_override(self) -> None:
        """Worker count can be overridden per run."""
        assert len(build_scenario("counter", RacelabConfig(), workers=2).specs) == 2

    @pytest.mark.parametrize("kind", SCENARIO_KINDS)
    def test_zero_workers_is_honoured(self, kind: str) -> None:
        """An explicit zero is not replaced by the configured count."""
        assert build_scenario(kind, RacelabConfig(), workers=0).specs == []

    def test_unknown_kind(self) -> None:
        """Unknown scenario names are rejected."""
        with pytest.raises(ValueError, match="Unknown scenario"):
            build_scenario("lottery", RacelabConfig())

    def test_every_kind_builds(self) -> None:
        """All advertised kinds are buildable with distinct lock names."""
        scenarios = [build_scenario(kind, RacelabConfig()) for kind in SCENARIO_KINDS]
        assert len({s.lock_name for s in scenarios}) == len(SCENARIO_KINDS)

    def test_resource_paths_differ_by_mode(self, tmp_path: Path) -> None:
        """Locked and unprotected runs never share an artifact."""
        scenario = build_scenario("counter", RacelabConfig())
        assert scenario.resource_path(tmp_path, False) != scenario.resource_path(tmp_path, True)
        assert scenario.resource_path(tmp_path, False).parent == tmp_path


@pytest.mark.unit
class TestWorkerArgs:
    """Tests for worker argument builders."""

    def test_unprotected_args(self, tmp_path: Path) -> None:
        """No lock options without a lock."""
        config = RacelabConfig()
        scenario = build_scenario("bank", config)
        build = worker_args(scenario, tmp_path / "bank.json", None, config)
        args = build(scenario.specs[0])
        assert args[0] == "cta"
        assert args[args.index("--id") + 1] == "withdrawer-1"
        assert args[args.index("--amount") + 1] == "300"
        assert args[args.index("--store") + 1] == str(tmp_path / "bank.json")
        assert "--lock-name" not in args

    def test_locked_args(self, tmp_path: Path) -> None:
        """Every worker gets the same lock name and directory."""
        config = RacelabConfig()
        scenario = build_scenario("counter", config)
        lock = FileLock(scenario.lock_name, tmp_path / "locks")
        build = worker_args(scenario, tmp_path / "c.json", lock, config)
        first, second = build(scenario.specs[0]), build(scenario.specs[1])
        for args in (first, second):
            assert args[0] == "rmw"
            assert args[args.index("--lock-name") + 1] == "counter-mutex"
            assert args[args.index("--lock-dir") + 1] == str(tmp_path / "locks")
            assert args[args.index("--max-retries") + 1] == str(config.lock.max_retries)
        assert first[first.index("--id") + 1] != second[second.index("--id") + 1]

    def test_buffer_args(self, tmp_path: Path) -> None:
        """Each buffer worker is launched under its own role with a retry bound."""
        config = RacelabConfig()
        scenario = build_scenario("buffer", config)
        build = worker_args(scenario, tmp_path / "buffer.json", None, config)
        roles = [build(spec)[0] for spec in scenario.specs]
        assert roles == ["produce", "produce", "consume", "consume"]
        args = build(scenario.specs[0])
        assert args[args.index("--max-attempts") + 1] == str(config.buffer.max_attempts)
        assert "--amount" not in args

    def test_single_value_args_have_no_attempt_bound(self, tmp_path: Path) -> None:
        """Single-value workers take --amount instead of --max-attempts."""
        config = RacelabConfig()
        scenario = build_scenario("counter", config)
        args = worker_args(scenario, tmp_path / "c.json", None, config)(scenario.specs[0])
        assert "--max-attempts" not in args
        assert args[args.index("--amount") + 1] == "1"

    @pytest.mark.parametrize(
        ("transactional", "flag"), [(True, "--transactional"), (False, "--no-transaction")]
    )
    def test_transfer_args(self, tmp_path: Path, transactional: bool, flag: str) -> None:
        """Transfer workers get the database and the transaction mode."""
        build = transfer_args(RacelabConfig(), tmp_path / "t.db", transactional)
        args = build(WorkerSpec(worker_id="transfer-1", amount=100))
        assert args[0] == "transfer"
        assert args[args.index("--db") + 1] == str(tmp_path / "t.db")
        assert args[args.index("--source") + 1] == "Alice"
        assert flag in args
