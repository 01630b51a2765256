"""Demo scenarios: the toy domains as parameterisations of one harness.

Counter, bank, inventory and buffer differ only in the worker shapes, the
starting value, the worker specs and the verifier. Each runs through the
same Harness with a file-backed store, either unprotected or with every
worker sharing one FileLock. The transfer demo uses the same harness against a
SQLite database instead of a lock.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console

from .config import DelayRange, RacelabConfig
from .constants import ARTIFACT_PREFIX
from .core import (
    AccountsStore,
    FileBufferStore,
    FileLock,
    FileResourceStore,
    Harness,
    HarnessError,
    ResourceError,
    SubprocessLauncher,
    TransferError,
    verify_balance,
    verify_buffer,
    verify_counter,
    verify_stock,
    verify_transfer,
)
from .models import (
    DemoResult,
    RunReport,
    TrialSummary,
    Verification,
    WorkerShape,
    WorkerSpec,
)
from .output import OutputContext, get_output_context

logger = logging.getLogger(__name__)

SCENARIO_KINDS = ("counter", "bank", "inventory", "buffer")

Verifier = Callable[[int, Any, RunReport], Verification]


@dataclass
class Scenario:
    """One parameterisation of the race harness."""

    kind: str
    title: str
    shape: WorkerShape
    initial: int
    specs: list[WorkerSpec]
    window: DelayRange
    pause: DelayRange
    verifier: Verifier
    stagger: float = 0.0
    description: str = ""
    capacity: int | None = None  # Set for buffer scenarios
    max_attempts: int | None = None

    @property
    def lock_name(self) -> str:
        return f"{self.kind}-mutex"

    def shape_of(self, spec: WorkerSpec) -> WorkerShape:
        return spec.shape or self.shape

    def open_store(self, path: Path) -> FileResourceStore:
        if self.capacity is not None:
            return FileBufferStore(path, self.capacity)
        return FileResourceStore(path)

    def resource_path(self, work_dir: Path, synchronized: bool) -> Path:
        suffix = "-locked" if synchronized else ""
        return work_dir / f"{ARTIFACT_PREFIX}-{self.kind}{suffix}.json"


def build_scenario(kind: str, config: RacelabConfig, workers: int | None = None) -> Scenario:
    """Build a scenario from configuration.

    Args:
        kind: One of SCENARIO_KINDS
        config: Loaded configuration
        workers: Override for the configured worker count (for the buffer,
            the number of producers and of consumers)

    Returns:
        Scenario ready to run

    Raises:
        ValueError: If kind is unknown
    """
    if kind == "counter":
        c = config.counter
        n = workers if workers is not None else c.workers
        return Scenario(
            kind=kind,
            title="Shared counter",
            shape=WorkerShape.READ_MODIFY_WRITE,
            initial=c.initial,
            specs=[
                WorkerSpec(worker_id=f"worker-{i}", repetitions=c.increments, amount=c.delta)
                for i in range(1, n + 1)
            ],
            window=c.window,
            pause=c.pause,
            verifier=verify_counter,
            description=f"{n} workers each add {c.delta} to a shared counter {c.increments} times",
        )
    if kind == "bank":
        b = config.bank
        n = workers if workers is not None else b.workers
        return Scenario(
            kind=kind,
            title="Bank account withdrawals",
            shape=WorkerShape.CHECK_THEN_ACT,
            initial=b.initial,
            specs=[
                WorkerSpec(worker_id=f"withdrawer-{i}", repetitions=1, amount=b.amount)
                for i in range(1, n + 1)
            ],
            window=b.window,
            pause=b.pause,
            verifier=verify_balance,
            description=f"{n} withdrawals of ${b.amount} against a ${b.initial} balance",
        )
    if kind == "inventory":
        inv = config.inventory
        n = workers if workers is not None else inv.customers
        return Scenario(
            kind=kind,
            title=f"Inventory purchases ({inv.product})",
            shape=WorkerShape.CHECK_THEN_ACT,
            initial=inv.initial,
            specs=[
                WorkerSpec(worker_id=f"Customer-{i}", repetitions=1, amount=inv.quantity)
                for i in range(1, n + 1)
            ],
            window=inv.window,
            pause=inv.pause,
            verifier=verify_stock,
            stagger=inv.stagger_ms / 1000,
            description=f"{n} customers each buy {inv.quantity} from a stock of {inv.initial}",
        )
    if kind == "buffer":
        buf = config.buffer
        producers = workers if workers is not None else buf.producers
        consumers = workers if workers is not None else buf.consumers
        per_consumer = buf.consumer_items(producers, consumers)
        specs = [
            WorkerSpec(
                worker_id=f"Producer-{i}", repetitions=buf.items, shape=WorkerShape.PRODUCE
            )
            for i in range(1, producers + 1)
        ]
        specs += [
            WorkerSpec(
                worker_id=f"Consumer-{i}", repetitions=per_consumer, shape=WorkerShape.CONSUME
            )
            for i in range(1, consumers + 1)
        ]
        return Scenario(
            kind=kind,
            title="Producer-consumer buffer",
            shape=WorkerShape.PRODUCE,
            initial=buf.initial,
            specs=specs,
            window=buf.window,
            pause=buf.pause,
            verifier=verify_buffer,
            description=(
                f"{producers} producers add {buf.items} items each, {consumers} consumers "
                f"take {per_consumer} each, through a buffer of {buf.capacity}"
            ),
            capacity=buf.capacity,
            max_attempts=buf.max_attempts,
        )
    raise ValueError(f"Unknown scenario: {kind}")


def _delay_args(prefix: str, delay: DelayRange) -> list[str]:
    return [f"--{prefix}-min-ms", str(delay.min_ms), f"--{prefix}-max-ms", str(delay.max_ms)]


def _log_level_name() -> str:
    return logging.getLevelName(logging.getLogger().getEffectiveLevel())


def worker_args(
    scenario: Scenario, store_path: Path, lock: FileLock | None, config: RacelabConfig
) -> Callable[[WorkerSpec], list[str]]:
    """Build the ``racelab worker`` argument builder for a scenario."""

    def build(spec: WorkerSpec) -> list[str]:
        args = [
            scenario.shape_of(spec).value,
            "--id",
            spec.worker_id,
            "--repetitions",
            str(spec.repetitions),
            "--store",
            str(store_path),
            *_delay_args("window", scenario.window),
            *_delay_args("pause", scenario.pause),
            "--log-level",
            _log_level_name(),
        ]
        if scenario.max_attempts is None:
            args += ["--amount", str(spec.amount)]
        else:
            args += ["--max-attempts", str(scenario.max_attempts)]
        if lock is not None:
            args += [
                "--lock-name",
                lock.name,
                "--lock-dir",
                str(lock.path.parent),
                "--max-retries",
                str(config.lock.max_retries),
                "--retry-delay-ms",
                str(config.lock.retry_delay_ms),
            ]
        return args

    return build


def run_scenario(
    scenario: Scenario,
    config: RacelabConfig,
    synchronized: bool,
    ctx: OutputContext | None = None,
) -> tuple[DemoResult, Verification | None]:
    """Run one scenario end to end.

    Args:
        scenario: Scenario to run
        config: Loaded configuration
        synchronized: Wrap every critical section in the shared FileLock
        ctx: Output context (defaults to the CLI's)

    Returns:
        Tuple of (DemoResult, verification or None if the run failed)
    """
    ctx = ctx or get_output_context()
    mode = "with lock" if synchronized else "unprotected"
    ctx.header(f"{scenario.title} ({mode})")

    work_dir = config.paths.work_dir
    store = scenario.open_store(scenario.resource_path(work_dir, synchronized))
    lock = None
    if synchronized:
        lock = FileLock(
            scenario.lock_name,
            config.paths.get_lock_dir(),
            max_retries=config.lock.max_retries,
            retry_delay=config.lock.retry_delay_ms / 1000,
        )
    harness = Harness(
        store,
        SubprocessLauncher(worker_args(scenario, store.path, lock, config)),
        locks=[lock] if lock else [],
        timeout=config.harness.worker_timeout,
        stagger=scenario.stagger,
    )

    try:
        with harness.session(scenario.initial):
            ctx.section("Initial state")
            ctx.show_resource(f"{store.path} before:", store.describe())

            ctx.section("Spawning workers")
            ctx.print(scenario.description)
            report = harness.run(scenario.specs)

            ctx.section("Results")
            ctx.show_resource(f"{store.path} after:", store.describe())
            verification = harness.verify(scenario.verifier)
    except (ResourceError, HarnessError, OSError) as e:
        logger.error("%s demo failed: %s", scenario.title, e)
        return (
            DemoResult(success=False, message=f"{scenario.title} demo failed", error=str(e)),
            None,
        )

    for run in report.failed:
        ctx.print(f"{run.spec.worker_id} failed (exit code {run.exit_code})", style="red")
    ctx.verification(verification)
    if not verification.race_detected and not synchronized:
        ctx.print("No race this time (races are non-deterministic)", style="yellow")

    return (
        DemoResult(
            success=True,
            message=f"{scenario.title} ({mode}): {verification.summary()}",
            output=verification.summary(),
        ),
        verification,
    )


def run_trials(
    scenario: Scenario,
    config: RacelabConfig,
    synchronized: bool,
    trials: int,
) -> TrialSummary:
    """Repeat a scenario and count how often a race was detected.

    Races in the unprotected path are a statistical property, so a single
    run proves little; this reports the race rate over many runs.
    """
    silent = OutputContext(Console(quiet=True))
    races = failures = 0
    for n in range(1, trials + 1):
        result, verification = run_scenario(scenario, config, synchronized, silent)
        if verification is None:
            failures += 1
            logger.warning("Trial %d failed: %s", n, result.error)
            continue
        if verification.race_detected:
            races += 1
        logger.info("Trial %d/%d: %s", n, trials, verification.summary())
    return TrialSummary(
        scenario=scenario.kind,
        synchronized=synchronized,
        trials=trials,
        races=races,
        failures=failures,
    )


def transfer_args(
    config: RacelabConfig, db_path: Path, transactional: bool
) -> Callable[[WorkerSpec], list[str]]:
    """Build the ``racelab worker transfer`` argument builder."""
    t = config.transfer

    def build(spec: WorkerSpec) -> list[str]:
        return [
            "transfer",
            "--id",
            spec.worker_id,
            "--db",
            str(db_path),
            "--source",
            t.source,
            "--dest",
            t.dest,
            "--amount",
            str(spec.amount),
            "--busy-timeout",
            str(t.busy_timeout),
            *_delay_args("window", t.window),
            "--log-level",
            _log_level_name(),
            "--transactional" if transactional else "--no-transaction",
        ]

    return build


def run_transfer_demo(
    config: RacelabConfig,
    transactional: bool,
    ctx: OutputContext | None = None,
    workers: int | None = None,
) -> tuple[DemoResult, Verification | None]:
    """Run concurrent transfers against SQLite, with or without transactions."""
    ctx = ctx or get_output_context()
    t = config.transfer
    n = workers if workers is not None else t.workers
    mode = "with transactions" if transactional else "without transactions"
    ctx.header(f"Database transfers ({mode})")

    suffix = "-tx" if transactional else ""
    store = AccountsStore(
        config.paths.work_dir / f"{ARTIFACT_PREFIX}-transfer{suffix}.db", (t.source, t.dest)
    )
    specs = [
        WorkerSpec(worker_id=f"transfer-{i}", repetitions=1, amount=t.amount)
        for i in range(1, n + 1)
    ]
    harness = Harness(
        store,
        SubprocessLauncher(transfer_args(config, store.db_path, transactional)),
        timeout=config.harness.worker_timeout,
    )

    def verifier(initial: int, balances: dict[str, int], report: RunReport) -> Verification:
        return verify_transfer(initial, balances, report, t.source, t.dest)

    try:
        with harness.session(t.initial):
            ctx.section("Initial balances")
            ctx.show_resource("Database rows before:", store.describe())

            ctx.section("Spawning transfer workers")
            ctx.print(f"{n} workers each move ${t.amount} from {t.source} to {t.dest}")
            report = harness.run(specs)

            ctx.section("Results")
            ctx.show_resource("Database rows after:", store.describe())
            verification = harness.verify(verifier)
    except (TransferError, HarnessError, sqlite3.Error, OSError) as e:
        logger.error("Transfer demo failed: %s", e)
        return DemoResult(success=False, message="Transfer demo failed", error=str(e)), None

    for run in report.failed:
        ctx.print(f"{run.spec.worker_id} failed (exit code {run.exit_code})", style="red")
    ctx.verification(verification)
    return (
        DemoResult(
            success=True,
            message=f"Database transfers ({mode}): {verification.summary()}",
            output=verification.summary(),
        ),
        verification,
    )
