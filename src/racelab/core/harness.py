"""Race harness: initialize, fan out workers, fan in, verify, tear down.

One harness instance drives one run through
``INIT -> SPAWNED -> AWAITING_COMPLETION -> VERIFIED -> TORN_DOWN``.
Workers are separate OS processes, so the only channels between them are
the resource artifact and the lock markers. Teardown runs on every path
when the run is driven through ``Harness.session``.
"""

import logging
import os
import subprocess
import sys
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import ValidationError

from ..models import RunReport, WorkerOutcome, WorkerRun, WorkerSpec
from .lock_manager import FileLock

logger = logging.getLogger(__name__)

V = TypeVar("V")


class HarnessError(Exception):
    """Harness driven out of order."""


class HarnessState(str, Enum):
    """Lifecycle of one harness run."""

    INIT = "init"
    SPAWNED = "spawned"
    AWAITING_COMPLETION = "awaiting_completion"
    VERIFIED = "verified"
    TORN_DOWN = "torn_down"


class Resource(Protocol):
    """What the harness needs from the contended resource."""

    def initialize(self, value: int) -> Any: ...

    def read(self) -> Any: ...

    def teardown(self) -> None: ...


class WorkerLauncher(ABC):
    """Starts workers and waits for them."""

    @abstractmethod
    def start(self, spec: WorkerSpec) -> Any:
        """Start a worker and return a handle for ``wait``."""

    @abstractmethod
    def wait(self, spec: WorkerSpec, handle: Any, timeout: float | None) -> WorkerRun:
        """Block until the worker exits (or the timeout passes) and collect its run."""

    def abort(self, spec: WorkerSpec, handle: Any) -> None:
        """Stop a started worker that will never be waited on."""


def parse_outcome(stdout: str) -> WorkerOutcome | None:
    """Parse the outcome a worker prints as its last stdout line."""
    lines = [line for line in stdout.splitlines() if line.strip()]
    if not lines:
        return None
    try:
        return WorkerOutcome.model_validate_json(lines[-1])
    except ValidationError:
        return None


def _package_env() -> dict[str, str]:
    """Environment for children that can import this package from its source tree."""
    env = os.environ.copy()
    src_root = str(Path(__file__).resolve().parents[2])
    existing = env.get("PYTHONPATH")
    env["PYTHONPATH"] = f"{src_root}{os.pathsep}{existing}" if existing else src_root
    return env


class SubprocessLauncher(WorkerLauncher):
    """Launch each worker as ``python -m racelab worker ...``.

    Worker stdout is captured for the outcome line; stderr is inherited so
    worker logs interleave live on the terminal.

    Args:
        build_args: Maps a worker spec to the arguments after ``racelab worker``
    """

    def __init__(self, build_args: Callable[[WorkerSpec], list[str]]) -> None:
        self.build_args = build_args
        self._env = _package_env()

    def command(self, spec: WorkerSpec) -> list[str]:
        return [sys.executable, "-m", "racelab", "worker", *self.build_args(spec)]

    def start(self, spec: WorkerSpec) -> subprocess.Popen[str]:
        cmd = self.command(spec)
        logger.debug("Spawning %s: %s", spec.worker_id, " ".join(cmd))
        return subprocess.Popen(cmd, stdout=subprocess.PIPE, text=True, env=self._env)

    def wait(
        self, spec: WorkerSpec, handle: subprocess.Popen[str], timeout: float | None
    ) -> WorkerRun:
        timed_out = False
        try:
            stdout, _ = handle.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.error("%s timed out, killing PID %d", spec.worker_id, handle.pid)
            handle.kill()
            stdout, _ = handle.communicate()
            timed_out = True

        outcome = parse_outcome(stdout or "")
        error = None if outcome else "Worker reported no outcome"
        return WorkerRun(
            spec=spec,
            exit_code=handle.returncode,
            outcome=outcome,
            timed_out=timed_out,
            error=error,
        )

    def abort(self, spec: WorkerSpec, handle: subprocess.Popen[str]) -> None:
        if handle.poll() is not None:
            return
        logger.warning("Killing %s (PID %d)", spec.worker_id, handle.pid)
        handle.kill()
        handle.communicate()


class Harness:
    """Drives one race run against a shared resource.

    Args:
        resource: The contended resource (file store, database, ...)
        launcher: Starts and waits for workers
        locks: Lock markers whose leftovers must be cleared around the run
        timeout: Optional overall deadline in seconds for all workers
        stagger: Seconds to pause between worker launches
        sleep: Sleep function used for the stagger
    """

    def __init__(
        self,
        resource: Resource,
        launcher: WorkerLauncher,
        locks: Sequence[FileLock] = (),
        timeout: float | None = None,
        stagger: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resource = resource
        self.launcher = launcher
        self.locks = list(locks)
        self.timeout = timeout
        self.stagger = stagger
        self._sleep = sleep
        self.state = HarnessState.INIT
        self.initial: int | None = None
        self.report: RunReport | None = None

    def _expect(self, *states: HarnessState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise HarnessError(f"Harness is {self.state.value}, expected one of: {allowed}")

    def initialize(self, start_value: int) -> Any:
        """Write the starting state, replacing anything left by a previous run."""
        self._expect(HarnessState.INIT)
        for lock in self.locks:
            lock.cleanup()
        self.initial = start_value
        record = self.resource.initialize(start_value)
        logger.info("Resource initialized to %d", start_value)
        return record

    def run(self, specs: Sequence[WorkerSpec]) -> RunReport:
        """Launch every worker, then wait for all of them.

        All workers are started before any is waited on. A failing worker
        never aborts its siblings and is not retried. If launching or
        waiting raises, every worker still outstanding is aborted before
        the exception propagates, so teardown never races a live worker.
        """
        self._expect(HarnessState.INIT)
        if self.initial is None:
            raise HarnessError("Harness must be initialized before run")

        started: list[tuple[WorkerSpec, Any]] = []
        runs: list[WorkerRun] = []
        collected = 0
        try:
            for i, spec in enumerate(specs):
                if i and self.stagger:
                    self._sleep(self.stagger)
                try:
                    started.append((spec, self.launcher.start(spec)))
                except OSError as e:
                    logger.error("Could not start %s: %s", spec.worker_id, e)
                    runs.append(WorkerRun(spec=spec, exit_code=-1, error=str(e)))
            self.state = HarnessState.SPAWNED
            logger.info("Spawned %d worker(s)", len(started))

            self.state = HarnessState.AWAITING_COMPLETION
            deadline = time.monotonic() + self.timeout if self.timeout is not None else None
            for spec, handle in started:
                remaining = max(0.0, deadline - time.monotonic()) if deadline is not None else None
                run = self.launcher.wait(spec, handle, remaining)
                collected += 1
                if not run.succeeded:
                    logger.warning("%s failed (exit code %d)", spec.worker_id, run.exit_code)
                runs.append(run)
        except BaseException:
            self._abort(started[collected:])
            raise

        order = {spec.worker_id: i for i, spec in enumerate(specs)}
        runs.sort(key=lambda r: order.get(r.spec.worker_id, len(order)))
        self.report = RunReport(runs=runs)
        return self.report

    def _abort(self, outstanding: Sequence[tuple[WorkerSpec, Any]]) -> None:
        if outstanding:
            logger.error("Run interrupted, aborting %d worker(s)", len(outstanding))
        for spec, handle in outstanding:
            try:
                self.launcher.abort(spec, handle)
            except OSError as e:
                logger.error("Could not abort %s: %s", spec.worker_id, e)

    def verify(self, verifier: Callable[[int, Any, RunReport], V]) -> V:
        """Read the final state and hand it to ``verifier`` with the run report."""
        self._expect(HarnessState.AWAITING_COMPLETION)
        if self.initial is None or self.report is None:
            raise HarnessError("Nothing to verify")
        final = self.resource.read()
        result = verifier(self.initial, final, self.report)
        self.state = HarnessState.VERIFIED
        return result

    def teardown(self) -> None:
        """Remove the resource artifact and lock markers. Idempotent."""
        self.resource.teardown()
        for lock in self.locks:
            lock.cleanup()
        if self.state is not HarnessState.TORN_DOWN:
            logger.debug("Harness torn down from state %s", self.state.value)
        self.state = HarnessState.TORN_DOWN

    @contextmanager
    def session(self, start_value: int) -> Iterator["Harness"]:
        """Initialize, yield, and always tear down."""
        try:
            self.initialize(start_value)
            yield self
        finally:
            self.teardown()
