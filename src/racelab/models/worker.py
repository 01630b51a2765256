"""Worker parameterisation and outcome models."""

from enum import Enum

from pydantic import BaseModel, Field


class WorkerShape(str, Enum):
    """Critical-section shapes a worker can run.

    Producers and consumers are check-then-act on the buffer fill level.
    """

    READ_MODIFY_WRITE = "rmw"
    CHECK_THEN_ACT = "cta"
    PRODUCE = "produce"
    CONSUME = "consume"


class WorkerSpec(BaseModel):
    """Parameters for one worker process.

    Attributes:
        worker_id: Human-readable identity (e.g. "worker-3", "Customer-7").
        repetitions: Number of critical-section cycles to run.
        amount: Delta added (read-modify-write) or quantity taken (check-then-act).
        shape: Per-worker shape when a scenario mixes roles (producers and
            consumers), otherwise None.
    """

    worker_id: str = Field(description="Worker identity")
    repetitions: int = Field(default=1, ge=1, description="Cycles to run")
    amount: int = Field(default=1, description="Delta or quantity per cycle")
    shape: WorkerShape | None = Field(default=None, description="Shape override")


class WorkerOutcome(BaseModel):
    """What a worker reports on stdout when it finishes."""

    worker_id: str
    pid: int
    attempted: int = 0
    applied: int = 0
    rejected: int = 0
    lock_failures: int = 0

    @property
    def ok(self) -> bool:
        """True if every cycle got past lock acquisition."""
        return self.lock_failures == 0


class WorkerRun(BaseModel):
    """A finished worker process as seen by the orchestrator.

    Attributes:
        spec: Parameters the worker was launched with.
        exit_code: Process exit status (-1 if it never started).
        outcome: Tally the worker reported, or None if it reported nothing.
        timed_out: The orchestrator killed the worker after its timeout.
        error: Launch or reporting error.
    """

    spec: WorkerSpec
    exit_code: int
    outcome: WorkerOutcome | None = None
    timed_out: bool = False
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and self.outcome is not None


class RunReport(BaseModel):
    """Every worker run of one harness run, in launch order."""

    runs: list[WorkerRun] = Field(default_factory=list)

    @property
    def failed(self) -> list[WorkerRun]:
        return [r for r in self.runs if not r.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def outcomes(self) -> list[WorkerOutcome]:
        """Outcomes from every worker that reported one, failed or not."""
        return [r.outcome for r in self.runs if r.outcome is not None]

    def total(self, field: str) -> int:
        """Sum an outcome counter (applied, rejected, ...) over reported outcomes."""
        return sum(getattr(o, field) for o in self.outcomes)
