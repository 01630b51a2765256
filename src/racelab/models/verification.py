"""Verification records computed once per harness run.

Each record compares the final state of the resource against what the
arithmetic says it should be. Nothing here is persisted.
"""

from pydantic import BaseModel, Field


class CounterVerification(BaseModel):
    """Expected-vs-actual comparison for read-modify-write counters.

    Attributes:
        initial: Starting value.
        expected: initial + sum of every intended delta.
        actual: Final value read from the store.
        delta: actual - expected.
        lost: expected - actual (lost updates when positive).
        completed_expected: initial + deltas reported as applied by every
            worker that printed an outcome, including workers that exited
            non-zero after a lock failure.
        race_detected: actual < completed_expected.
        inconclusive: At least one worker failed, so ``expected`` assumes
            work that never happened.
    """

    initial: int
    expected: int
    actual: int
    delta: int
    lost: int
    completed_expected: int
    race_detected: bool
    inconclusive: bool = False

    def summary(self) -> str:
        """One-line description of the outcome."""
        if self.race_detected:
            missing = self.completed_expected - self.actual
            return f"RACE DETECTED: lost {missing} update(s) ({self.actual}/{self.expected})"
        if self.inconclusive:
            return f"Inconclusive: some workers failed ({self.actual}/{self.expected})"
        return f"No lost updates ({self.actual}/{self.expected})"


class InvariantVerification(BaseModel):
    """Invariant check for guarded check-then-act resources (balance, stock).

    Attributes:
        initial: Starting value.
        final: Final value read from the store.
        amount: Quantity each successful operation takes.
        attempted_total: Sum of every attempted take.
        succeeded_count: Operations workers reported as applied.
        rejected_count: Operations workers reported as rejected.
        taken: initial - final.
        invariant_held: final >= 0.
        consistent: ``taken`` matches ``succeeded_count * amount`` (and, for
            stock, never exceeds the initial level).
        race_detected: The invariant or the consistency check failed.
        inconclusive: At least one worker failed to report cleanly.
        unit: Label for the value ("$", "units").
    """

    initial: int
    final: int
    amount: int
    attempted_total: int
    succeeded_count: int
    rejected_count: int
    taken: int
    invariant_held: bool
    consistent: bool
    race_detected: bool
    inconclusive: bool = False
    unit: str = Field(default="")

    def summary(self) -> str:
        """One-line description of the outcome."""
        if not self.invariant_held:
            return f"RACE DETECTED: final value went negative ({self.final})"
        if not self.consistent:
            return (
                f"RACE DETECTED: {self.succeeded_count} operation(s) reported success "
                f"but only {self.taken} was taken"
            )
        if self.inconclusive:
            return f"Inconclusive: some workers failed (final {self.final})"
        return (
            f"Invariant held: {self.succeeded_count} succeeded, "
            f"{self.rejected_count} rejected, final {self.final}"
        )


class TransferVerification(BaseModel):
    """Money-conservation check for the database transfer demo."""

    initial: int
    expected_source: int
    expected_dest: int
    actual_source: int
    actual_dest: int
    expected_total: int
    actual_total: int
    lost_money: int
    succeeded_count: int
    race_detected: bool
    inconclusive: bool = False

    def summary(self) -> str:
        """One-line description of the outcome."""
        if self.race_detected:
            return f"RACE DETECTED: ${self.lost_money} lost or transfers misapplied"
        if self.inconclusive:
            return "Inconclusive: some workers failed"
        return (
            f"All {self.succeeded_count} transfer(s) applied, "
            f"total ${self.actual_total} preserved"
        )


class BufferVerification(BaseModel):
    """Conservation check for the bounded producer-consumer buffer.

    Every item producers report adding must either have been removed by a
    consumer or still sit in the buffer, and the record's own counters must
    agree with what the workers reported.

    Attributes:
        capacity: Buffer size.
        initial: Items already buffered when workers started.
        produced: Items producers reported adding.
        consumed: Items consumers reported removing.
        remaining: Items left in the buffer.
        recorded_produced: ``produced_count`` stored in the final record.
        recorded_consumed: ``consumed_count`` stored in the final record.
        gave_up: Items abandoned after retrying on a full or empty buffer.
        within_capacity: 0 <= remaining <= capacity.
        conserved: initial + produced == consumed + remaining.
        counts_match: Stored counters equal the reported totals.
        race_detected: The capacity bound failed, or every worker reported
            and conservation or the counters failed.
        inconclusive: At least one worker failed to report cleanly.
    """

    capacity: int
    initial: int
    produced: int
    consumed: int
    remaining: int
    recorded_produced: int
    recorded_consumed: int
    gave_up: int = 0
    within_capacity: bool
    conserved: bool
    counts_match: bool
    race_detected: bool
    inconclusive: bool = False

    @property
    def missing(self) -> int:
        """Items reported produced that are neither consumed nor buffered."""
        return self.initial + self.produced - self.consumed - self.remaining

    def summary(self) -> str:
        """One-line description of the outcome."""
        tally = f"{self.produced} produced, {self.consumed} consumed, {self.remaining} left"
        if not self.within_capacity:
            return f"RACE DETECTED: buffer holds {self.remaining} of {self.capacity} slots"
        if self.race_detected:
            if self.missing > 0:
                return f"RACE DETECTED: {self.missing} item(s) lost ({tally})"
            if self.missing < 0:
                return f"RACE DETECTED: {-self.missing} item(s) consumed twice ({tally})"
            produced_gap = self.initial + self.produced - self.recorded_produced
            lost_writes = produced_gap + self.consumed - self.recorded_consumed
            return f"RACE DETECTED: {lost_writes} buffer write(s) lost ({tally})"
        if self.inconclusive:
            return f"Inconclusive: some workers failed ({tally})"
        return f"Buffer consistent: {tally}"


class TrialSummary(BaseModel):
    """Aggregate over repeated runs of the same scenario."""

    scenario: str
    synchronized: bool
    trials: int
    races: int
    failures: int = 0

    @property
    def race_rate(self) -> float:
        """Fraction of completed trials in which a race was detected."""
        completed = self.trials - self.failures
        return self.races / completed if completed else 0.0
