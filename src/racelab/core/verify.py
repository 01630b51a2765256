"""Expected-vs-actual verification of a finished run.

Pure functions over the initial value, the final record and the run
report. Expectations are computed twice where it matters: from what every
worker intended, and from what the workers that reported back actually
applied. A run with failed workers is flagged inconclusive rather than
reported as a race.
"""

from ..models import (
    BufferRecord,
    BufferVerification,
    CounterVerification,
    InvariantVerification,
    ResourceRecord,
    RunReport,
    WorkerShape,
)


def _intended_total(report: RunReport) -> int:
    return sum(r.spec.repetitions * r.spec.amount for r in report.runs)


def _applied_total(report: RunReport) -> int:
    return sum(r.outcome.applied * r.spec.amount for r in report.runs if r.outcome is not None)


def verify_counter(initial: int, final: ResourceRecord, report: RunReport) -> CounterVerification:
    """Check a read-modify-write counter for lost updates.

    Args:
        initial: Starting value
        final: Final record
        report: Worker runs

    Returns:
        CounterVerification; a race is a final value below what the
        reporting workers applied
    """
    expected = initial + _intended_total(report)
    completed_expected = initial + _applied_total(report)
    actual = final.value
    return CounterVerification(
        initial=initial,
        expected=expected,
        actual=actual,
        delta=actual - expected,
        lost=expected - actual,
        completed_expected=completed_expected,
        race_detected=actual < completed_expected,
        inconclusive=not report.all_succeeded,
    )


def _verify_take(
    initial: int, final: int, report: RunReport, unit: str, bounded_by_initial: bool
) -> InvariantVerification:
    amounts = {r.spec.amount for r in report.runs}
    amount = amounts.pop() if len(amounts) == 1 else 0
    succeeded = report.total("applied")
    taken = initial - final
    taken_by_reports = _applied_total(report)

    consistent = taken >= 0 and taken == taken_by_reports
    if amount:
        consistent = consistent and taken % amount == 0
    if bounded_by_initial:
        consistent = consistent and taken <= initial

    invariant_held = final >= 0
    return InvariantVerification(
        initial=initial,
        final=final,
        amount=amount,
        attempted_total=_intended_total(report),
        succeeded_count=succeeded,
        rejected_count=report.total("rejected"),
        taken=taken,
        invariant_held=invariant_held,
        consistent=consistent,
        race_detected=not (invariant_held and consistent),
        inconclusive=not report.all_succeeded,
        unit=unit,
    )


def verify_balance(initial: int, final: ResourceRecord, report: RunReport) -> InvariantVerification:
    """Check a guarded withdrawal run.

    The balance must never go negative, and ``initial - final`` must be
    exactly the reported successful withdrawals times the amount.
    """
    return _verify_take(initial, final.value, report, unit="$", bounded_by_initial=False)


def verify_stock(initial: int, final: ResourceRecord, report: RunReport) -> InvariantVerification:
    """Check a guarded purchase run.

    Stock must never go negative, units sold can't exceed the initial
    stock, and units sold must match the reported purchases.
    """
    return _verify_take(initial, final.value, report, unit="units", bounded_by_initial=True)


def _role_applied(report: RunReport, shape: WorkerShape) -> int:
    return sum(
        r.outcome.applied for r in report.runs if r.outcome is not None and r.spec.shape is shape
    )


def verify_buffer(initial: int, final: BufferRecord, report: RunReport) -> BufferVerification:
    """Check a producer-consumer run for lost or duplicated items.

    Every item producers reported must be consumed or still buffered, the
    buffer never exceeds its capacity, and the stored counters must equal
    the reported totals. Workers are told apart by ``spec.shape``. When a
    worker reported nothing its items are unknown, so only the capacity
    bound can flag a race.
    """
    produced = _role_applied(report, WorkerShape.PRODUCE)
    consumed = _role_applied(report, WorkerShape.CONSUME)
    remaining = len(final.items)
    within_capacity = 0 <= remaining <= final.capacity
    conserved = initial + produced == consumed + remaining
    counts_match = (
        final.produced_count == initial + produced and final.consumed_count == consumed
    )
    balanced = conserved and counts_match
    unknown_work = any(r.outcome is None for r in report.runs)
    return BufferVerification(
        capacity=final.capacity,
        initial=initial,
        produced=produced,
        consumed=consumed,
        remaining=remaining,
        recorded_produced=final.produced_count,
        recorded_consumed=final.consumed_count,
        gave_up=report.total("rejected"),
        within_capacity=within_capacity,
        conserved=conserved,
        counts_match=counts_match,
        race_detected=not within_capacity or not (unknown_work or balanced),
        inconclusive=not report.all_succeeded,
    )
