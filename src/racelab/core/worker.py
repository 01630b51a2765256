"""Worker protocol: one unit of contended work against a resource store.

Two critical-section shapes are supported:

- read-modify-write: ``value = read(); delay(); write(value + delta)``
- check-then-act: ``value = read(); if value >= amount: delay(); write(value - amount)``

Without a lock the steps run unprotected and the injected delay widens the
gap between them. With a lock, every step runs inside one acquire/release
on the lock name shared by all workers touching the resource.
"""

import logging
import os

from ..models import WorkerOutcome, WorkerShape, WorkerSpec
from .delay import DelayWindow
from .lock_manager import FileLock
from .store import ResourceStore, stamp

logger = logging.getLogger(__name__)


def _increment(store: ResourceStore, delta: int, writer: str, window: DelayWindow) -> None:
    record = store.read()
    old_value = record.value
    window.wait()
    store.write(stamp(record, old_value + delta, writer))
    logger.debug("%s: %d -> %d", writer, old_value, old_value + delta)


def _take(store: ResourceStore, amount: int, writer: str, window: DelayWindow) -> bool:
    record = store.read()
    if record.value < amount:
        logger.info("%s: rejected, %d available, %d requested", writer, record.value, amount)
        return False
    window.wait()
    new_value = record.value - amount
    store.write(stamp(record, new_value, writer))
    logger.info("%s: took %d, %d left", writer, amount, new_value)
    if new_value < 0:
        logger.warning("%s: value went negative (%d)", writer, new_value)
    return True


def read_modify_write(
    store: ResourceStore,
    delta: int,
    writer: str,
    window: DelayWindow,
    lock: FileLock | None = None,
) -> bool:
    """Add ``delta`` to the stored value.

    Args:
        store: Resource store
        delta: Amount to add
        writer: Identity recorded as last writer
        window: Delay injected between read and write
        lock: Lock wrapping the whole cycle, or None for the unprotected version

    Returns:
        True if the write happened, False if the lock could not be acquired
    """
    if lock is None:
        _increment(store, delta, writer, window)
        return True

    if not lock.acquire():
        return False
    try:
        _increment(store, delta, writer, window)
    finally:
        lock.release()
    return True


def check_then_act(
    store: ResourceStore,
    amount: int,
    writer: str,
    window: DelayWindow,
    lock: FileLock | None = None,
) -> bool | None:
    """Take ``amount`` from the stored value if enough is available.

    Args:
        store: Resource store
        amount: Amount to take
        writer: Identity recorded as last writer
        window: Delay injected between the check and the act
        lock: Lock wrapping check and act together, or None for the unprotected version

    Returns:
        True if taken, False if rejected by the check, None if the lock
        could not be acquired
    """
    if lock is None:
        return _take(store, amount, writer, window)

    if not lock.acquire():
        return None
    try:
        return _take(store, amount, writer, window)
    finally:
        lock.release()


def run_worker(
    spec: WorkerSpec,
    shape: WorkerShape,
    store: ResourceStore,
    window: DelayWindow,
    pause: DelayWindow,
    lock: FileLock | None = None,
) -> WorkerOutcome:
    """Run every repetition of a worker and tally what happened.

    A repetition whose lock acquisition is exhausted is skipped and counted
    in ``lock_failures``; the worker carries on with the rest. Resource
    errors propagate.

    Args:
        spec: Worker parameters
        shape: Critical-section shape
        store: Resource store
        window: Delay between read and write/act
        pause: Delay between repetitions (before the check for check-then-act)
        lock: Lock to use, or None for the unprotected version

    Returns:
        WorkerOutcome tally
    """
    if shape not in (WorkerShape.READ_MODIFY_WRITE, WorkerShape.CHECK_THEN_ACT):
        raise ValueError(f"Not a single-value shape: {shape.value}")

    outcome = WorkerOutcome(worker_id=spec.worker_id, pid=os.getpid())
    mode = "locked" if lock else "unprotected"
    logger.info(
        "%s started (%s, %s x%d, amount %d)",
        spec.worker_id,
        mode,
        shape.value,
        spec.repetitions,
        spec.amount,
    )

    for _ in range(spec.repetitions):
        outcome.attempted += 1
        if shape is WorkerShape.READ_MODIFY_WRITE:
            written = read_modify_write(store, spec.amount, spec.worker_id, window, lock)
            result: bool | None = True if written else None
            pause.wait()
        else:
            pause.wait()
            result = check_then_act(store, spec.amount, spec.worker_id, window, lock)

        if result is None:
            outcome.lock_failures += 1
            logger.error("%s failed to acquire lock, skipping", spec.worker_id)
        elif result:
            outcome.applied += 1
        else:
            outcome.rejected += 1

    logger.info(
        "%s finished: %d applied, %d rejected, %d lock failures",
        spec.worker_id,
        outcome.applied,
        outcome.rejected,
        outcome.lock_failures,
    )
    return outcome
