"""Bounded producer-consumer buffer.

Producers append an item when the buffer has a free slot; consumers take
the oldest item when it has one. Both are check-then-act on the fill
level: ``record = read(); if room/item: delay(); write(next record)``.
A worker that finds the buffer full (or empty) backs off and retries a
bounded number of times before giving up on that item.

Without a lock two workers can act on the same snapshot, and the later
write discards the earlier one: items vanish or are consumed twice.
"""

import logging
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ..constants import DEFAULT_BUFFER_ATTEMPTS, DEFAULT_BUFFER_CAPACITY
from ..models import BufferRecord, WorkerOutcome, WorkerShape, WorkerSpec
from .delay import DelayWindow
from .lock_manager import FileLock
from .store import FileResourceStore, MemoryResourceStore, ResourceError, ResourceStore

logger = logging.getLogger(__name__)


def new_buffer(capacity: int, seeded: int = 0) -> BufferRecord:
    """Build a starting buffer, optionally pre-filled with ``seeded`` items.

    Raises:
        ResourceError: If the seeded items do not fit
    """
    if not 0 <= seeded <= capacity:
        raise ResourceError(f"Cannot seed {seeded} item(s) into a buffer of {capacity}")
    items = [f"seed-{i}" for i in range(1, seeded + 1)]
    return BufferRecord(
        value=len(items),
        capacity=capacity,
        items=items,
        produced_count=seeded,
        last_writer="init",
        updated_at=datetime.now(),
    )


class FileBufferStore(FileResourceStore):
    """Buffer persisted as one JSON file shared by worker processes.

    Args:
        path: File holding the buffer
        capacity: Slots in a freshly initialized buffer (workers read it from the file)
    """

    record_type = BufferRecord

    def __init__(self, path: Path, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        super().__init__(path)
        self.capacity = capacity

    def new_record(self, value: int) -> BufferRecord:
        return new_buffer(self.capacity, value)


class MemoryBufferStore(MemoryResourceStore):
    """In-process buffer for unit tests."""

    record_type = BufferRecord

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        super().__init__()
        self.capacity = capacity

    def new_record(self, value: int) -> BufferRecord:
        return new_buffer(self.capacity, value)


def _read_buffer(store: ResourceStore) -> BufferRecord:
    record = store.read()
    if not isinstance(record, BufferRecord):
        raise ResourceError(f"{store!r} does not hold a buffer")
    return record


def _next(
    record: BufferRecord, items: list[str], writer: str, produced: int = 0, consumed: int = 0
) -> BufferRecord:
    return BufferRecord(
        value=len(items),
        capacity=record.capacity,
        items=items,
        produced_count=record.produced_count + produced,
        consumed_count=record.consumed_count + consumed,
        last_writer=writer,
        updated_at=datetime.now(),
        writes=record.writes + 1,
    )


def _put(store: ResourceStore, writer: str, window: DelayWindow) -> bool:
    record = _read_buffer(store)
    if len(record.items) >= record.capacity:
        logger.debug("%s: buffer full (%d/%d)", writer, len(record.items), record.capacity)
        return False
    window.wait()
    item = f"item-{record.produced_count + 1}-from-{writer}"
    items = [*record.items, item]
    store.write(_next(record, items, writer, produced=1))
    logger.info("%s: produced %s (buffer %d/%d)", writer, item, len(items), record.capacity)
    return True


def _get(store: ResourceStore, writer: str, window: DelayWindow) -> bool:
    record = _read_buffer(store)
    if not record.items:
        logger.debug("%s: buffer empty", writer)
        return False
    window.wait()
    item, *rest = record.items
    store.write(_next(record, rest, writer, consumed=1))
    logger.info("%s: consumed %s (%d left)", writer, item, len(rest))
    return True


def _guarded(action: Callable[[], bool], lock: FileLock | None) -> bool | None:
    if lock is None:
        return action()
    if not lock.acquire():
        return None
    try:
        return action()
    finally:
        lock.release()


def produce(
    store: ResourceStore, writer: str, window: DelayWindow, lock: FileLock | None = None
) -> bool | None:
    """Append one item if the buffer has room.

    Returns:
        True if added, False if the buffer was full, None if the lock
        could not be acquired
    """
    return _guarded(lambda: _put(store, writer, window), lock)


def consume(
    store: ResourceStore, writer: str, window: DelayWindow, lock: FileLock | None = None
) -> bool | None:
    """Remove the oldest item if there is one.

    Returns:
        True if removed, False if the buffer was empty, None if the lock
        could not be acquired
    """
    return _guarded(lambda: _get(store, writer, window), lock)


def run_buffer_worker(
    spec: WorkerSpec,
    shape: WorkerShape,
    store: ResourceStore,
    window: DelayWindow,
    pause: DelayWindow,
    lock: FileLock | None = None,
    max_attempts: int = DEFAULT_BUFFER_ATTEMPTS,
) -> WorkerOutcome:
    """Produce or consume ``spec.repetitions`` items.

    Each item is retried while the buffer is full (producer) or empty
    (consumer), pausing before every attempt. An item still blocked after
    ``max_attempts`` is counted as rejected; an item whose lock acquisition
    is exhausted is counted in ``lock_failures``. Resource errors propagate.

    Args:
        spec: Worker parameters
        shape: WorkerShape.PRODUCE or WorkerShape.CONSUME
        store: Buffer store
        window: Delay between the fill-level check and the write
        pause: Delay before each attempt
        lock: Lock to use, or None for the unprotected version
        max_attempts: Attempts per item before giving up

    Returns:
        WorkerOutcome tally
    """
    if shape is WorkerShape.PRODUCE:
        act = produce
    elif shape is WorkerShape.CONSUME:
        act = consume
    else:
        raise ValueError(f"Not a buffer shape: {shape.value}")

    outcome = WorkerOutcome(worker_id=spec.worker_id, pid=os.getpid())
    logger.info(
        "%s started (%s, %s x%d)",
        spec.worker_id,
        "locked" if lock else "unprotected",
        shape.value,
        spec.repetitions,
    )

    for n in range(1, spec.repetitions + 1):
        outcome.attempted += 1
        result: bool | None = False
        for _ in range(max_attempts):
            pause.wait()
            result = act(store, spec.worker_id, window, lock)
            if result is not False:
                break

        if result is None:
            outcome.lock_failures += 1
            logger.error("%s failed to acquire lock, skipping item %d", spec.worker_id, n)
        elif result:
            outcome.applied += 1
        else:
            outcome.rejected += 1
            logger.warning(
                "%s gave up on item %d after %d attempts", spec.worker_id, n, max_attempts
            )

    logger.info(
        "%s finished: %d done, %d given up, %d lock failures",
        spec.worker_id,
        outcome.applied,
        outcome.rejected,
        outcome.lock_failures,
    )
    return outcome
