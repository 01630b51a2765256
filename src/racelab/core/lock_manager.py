"""File-based mutual exclusion between independent processes.

A lock is a marker file whose path is derived from the lock name. It is
acquired by creating the marker with O_CREAT | O_EXCL, the only step that
has to be a single kernel-level operation: if the file already exists the
open fails instead of overwriting, so two processes can never both believe
they created it. The marker's only content is the owner token (the PID
by default).

Known limitation: there is no stale-lock recovery. If an owner crashes
while holding a lock, the marker stays until someone runs
``racelab lock cleanup <name>``. ``inspect_lock`` reports such markers as
stale but never removes them.
"""

import logging
import os
import re
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ..constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS
from ..models import LockStatus

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class LockError(Exception):
    """Error acquiring a lock."""


def _slug(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    if not slug:
        raise ValueError(f"Invalid lock name: {name!r}")
    return slug


def lock_path(name: str, lock_dir: Path) -> Path:
    """Get the marker path for a lock name.

    Args:
        name: Lock name (e.g. "counter-mutex")
        lock_dir: Directory holding lock markers

    Returns:
        Path to the marker file

    Raises:
        ValueError: If the name has no usable characters
    """
    return lock_dir / f"{_slug(name)}{LOCK_SUFFIX}"


def get_lock_owner(path: Path) -> str | None:
    """Read the owner token from a marker, or None if there is no marker."""
    try:
        return path.read_text().strip()
    except FileNotFoundError:
        return None


def _is_pid_running(pid: int) -> bool:
    """Check if a process with given PID is running."""
    if pid <= 0:
        # 0 and negative values address process groups, not a process
        return False
    try:
        os.kill(pid, 0)  # Signal 0 doesn't kill, just checks
        return True
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    except (OSError, OverflowError):
        return False


def _owner_pid(owner: str) -> int | None:
    """Owner token as a PID, or None if it cannot name a process."""
    if not (owner.isascii() and owner.isdigit()):
        return None
    pid = int(owner)
    return pid if pid > 0 else None


def inspect_lock(name: str, lock_dir: Path) -> LockStatus:
    """Describe the current state of a lock without touching it.

    Args:
        name: Lock name
        lock_dir: Directory holding lock markers

    Returns:
        LockStatus for the marker
    """
    path = lock_path(name, lock_dir)
    owner = get_lock_owner(path)
    if owner is None:
        return LockStatus(name=name, path=path)

    pid = _owner_pid(owner)
    alive = _is_pid_running(pid) if pid is not None else None
    return LockStatus(name=name, path=path, held=True, owner=owner, owner_alive=alive)


def _try_atomic_create(path: Path, owner: str) -> bool:
    """Attempt atomic marker creation.

    Returns:
        True if the marker was created, False if it already exists
    """
    try:
        fd = os.open(str(path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        return False
    try:
        os.write(fd, owner.encode())
    finally:
        os.close(fd)
    return True


class FileLock:
    """Named cross-process mutex backed by an exclusive-create marker file.

    Args:
        name: Lock name shared by every worker touching the same resource
        lock_dir: Directory holding lock markers
        max_retries: Attempts before ``acquire`` gives up
        retry_delay: Seconds to sleep between attempts
        owner: Owner token written to the marker (defaults to this PID)
        sleep: Sleep function used between attempts
    """

    def __init__(
        self,
        name: str,
        lock_dir: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_MS / 1000,
        owner: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if retry_delay < 0:
            raise ValueError("retry_delay cannot be negative")
        self.name = name
        self.path = lock_path(name, lock_dir)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.owner = owner if owner is not None else str(os.getpid())
        self._sleep = sleep

    def __repr__(self) -> str:
        return f"FileLock({self.name!r}, owner={self.owner!r})"

    def acquire(self) -> bool:
        """Try to take the lock, spinning with a fixed delay.

        Returns:
            True if this caller now owns the lock, False if every attempt
            found the marker already present
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for attempt in range(1, self.max_retries + 1):
            if _try_atomic_create(self.path, self.owner):
                logger.debug("%s acquired %s (attempt %d)", self.owner, self.name, attempt)
                return True
            if attempt < self.max_retries:
                self._sleep(self.retry_delay)

        logger.warning(
            "%s gave up on lock %s after %d attempts", self.owner, self.name, self.max_retries
        )
        return False

    def release(self) -> None:
        """Release the lock if this caller owns it.

        A missing marker or one owned by someone else is left alone.
        """
        current = get_lock_owner(self.path)
        if current is None:
            logger.debug("%s release of %s: no marker", self.owner, self.name)
            return
        if current != self.owner:
            logger.debug("%s release of %s: owned by %s", self.owner, self.name, current)
            return
        self.path.unlink(missing_ok=True)

    def cleanup(self) -> None:
        """Remove the marker regardless of owner. Teardown only."""
        self.path.unlink(missing_ok=True)

    def is_held_by_me(self) -> bool:
        """Check whether the marker exists and carries this caller's token."""
        return get_lock_owner(self.path) == self.owner

    @contextmanager
    def held(self) -> Iterator["FileLock"]:
        """Hold the lock for the duration of a ``with`` block.

        Raises:
            LockError: If the lock could not be acquired
        """
        if not self.acquire():
            raise LockError(
                f"Could not acquire lock {self.name!r} after {self.max_retries} attempts"
            )
        try:
            yield self
        finally:
            self.release()
