"""Core race-harness logic for racelab.

This package contains the synchronization primitive and its clients:
- lock_manager: Cross-process FileLock built on exclusive file creation
- store: Resource stores for the contended value
- delay: Randomised delay injection
- worker: Read-modify-write and check-then-act worker protocol
- buffer: Bounded producer-consumer buffer and its workers
- harness: Orchestrator that fans workers out and in
- verify: Expected-vs-actual verification
- transfer: SQLite transfer demo delegating to database transactions
"""

from .buffer import (
    FileBufferStore,
    MemoryBufferStore,
    consume,
    new_buffer,
    produce,
    run_buffer_worker,
)
from .delay import DelayWindow
from .harness import (
    Harness,
    HarnessError,
    HarnessState,
    SubprocessLauncher,
    WorkerLauncher,
    parse_outcome,
)
from .lock_manager import FileLock, LockError, get_lock_owner, inspect_lock, lock_path
from .store import (
    FileResourceStore,
    MemoryResourceStore,
    ResourceError,
    ResourceStore,
    stamp,
)
from .transfer import (
    AccountsStore,
    TransferError,
    transfer_transactional,
    transfer_unprotected,
    verify_transfer,
)
from .verify import verify_balance, verify_buffer, verify_counter, verify_stock
from .worker import check_then_act, read_modify_write, run_worker

__all__ = [
    "AccountsStore",
    "DelayWindow",
    "FileBufferStore",
    "FileLock",
    "FileResourceStore",
    "Harness",
    "HarnessError",
    "HarnessState",
    "LockError",
    "MemoryBufferStore",
    "MemoryResourceStore",
    "ResourceError",
    "ResourceStore",
    "SubprocessLauncher",
    "TransferError",
    "WorkerLauncher",
    "check_then_act",
    "consume",
    "get_lock_owner",
    "inspect_lock",
    "lock_path",
    "new_buffer",
    "parse_outcome",
    "produce",
    "read_modify_write",
    "run_buffer_worker",
    "run_worker",
    "stamp",
    "transfer_transactional",
    "transfer_unprotected",
    "verify_balance",
    "verify_buffer",
    "verify_counter",
    "verify_stock",
    "verify_transfer",
]
