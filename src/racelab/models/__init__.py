"""Pydantic data models for racelab.

This package defines the data structures shared by the core and the CLI:
- The contended resource records (ResourceRecord, BufferRecord)
- Worker parameters and reported outcomes (WorkerSpec, WorkerOutcome)
- Verification records (CounterVerification, InvariantVerification, ...)
- Lock diagnostics (LockStatus)
- The presentation boundary (DemoResult)

Example:
    >>> from racelab.models import ResourceRecord
    >>> ResourceRecord(value=0).model_dump_json()
"""

from .lock import LockStatus
from .resource import BufferRecord, ResourceRecord
from .result import DemoResult
from .verification import (
    BufferVerification,
    CounterVerification,
    InvariantVerification,
    TransferVerification,
    TrialSummary,
)
from .worker import RunReport, WorkerOutcome, WorkerRun, WorkerShape, WorkerSpec

Verification = (
    CounterVerification | InvariantVerification | TransferVerification | BufferVerification
)

__all__ = [
    "BufferRecord",
    "BufferVerification",
    "CounterVerification",
    "DemoResult",
    "InvariantVerification",
    "LockStatus",
    "ResourceRecord",
    "RunReport",
    "TransferVerification",
    "TrialSummary",
    "Verification",
    "WorkerOutcome",
    "WorkerRun",
    "WorkerShape",
    "WorkerSpec",
]
