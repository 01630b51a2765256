"""Resource stores for the single contended value.

A store has an explicit lifecycle scoped to one harness run: initialize,
any number of reads and whole-record writes, then teardown. Reads never
fall back to a default value; a missing or corrupt record mid-run means
teardown ran too early or something else deleted the artifact.
"""

import os
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from ..models import ResourceRecord


class ResourceError(Exception):
    """Resource record missing or unreadable."""


def stamp(record: ResourceRecord, value: int, writer: str) -> ResourceRecord:
    """Build the next record written by ``writer``.

    Args:
        record: Record the writer read
        value: New value
        writer: Writer identity

    Returns:
        New record with bookkeeping fields updated
    """
    return ResourceRecord(
        value=value,
        last_writer=writer,
        updated_at=datetime.now(),
        writes=record.writes + 1,
    )


class ResourceStore(ABC):
    """Durable home of a ResourceRecord.

    Subclasses holding a richer record override ``record_type`` and
    ``new_record``.
    """

    record_type: type[ResourceRecord] = ResourceRecord

    def new_record(self, value: int) -> ResourceRecord:
        """Starting record written by ``initialize``."""
        return ResourceRecord(value=value, last_writer="init", updated_at=datetime.now())

    @abstractmethod
    def initialize(self, value: int) -> ResourceRecord:
        """Write the starting record, replacing any previous state."""

    @abstractmethod
    def read(self) -> ResourceRecord:
        """Read the current record.

        Raises:
            ResourceError: If the record is missing or corrupt
        """

    @abstractmethod
    def write(self, record: ResourceRecord) -> None:
        """Overwrite the whole record."""

    @abstractmethod
    def teardown(self) -> None:
        """Discard the record. Safe to call more than once."""

    @abstractmethod
    def exists(self) -> bool:
        """Whether a record is currently stored."""

    def describe(self) -> str:
        """Raw representation of the stored record, for display."""
        return self.read().model_dump_json(indent=2)


class FileResourceStore(ResourceStore):
    """JSON file store shared by worker processes.

    Args:
        path: File holding the record
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

    def initialize(self, value: int) -> ResourceRecord:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        record = self.new_record(value)
        self.write(record)
        return record

    def read(self) -> ResourceRecord:
        try:
            content = self.path.read_text()
        except FileNotFoundError as e:
            raise ResourceError(f"Resource file not found: {self.path}") from e
        try:
            return self.record_type.model_validate_json(content)
        except ValidationError as e:
            raise ResourceError(f"Resource file corrupt: {self.path}") from e

    def write(self, record: ResourceRecord) -> None:
        # Write-then-rename: readers see the old record or the new one, never a partial file
        tmp = self.path.with_name(f".{self.path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp.write_text(record.model_dump_json(indent=2))
        os.replace(tmp, self.path)

    def teardown(self) -> None:
        self.path.unlink(missing_ok=True)

    def exists(self) -> bool:
        return self.path.exists()

    def describe(self) -> str:
        try:
            return self.path.read_text()
        except FileNotFoundError as e:
            raise ResourceError(f"Resource file not found: {self.path}") from e


class MemoryResourceStore(ResourceStore):
    """In-process store for unit tests. Not shared between processes."""

    def __init__(self) -> None:
        self._record: ResourceRecord | None = None

    def initialize(self, value: int) -> ResourceRecord:
        record = self.new_record(value)
        self.write(record)
        return record

    def read(self) -> ResourceRecord:
        if self._record is None:
            raise ResourceError("Resource not initialized")
        return self._record.model_copy(deep=True)

    def write(self, record: ResourceRecord) -> None:
        self._record = record.model_copy(deep=True)

    def teardown(self) -> None:
        self._record = None

    def exists(self) -> bool:
        return self._record is not None

