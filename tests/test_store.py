"""Tests for resource stores."""

import json
from pathlib import Path

import pytest

from racelab.core.store import FileResourceStore, MemoryResourceStore, ResourceError, stamp
from racelab.models import ResourceRecord


@pytest.fixture
def store(tmp_path: Path) -> FileResourceStore:
    """File store in a temp directory."""
    return FileResourceStore(tmp_path / "counter.json")


@pytest.mark.unit
class TestStamp:
    """Tests for stamp function."""

    def test_stamp_updates_bookkeeping(self) -> None:
        """New record carries writer, time and an incremented write count."""
        record = ResourceRecord(value=5, writes=3)
        new = stamp(record, 6, "worker-1")
        assert new.value == 6
        assert new.last_writer == "worker-1"
        assert new.updated_at is not None
        assert new.writes == 4
        # Input is untouched
        assert record.value == 5
        assert record.writes == 3


@pytest.mark.unit
class TestFileResourceStore:
    """Tests for FileResourceStore."""

    def test_initialize_writes_record(self, store: FileResourceStore) -> None:
        """Initialize creates the file with the starting value."""
        record = store.initialize(42)
        assert record.value == 42
        assert store.exists()
        data = json.loads(store.path.read_text())
        assert data["value"] == 42
        assert data["last_writer"] == "init"

    def test_initialize_creates_parent(self, tmp_path: Path) -> None:
        """Missing parent directory is created."""
        store = FileResourceStore(tmp_path / "a" / "b" / "r.json")
        store.initialize(0)
        assert store.read().value == 0

    def test_initialize_replaces_previous_state(self, store: FileResourceStore) -> None:
        """Leftovers from a crashed run are overwritten."""
        store.path.write_text('{"value": 999, "writes": 50}')
        store.initialize(0)
        record = store.read()
        assert record.value == 0
        assert record.writes == 0

    def test_write_then_read(self, store: FileResourceStore) -> None:
        """Whole-record write is read back."""
        record = store.initialize(0)
        store.write(stamp(record, 7, "worker-2"))
        read = store.read()
        assert read.value == 7
        assert read.last_writer == "worker-2"
        assert read.writes == 1

    def test_write_leaves_no_temp_files(self, store: FileResourceStore) -> None:
        """Write-then-rename cleans up after itself."""
        store.initialize(0)
        for i in range(5):
            store.write(ResourceRecord(value=i))
        assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]

    def test_read_missing_raises(self, store: FileResourceStore) -> None:
        """Reading before initialize is an error, not a default."""
        with pytest.raises(ResourceError, match="not found"):
            store.read()

    def test_read_corrupt_raises(self, store: FileResourceStore) -> None:
        """Unparseable content is an error."""
        store.path.write_text("{not json")
        with pytest.raises(ResourceError, match="corrupt"):
            store.read()

    def test_read_wrong_shape_raises(self, store: FileResourceStore) -> None:
        """Valid JSON that is not a record is an error."""
        store.path.write_text('{"count": 3}')
        with pytest.raises(ResourceError, match="corrupt"):
            store.read()

    def test_teardown_removes_file(self, store: FileResourceStore) -> None:
        """Teardown deletes the artifact and is idempotent."""
        store.initialize(0)
        store.teardown()
        assert not store.exists()
        store.teardown()

    def test_describe_shows_raw_content(self, store: FileResourceStore) -> None:
        """Describe returns the file text."""
        store.initialize(3)
        assert '"value": 3' in store.describe()

    def test_describe_missing_raises(self, store: FileResourceStore) -> None:
        """Describe fails like read when the artifact is gone."""
        with pytest.raises(ResourceError):
            store.describe()


@pytest.mark.unit
class TestMemoryResourceStore:
    """Tests for MemoryResourceStore."""

    def test_lifecycle(self) -> None:
        """Initialize, write, read and teardown."""
        store = MemoryResourceStore()
        assert not store.exists()
        record = store.initialize(10)
        store.write(stamp(record, 9, "w"))
        assert store.read().value == 9
        store.teardown()
        assert not store.exists()

    def test_read_before_initialize_raises(self) -> None:
        """No implicit default value."""
        with pytest.raises(ResourceError, match="not initialized"):
            MemoryResourceStore().read()

    def test_read_returns_copy(self) -> None:
        """Mutating a read record does not change the store."""
        store = MemoryResourceStore()
        store.initialize(1)
        record = store.read()
        record.value = 100
        assert store.read().value == 1

    def test_describe_is_json(self) -> None:
        """Default describe renders the record as JSON."""
        store = MemoryResourceStore()
        store.initialize(4)
        assert json.loads(store.describe())["value"] == 4
