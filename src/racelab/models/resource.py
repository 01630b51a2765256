"""Resource record models for the contended value and the bounded buffer.

The record is the only state shared between workers. Bookkeeping fields
exist so a human can see who wrote last; no correctness logic reads them.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class ResourceRecord(BaseModel):
    """Contended value persisted by a resource store.

    Attributes:
        value: The counter, balance or stock level under contention.
        last_writer: Identity of the worker that wrote this record.
        updated_at: When this record was written.
        writes: Number of writes that produced this record (as seen by the writer).
    """

    value: int = Field(description="Contended value")
    last_writer: str | None = Field(default=None, description="Identity of last writer")
    updated_at: datetime | None = Field(default=None, description="Last write time")
    writes: int = Field(default=0, description="Write count as observed by the writer")


class BufferRecord(ResourceRecord):
    """Bounded FIFO buffer shared by producers and consumers.

    ``value`` mirrors ``len(items)`` so generic tooling can show the fill
    level. The two counters are bumped in the same write as the item list,
    so a lost write loses its counter increment too.

    Attributes:
        capacity: Maximum number of items the buffer holds.
        items: Buffered items, oldest first.
        produced_count: Items ever added, including seeded items.
        consumed_count: Items ever removed.
    """

    capacity: int = Field(ge=1, description="Maximum buffered items")
    items: list[str] = Field(default_factory=list, description="Buffered items, oldest first")
    produced_count: int = Field(default=0, description="Items ever added")
    consumed_count: int = Field(default=0, description="Items ever removed")
