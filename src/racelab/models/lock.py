"""Lock status model for diagnostics.

The lock marker itself holds only the owner token as text; this model is
what ``racelab lock status`` reports about it.
"""

from pathlib import Path

from pydantic import BaseModel, Field


class LockStatus(BaseModel):
    """Observed state of a lock marker.

    Attributes:
        name: Lock name.
        path: Marker file path derived from the name.
        held: True if the marker exists.
        owner: Owner token read from the marker.
        owner_alive: Whether the owner token is the PID of a running process.
            None when the token is not a PID or the lock is free.
    """

    name: str = Field(description="Lock name")
    path: Path = Field(description="Marker file path")
    held: bool = Field(default=False, description="Marker exists")
    owner: str | None = Field(default=None, description="Owner token")
    owner_alive: bool | None = Field(default=None, description="Owner PID is running")

    @property
    def stale(self) -> bool:
        """True if the lock is held by a process that no longer exists."""
        return self.held and self.owner_alive is False
