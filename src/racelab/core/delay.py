"""Randomised delay injection.

Widens the window between read and write so races show up reliably in a
short demo. The window always exists; the delay only makes it wide enough
to hit on fast hardware.
"""

import random
import time
from collections.abc import Callable


class DelayWindow:
    """Uniformly random sleep between ``min_ms`` and ``max_ms``.

    Args:
        min_ms: Lower bound in milliseconds
        max_ms: Upper bound in milliseconds
        sleep: Sleep function (tests substitute their own)
        rng: Random source
    """

    def __init__(
        self,
        min_ms: float = 0.0,
        max_ms: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if min_ms < 0 or max_ms < 0:
            raise ValueError("Delay bounds cannot be negative")
        if min_ms > max_ms:
            raise ValueError(f"min_ms ({min_ms}) is greater than max_ms ({max_ms})")
        self.min_ms = min_ms
        self.max_ms = max_ms
        self._sleep = sleep
        self._rng = rng or random.Random()

    @classmethod
    def none(cls) -> "DelayWindow":
        """Zero-width window."""
        return cls(0.0, 0.0)

    def __repr__(self) -> str:
        return f"DelayWindow({self.min_ms}, {self.max_ms})"

    @property
    def enabled(self) -> bool:
        return self.max_ms > 0

    def pick(self) -> float:
        """Choose a delay in seconds."""
        if not self.enabled:
            return 0.0
        return self._rng.uniform(self.min_ms, self.max_ms) / 1000

    def wait(self) -> float:
        """Sleep for a randomly chosen delay and return it in seconds."""
        seconds = self.pick()
        if seconds > 0:
            self._sleep(seconds)
        return seconds
