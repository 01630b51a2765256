"""Tests for delay injection."""

import random

import pytest
from hypothesis import given
from hypothesis import strategies as st

from racelab.core.delay import DelayWindow


@pytest.mark.unit
class TestDelayWindow:
    """Tests for DelayWindow."""

    def test_none_never_sleeps(self) -> None:
        """Zero-width window skips the sleep entirely."""
        calls: list[float] = []
        window = DelayWindow(0, 0, sleep=calls.append)
        assert not window.enabled
        assert window.wait() == 0.0
        assert calls == []
        assert not DelayWindow.none().enabled

    def test_wait_sleeps_picked_delay(self) -> None:
        """wait sleeps for the delay it returns, in seconds."""
        calls: list[float] = []
        window = DelayWindow(5, 5, sleep=calls.append)
        seconds = window.wait()
        assert seconds == pytest.approx(0.005)
        assert calls == [seconds]

    def test_seeded_rng_is_reproducible(self) -> None:
        """Same seed gives the same delays."""
        a = DelayWindow(0, 100, rng=random.Random(7))
        b = DelayWindow(0, 100, rng=random.Random(7))
        assert [a.pick() for _ in range(5)] == [b.pick() for _ in range(5)]

    @pytest.mark.parametrize(("lo", "hi"), [(-1, 5), (0, -1), (10, 5)])
    def test_invalid_bounds(self, lo: float, hi: float) -> None:
        """Negative or inverted bounds are rejected."""
        with pytest.raises(ValueError):
            DelayWindow(lo, hi)

    @given(
        lo=st.floats(min_value=0, max_value=500, allow_nan=False),
        width=st.floats(min_value=0, max_value=500, allow_nan=False),
    )
    def test_pick_within_bounds(self, lo: float, width: float) -> None:
        """Picked delay always lies inside the configured window."""
        window = DelayWindow(lo, lo + width)
        seconds = window.pick()
        if window.enabled:
            assert lo / 1000 - 1e-9 <= seconds <= (lo + width) / 1000 + 1e-9
        else:
            assert seconds == 0.0
