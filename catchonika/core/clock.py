"""Millisecond session clocks.

All event timestamps are milliseconds since a fixed session-start instant.
"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now_ms(self) -> float:
        """Milliseconds elapsed since session start."""
        ...


class MonotonicClock:
    """``time.perf_counter()`` based clock anchored at construction."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def now_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000.0

    def reset(self) -> None:
        """Re-anchor the session start to now."""
        self._start = time.perf_counter()


class ManualClock:
    """Deterministic clock for replays and tests. Never moves backwards."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        if ms < 0:
            raise ValueError("clock cannot move backwards")
        self._now += ms
        return self._now

    def set(self, ms: float) -> None:
        if ms < self._now:
            raise ValueError("clock cannot move backwards")
        self._now = float(ms)
