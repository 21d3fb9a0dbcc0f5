"""Rolling, time-ordered event log with periodic eviction.

Appends arrive on the rtmidi callback thread, sweeps on the scheduler
thread, and snapshots on the caller's thread, so every operation holds
the buffer lock for its full duration.
"""

from __future__ import annotations

import logging
import threading
from collections import deque

from .constants import DEFAULT_BUFFER_MINUTES
from .events import RawEvent

log = logging.getLogger(__name__)


class RollingBuffer:
    """Append-only event log that keeps the last ``retention_minutes``."""

    def __init__(self, retention_minutes: float = DEFAULT_BUFFER_MINUTES) -> None:
        if retention_minutes <= 0:
            raise ValueError("retention_minutes must be positive")
        self._retention_ms = retention_minutes * 60_000
        self._events: deque[RawEvent] = deque()
        self._lock = threading.Lock()

    @property
    def retention_ms(self) -> float:
        return self._retention_ms

    @property
    def first_t(self) -> float | None:
        with self._lock:
            return self._events[0].t if self._events else None

    @property
    def last_t(self) -> float | None:
        with self._lock:
            return self._events[-1].t if self._events else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(self, event: RawEvent) -> None:
        """Add an event at the tail. Timestamps must be non-decreasing."""
        with self._lock:
            self._events.append(event)

    def sweep(self, now_ms: float) -> int:
        """Evict every event older than ``now - retention``.

        Returns the number of evicted events.
        """
        cutoff = now_ms - self._retention_ms
        if cutoff <= 0:
            return 0
        evicted = 0
        with self._lock:
            while self._events and self._events[0].t < cutoff:
                self._events.popleft()
                evicted += 1
        if evicted:
            log.debug("Swept %d events older than %.0f ms", evicted, cutoff)
        return evicted

    def snapshot(self) -> list[RawEvent]:
        """Return a copy of every buffered event in arrival order."""
        with self._lock:
            return list(self._events)

    def select(self, start_ms: float, end_ms: float) -> list[RawEvent]:
        """Return a copy of the events with ``start_ms <= t <= end_ms``."""
        with self._lock:
            return [e for e in self._events if start_ms <= e.t <= end_ms]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
