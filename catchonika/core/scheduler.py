"""Periodic background tasks (buffer sweep, port rescan).

``ThreadScheduler`` runs each task on its own daemon thread; the
``ManualScheduler`` fires tasks only when time is advanced explicitly, so
replays and tests do not depend on wall-clock timers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Protocol

from .clock import ManualClock

log = logging.getLogger(__name__)


class TaskHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def every(self, interval: float, fn: Callable[[], object], name: str = "") -> TaskHandle:
        """Run ``fn`` every ``interval`` seconds until the handle is cancelled."""
        ...


class _ThreadTask:
    def __init__(self, interval: float, fn: Callable[[], object], name: str) -> None:
        self._interval = interval
        self._fn = fn
        self._stop_flag = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=name or "catchonika-task", daemon=True,
        )
        self._thread.start()

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def cancel(self) -> None:
        self._stop_flag.set()
        if self._thread is not threading.current_thread() and self._thread.is_alive():
            self._thread.join(timeout=3.0)

    def _run(self) -> None:
        while not self._stop_flag.wait(self._interval):
            try:
                self._fn()
            except Exception:
                log.exception("Periodic task %s failed", self._thread.name)


class ThreadScheduler:
    """One daemon thread per periodic task."""

    def every(self, interval: float, fn: Callable[[], object], name: str = "") -> _ThreadTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        return _ThreadTask(interval, fn, name)


class _ManualTask:
    def __init__(self, interval: float, fn: Callable[[], object], due: float) -> None:
        self.interval = interval
        self.fn = fn
        self.due = due
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic scheduler driven by ``advance(seconds)``.

    When given a ``ManualClock`` the clock is moved along with scheduler
    time (seconds here, milliseconds on the clock).
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self._now = 0.0
        self._tasks: list[_ManualTask] = []
        self._clock = clock

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.cancelled)

    def every(self, interval: float, fn: Callable[[], object], name: str = "") -> _ManualTask:
        if interval <= 0:
            raise ValueError("interval must be positive")
        task = _ManualTask(interval, fn, self._now + interval)
        self._tasks.append(task)
        return task

    def advance(self, seconds: float) -> int:
        """Move time forward, firing due tasks in time order. Returns fire count."""
        target = self._now + seconds
        fired = 0
        while True:
            live = [t for t in self._tasks if not t.cancelled and t.due <= target]
            if not live:
                break
            task = min(live, key=lambda t: t.due)
            self._now = task.due
            self._sync_clock()
            task.due += task.interval
            task.fn()
            fired += 1
        self._now = target
        self._sync_clock()
        self._tasks = [t for t in self._tasks if not t.cancelled]
        return fired

    def _sync_clock(self) -> None:
        if self._clock is not None and self._clock.now_ms() < self._now * 1000.0:
            self._clock.set(self._now * 1000.0)
