"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from catchonika.core.clock import ManualClock
from catchonika.core.event_buffer import RollingBuffer
from catchonika.core.ingestor import EventIngestor
from catchonika.core.scheduler import ManualScheduler


class FakeInputSource:
    """Stands in for MidiInputHub without touching rtmidi."""

    def __init__(self, ports=("Port A",), fail: Exception | None = None) -> None:
        self.available = list(ports)
        self.fail = fail
        self.callback = None
        self._open: list[str] = []
        self.closed = False

    @property
    def port_names(self) -> list[str]:
        return list(self._open)

    def open_all(self, callback):
        if self.fail is not None:
            raise self.fail
        self.callback = callback
        return self.refresh()

    def refresh(self):
        opened = [p for p in self.available if p not in self._open]
        self._open = list(self.available)
        return opened

    def close_all(self):
        self._open = []
        self.callback = None
        self.closed = True


class MemorySink:
    """Collects delivered files in memory."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.files: dict[str, bytes] = {}
        self.fail = fail

    def deliver(self, data: bytes, filename: str) -> Path:
        if self.fail is not None:
            raise self.fail
        self.files[filename] = data
        return Path("/virtual") / filename


class RecordingEncoder:
    """Encoder that remembers the tracks it was given."""

    def __init__(self, fail: Exception | None = None) -> None:
        self.calls: list[list] = []
        self.fail = fail

    def encode(self, tracks):
        if self.fail is not None:
            raise self.fail
        self.calls.append(list(tracks))
        return b"MThd" + bytes([len(tracks)])


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def buffer():
    return RollingBuffer(retention_minutes=30)


@pytest.fixture
def ingestor(buffer, clock):
    return EventIngestor(buffer, clock)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def input_source():
    return FakeInputSource()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
def recording_encoder():
    return RecordingEncoder()
