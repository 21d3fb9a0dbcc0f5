"""Deliver exported MIDI bytes to disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

log = logging.getLogger(__name__)


class FileSink(Protocol):
    def deliver(self, data: bytes, filename: str) -> Path:
        """Persist ``data`` under ``filename`` and return where it went."""
        ...


class DirectorySink:
    """Writes each export into a fixed directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def deliver(self, data: bytes, filename: str) -> Path:
        path = self.directory / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        log.info("Wrote %s (%d bytes)", path, len(data))
        return path
