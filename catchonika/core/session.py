"""Capture session: always-on recording with "save last N seconds" export.

Owns the rolling buffer, ingestor and exporter, and is handed its
collaborators (input source, encoder, file sink, clock, scheduler)
explicitly. Pure Python, no GUI dependency.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from .clock import Clock, MonotonicClock
from .config import CaptureSettings
from .constants import RECONNECT_INTERVAL
from .errors import CapabilityError, ConfigurationError, ExportError
from .event_buffer import RollingBuffer
from .exporter import RangeExporter, RenderedRange, export_filename, resolve_bpm
from .file_sink import FileSink
from .ingestor import EventIngestor
from .midi_listener import MessageCallback
from .midi_writer import Encoder
from .scheduler import Scheduler, TaskHandle, ThreadScheduler

log = logging.getLogger(__name__)


class InputSource(Protocol):
    """Device binding: subscribe per input, unsubscribe on teardown."""

    @property
    def port_names(self) -> list[str]: ...

    def open_all(self, callback: MessageCallback) -> list[str]: ...

    def refresh(self) -> list[str]: ...

    def close_all(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ExportResult:
    """A successfully delivered export."""

    path: Path
    filename: str
    rendered: RenderedRange

    @property
    def bpm(self) -> float:
        return self.rendered.bpm

    @property
    def note_count(self) -> int:
        return self.rendered.note_count

    @property
    def track_count(self) -> int:
        return self.rendered.track_count


class CaptureSession:
    """Records every MIDI input into a rolling buffer and exports ranges.

    Export failures raise ``ExportError``; success returns an ``ExportResult``.
    """

    def __init__(
        self,
        input_source: InputSource,
        encoder: Encoder | None,
        sink: FileSink,
        clock: Clock | None = None,
        scheduler: Scheduler | None = None,
        settings: CaptureSettings | None = None,
        on_status: Callable[[str], None] | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        if encoder is None or not callable(getattr(encoder, "encode", None)):
            raise ConfigurationError("No MIDI file encoder available; cannot export.")
        self.settings = settings or CaptureSettings()
        self._input = input_source
        self._sink = sink
        self._clock = clock or MonotonicClock()
        self._scheduler = scheduler or ThreadScheduler()
        self._on_status = on_status
        self._now = now
        self._buffer = RollingBuffer(self.settings.buffer_minutes)
        self._ingestor = EventIngestor(self._buffer, self._clock)
        self._exporter = RangeExporter(
            self._buffer,
            encoder,
            default_bpm=self.settings.default_bpm,
            group_by_channel=self.settings.group_by_channel,
        )
        self._tasks: list[TaskHandle] = []
        self._recording = False
        self._status = "Starting…"

    # --- Properties ---

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def buffer(self) -> RollingBuffer:
        return self._buffer

    @property
    def ingestor(self) -> EventIngestor:
        return self._ingestor

    @property
    def exporter(self) -> RangeExporter:
        return self._exporter

    @property
    def event_count(self) -> int:
        return len(self._buffer)

    def elapsed_ms(self) -> float:
        return self._clock.now_ms()

    # --- Lifecycle ---

    def start(self) -> bool:
        """Subscribe to all inputs and schedule buffer hygiene.

        Returns False (and stays idle) when MIDI access is unavailable.
        """
        if self._recording:
            return True
        try:
            self._input.open_all(self.on_message)
        except CapabilityError as exc:
            log.warning("MIDI access failed: %s", exc)
            self._set_status(f"MIDI access failed: {exc}")
            return False

        self._recording = True
        self._tasks.append(self._scheduler.every(
            self.settings.sweep_interval, self.sweep, name="catchonika-sweep",
        ))
        self._tasks.append(self._scheduler.every(
            RECONNECT_INTERVAL, self.refresh_inputs, name="catchonika-rescan",
        ))
        self._set_status("Catchonika: recording…")
        self._report_inputs()
        return True

    def stop(self) -> None:
        """Cancel background tasks and unsubscribe from every input."""
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
        if self._recording:
            self._input.close_all()
            self._recording = False
            self._set_status("Stopped.")

    def __enter__(self) -> CaptureSession:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # --- Capture ---

    def on_message(self, data: bytes, source_id: str = "", source_name: str = "") -> None:
        """Input callback: may run on any rtmidi thread."""
        self._ingestor.ingest(data, source_id, source_name)

    def refresh_inputs(self) -> None:
        """Pick up connected/disconnected devices."""
        before = set(self._input.port_names)
        try:
            self._input.refresh()
        except CapabilityError as exc:
            log.warning("MIDI rescan failed: %s", exc)
            return
        if set(self._input.port_names) != before:
            self._report_inputs()

    def sweep(self) -> int:
        """Drop events older than the retention window."""
        return self._buffer.sweep(self._clock.now_ms())

    def clear(self) -> None:
        """Empty the buffer and forget live note/pedal state."""
        self._buffer.clear()
        self._ingestor.clear()
        self._set_status("Cleared buffer.")

    # --- Export ---

    def save_last(self, seconds: float | None = None, bpm: float | None = None) -> ExportResult:
        """Save the last ``seconds`` (default from settings) as a .mid file."""
        if seconds is None:
            seconds = self.settings.last_seconds
        end_ms = self._clock.now_ms()
        start_ms = max(0.0, end_ms - seconds * 1000)
        label = f"last-{seconds:g}s"
        return self.save_range(start_ms, end_ms, bpm=bpm, label=label)

    def save_full(self, bpm: float | None = None) -> ExportResult:
        """Save everything still in the buffer."""
        return self.save_range(0.0, self._clock.now_ms(), bpm=bpm, label="session")

    def save_range(
        self,
        start_ms: float,
        end_ms: float,
        bpm: float | None = None,
        label: str = "range",
        group_by_channel: bool | None = None,
    ) -> ExportResult:
        """Render ``[start_ms, end_ms]`` and hand it to the file sink."""
        bpm_used = resolve_bpm(bpm, self.settings.default_bpm)
        try:
            rendered = self._exporter.render(start_ms, end_ms, bpm_used, group_by_channel)
            filename = export_filename(label, bpm_used, self._now() if self._now else None)
            path = self._sink.deliver(rendered.data, filename)
        except ExportError as exc:
            log.warning("Export of %s failed: %s", label, exc)
            self._set_status(f"Export failed: {exc}")
            raise
        except OSError as exc:
            log.warning("Could not write %s export: %s", label, exc)
            self._set_status(f"Export failed: {exc}")
            raise ExportError(f"could not write export: {exc}") from exc

        self._set_status(f"Saved {filename}")
        return ExportResult(path=path, filename=filename, rendered=rendered)

    # --- Status ---

    def _report_inputs(self) -> None:
        names = ", ".join(self._input.port_names) or "none"
        self._set_status(f"Inputs: {names}")

    def _set_status(self, text: str) -> None:
        self._status = text
        log.info("%s", text)
        if self._on_status is not None:
            self._on_status(text)
