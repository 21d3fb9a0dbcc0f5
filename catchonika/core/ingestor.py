"""Normalize raw device messages into typed events and append them to the buffer.

Also keeps live note/sustain bookkeeping for capture status. That state is
never consulted by export, which replays the buffer from scratch.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

import mido

from .clock import Clock
from .constants import SUSTAIN_CONTROLLER, SUSTAIN_THRESHOLD
from .event_buffer import RollingBuffer
from .events import EventKind, RawEvent
from .note_table import NoteState, NoteTable

log = logging.getLogger(__name__)


class EventIngestor:
    """Decodes one MIDI message per call and appends exactly one event.

    Thread-safe: ``ingest`` may be called from several rtmidi callback
    threads (one per open port). Timestamping, live-state update and append
    happen under a single lock so the buffer stays time-ordered.
    """

    def __init__(self, buffer: RollingBuffer, clock: Clock) -> None:
        self._buffer = buffer
        self._clock = clock
        self._live = NoteTable()
        self._lock = threading.Lock()

    @property
    def sounding_count(self) -> int:
        """Notes currently sounding (held keys plus pedal-sustained ones)."""
        with self._lock:
            return self._live.sounding_count

    def sustain_held(self, channel: int) -> bool:
        with self._lock:
            return self._live.sustain_held(channel)

    def note_state(self, channel: int, note: int) -> NoteState:
        with self._lock:
            return self._live.state(channel, note)

    def clear(self) -> None:
        """Forget all live note and pedal state."""
        with self._lock:
            self._live.clear()

    def ingest(
        self,
        data: bytes | Sequence[int],
        source_id: str = "",
        source_name: str = "",
    ) -> None:
        """Decode ``data`` and append the resulting event.

        Empty, truncated or otherwise malformed payloads are dropped.
        """
        if not data:
            return
        try:
            msg = mido.Message.from_bytes(data)
        except (ValueError, TypeError, IndexError):
            log.debug("Dropped malformed MIDI payload: %r", list(data))
            return

        raw = bytes(data)
        channel = (raw[0] & 0x0F) + 1
        with self._lock:
            t = self._clock.now_ms()
            event = self._normalize(msg, t, channel, raw, source_id, source_name)
            self._buffer.append(event)

    def _normalize(
        self,
        msg: mido.Message,
        t: float,
        channel: int,
        raw: bytes,
        source_id: str,
        source_name: str,
    ) -> RawEvent:
        """Build the event for ``msg`` and update live state. Lock held."""
        common = {"t": t, "channel": channel, "data": raw,
                  "source_id": source_id, "source_name": source_name}

        if msg.type == "note_on" and msg.velocity > 0:
            self._live.press(channel, msg.note, t, msg.velocity)
            return RawEvent(kind=EventKind.NOTE_ON, note=msg.note,
                            velocity=msg.velocity, **common)

        if msg.type == "note_off" or msg.type == "note_on":
            return RawEvent(kind=self._note_off_kind(channel, msg.note),
                            note=msg.note, velocity=0, **common)

        if msg.type == "control_change":
            if msg.control == SUSTAIN_CONTROLLER:
                self._update_sustain(channel, msg.value >= SUSTAIN_THRESHOLD)
            return RawEvent(kind=EventKind.CONTROL_CHANGE, controller=msg.control,
                            value=msg.value, **common)

        if msg.type == "pitchwheel":
            return RawEvent(kind=EventKind.PITCH_BEND, value=msg.pitch, **common)

        # Aftertouch, program change, sysex, clock... kept for diagnostics
        return RawEvent(kind=EventKind.RAW, **common)

    def _note_off_kind(self, channel: int, note: int) -> EventKind:
        state = self._live.state(channel, note)
        if state is NoteState.INACTIVE:
            # Off without a prior on (device race); logged, not an error
            return EventKind.NOTE_OFF
        held = self._live.sustain_held(channel)
        self._live.release(channel, note)
        return EventKind.DEFERRED_NOTE_OFF if held else EventKind.NOTE_OFF

    def _update_sustain(self, channel: int, held: bool) -> None:
        was_held = self._live.sustain_held(channel)
        closed = self._live.set_sustain(channel, held)
        if was_held and not held and closed:
            log.debug("Pedal up on ch %d released %d notes", channel, len(closed))
