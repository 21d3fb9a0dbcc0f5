"""Rebuild discrete notes from a slice of the event log.

Replays events in time order against a fresh ``NoteTable`` so the result
depends only on the slice: no state is shared between calls.

Per (channel, note) key:

    INACTIVE --on--> ACTIVE --off, pedal up--> INACTIVE   (note emitted)
                     ACTIVE --off, pedal down--> PENDING_RELEASE
                     PENDING_RELEASE --pedal released--> INACTIVE (note emitted)

A note-on for a key that is already sounding overwrites onset and velocity;
the earlier note is never emitted. Keys still sounding at the end of the
slice are closed at the window end.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .constants import SUSTAIN_CONTROLLER, SUSTAIN_THRESHOLD
from .events import EventKind, RawEvent
from .note_table import NoteTable, OpenNote


@dataclass(frozen=True, slots=True)
class ReconstructedNote:
    channel: int
    note: int
    start_ms: float
    end_ms: float
    velocity: int  # raw MIDI velocity 1..127

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def reconstruct_notes(
    events: Iterable[RawEvent],
    window_start: float,
    window_end: float,
) -> list[ReconstructedNote]:
    """Replay ``events`` (already time-ordered) and return the notes they form.

    Every note is clamped into ``[window_start, window_end]``; notes whose
    clamped duration is not positive are discarded. Output is in emission
    order (close time, then key order).
    """
    table = NoteTable()
    notes: list[ReconstructedNote] = []

    def emit(opened: OpenNote, end_ms: float) -> None:
        start = _clamp(opened.onset_ms, window_start, window_end)
        end = _clamp(end_ms, window_start, window_end)
        if end <= start:
            return
        notes.append(ReconstructedNote(
            channel=opened.channel,
            note=opened.note,
            start_ms=start,
            end_ms=end,
            velocity=opened.velocity,
        ))

    for e in events:
        if e.kind is EventKind.CONTROL_CHANGE and e.controller == SUSTAIN_CONTROLLER:
            held = (e.value or 0) >= SUSTAIN_THRESHOLD
            for opened in table.set_sustain(e.channel, held):
                emit(opened, e.t)
        elif e.kind is EventKind.NOTE_ON:
            table.press(e.channel, e.note, e.t, e.velocity)
        elif e.kind.is_note_off:
            # Orphan offs return None from release() and are skipped
            closed = table.release(e.channel, e.note)
            if closed is not None:
                emit(closed, e.t)

    for opened in table.close_all():
        emit(opened, window_end)

    return notes
