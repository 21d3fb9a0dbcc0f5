"""Typed, timestamped MIDI events stored in the rolling buffer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class EventKind(str, Enum):
    NOTE_ON = "note_on"
    NOTE_OFF = "note_off"
    DEFERRED_NOTE_OFF = "note_off_deferred"  # note-off while sustain held
    CONTROL_CHANGE = "control_change"
    PITCH_BEND = "pitch_bend"
    RAW = "raw"

    @property
    def is_note_off(self) -> bool:
        return self in (EventKind.NOTE_OFF, EventKind.DEFERRED_NOTE_OFF)


@dataclass(frozen=True, slots=True)
class RawEvent:
    """A single normalized MIDI event. Immutable once appended."""

    t: float               # ms since session start
    kind: EventKind
    channel: int           # 1..16
    note: int | None = None
    velocity: int | None = None
    controller: int | None = None
    value: int | None = None   # CC value, or centred pitch bend (-8192..8191)
    data: bytes = b""          # original message bytes
    source_id: str = ""
    source_name: str = ""
