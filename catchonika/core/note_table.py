"""Fixed-size note state table with sustain-pedal hold semantics.

One slot per (channel, note) key. Each slot is INACTIVE, ACTIVE, or
PENDING_RELEASE (note-off seen while the pedal was held, still sounding).
Used both for live capture status and, freshly allocated, for every export
replay.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from .constants import MIDI_CHANNELS, MIDI_NOTES


class NoteState(IntEnum):
    INACTIVE = 0
    ACTIVE = 1
    PENDING_RELEASE = 2


@dataclass(frozen=True, slots=True)
class OpenNote:
    """A sounding note as stored in the table."""

    channel: int       # 1..16
    note: int          # 0..127
    onset_ms: float
    velocity: int


def _index(channel: int, note: int) -> int:
    if not 1 <= channel <= MIDI_CHANNELS:
        raise IndexError(f"channel out of range: {channel}")
    if not 0 <= note < MIDI_NOTES:
        raise IndexError(f"note out of range: {note}")
    return (channel - 1) * MIDI_NOTES + note


class NoteTable:
    """Per-key note state plus per-channel sustain flags."""

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        """Reset every key to INACTIVE and release all pedals."""
        size = MIDI_CHANNELS * MIDI_NOTES
        self._state = [NoteState.INACTIVE] * size
        self._onset = [0.0] * size
        self._velocity = [0] * size
        self._sustain = [False] * MIDI_CHANNELS
        self._sounding = 0

    @property
    def sounding_count(self) -> int:
        return self._sounding

    def state(self, channel: int, note: int) -> NoteState:
        return self._state[_index(channel, note)]

    def sustain_held(self, channel: int) -> bool:
        return self._sustain[channel - 1]

    def press(self, channel: int, note: int, t: float, velocity: int) -> None:
        """Open a note. A key that is already sounding is overwritten in place.

        A re-struck PENDING_RELEASE key keeps its pending state and is
        closed by the next pedal release.
        """
        i = _index(channel, note)
        if self._state[i] is NoteState.INACTIVE:
            self._state[i] = NoteState.ACTIVE
            self._sounding += 1
        self._onset[i] = t
        self._velocity[i] = velocity

    def release(self, channel: int, note: int) -> OpenNote | None:
        """Handle a note-off.

        Returns the closed note, or None when the key was not sounding or
        the sustain pedal defers the release.
        """
        i = _index(channel, note)
        if self._state[i] is NoteState.INACTIVE:
            return None
        if self._sustain[channel - 1]:
            self._state[i] = NoteState.PENDING_RELEASE
            return None
        return self._close(i)

    def set_sustain(self, channel: int, held: bool) -> list[OpenNote]:
        """Update the pedal; on release, close every pending key of the channel."""
        self._sustain[channel - 1] = held
        if held:
            return []
        closed: list[OpenNote] = []
        base = (channel - 1) * MIDI_NOTES
        for i in range(base, base + MIDI_NOTES):
            if self._state[i] is NoteState.PENDING_RELEASE:
                closed.append(self._close(i))
        return closed

    def sounding(self) -> list[OpenNote]:
        """All ACTIVE and PENDING_RELEASE notes, in (channel, note) order."""
        return [
            self._open_note(i)
            for i, st in enumerate(self._state)
            if st is not NoteState.INACTIVE
        ]

    def close_all(self) -> list[OpenNote]:
        """Close every sounding note (pedal flags are left untouched)."""
        notes = self.sounding()
        for n in notes:
            self._close(_index(n.channel, n.note))
        return notes

    def _close(self, i: int) -> OpenNote:
        note = self._open_note(i)
        self._state[i] = NoteState.INACTIVE
        self._sounding -= 1
        return note

    def _open_note(self, i: int) -> OpenNote:
        channel, note = divmod(i, MIDI_NOTES)
        return OpenNote(
            channel=channel + 1,
            note=note,
            onset_ms=self._onset[i],
            velocity=self._velocity[i],
        )
