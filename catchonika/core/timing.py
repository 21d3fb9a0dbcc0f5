"""Millisecond → tick conversion and encoder value mapping (pure functions)."""

from __future__ import annotations

import math
import re

from .constants import PITCH_CLASSES, PPQ, VELOCITY_MAX, VELOCITY_MIN

_NOTE_NAME_RE = re.compile(r"^([A-Ga-g])([#b]?)(-?\d+)$")
_FLATS = {"Db": "C#", "Eb": "D#", "Gb": "F#", "Ab": "G#", "Bb": "A#"}


def round_half_up(value: float) -> int:
    """Round .5 upwards (``round()`` would round half to even)."""
    return math.floor(value + 0.5)


def ms_to_ticks(ms: float, bpm: float, ppq: int = PPQ) -> int:
    """Convert a session time or duration in ms to ticks at ``bpm``.

    Never returns less than 1 tick, for positions as well as durations.
    """
    return max(1, round_half_up(ms / 60_000 * bpm * ppq))


def midi_note_to_name(note: int) -> str:
    """60 → "C4", 61 → "C#4", 21 → "A0"."""
    return f"{PITCH_CLASSES[note % 12]}{note // 12 - 1}"


def note_name_to_midi(name: str) -> int:
    """Inverse of ``midi_note_to_name``; also accepts flats ("Bb3")."""
    m = _NOTE_NAME_RE.match(name.strip())
    if not m:
        raise ValueError(f"invalid note name: {name!r}")
    letter, accidental, octave = m.groups()
    pitch = letter.upper() + accidental
    pitch = _FLATS.get(pitch, pitch)
    if pitch not in PITCH_CLASSES:
        # Cb, Fb, B#, E# wrap across the octave boundary
        base = PITCH_CLASSES.index(letter.upper())
        offset = 1 if accidental == "#" else -1
        number = (int(octave) + 1) * 12 + base + offset
    else:
        number = (int(octave) + 1) * 12 + PITCH_CLASSES.index(pitch)
    if not 0 <= number <= 127:
        raise ValueError(f"note out of MIDI range: {name!r}")
    return number


def scale_velocity(velocity: int) -> int:
    """Map raw MIDI velocity (0..127) to the encoder's 1..100 scale."""
    return max(VELOCITY_MIN, min(VELOCITY_MAX, round_half_up(velocity / 127 * 100)))


def unscale_velocity(velocity: int) -> int:
    """Map encoder velocity (1..100) back to MIDI velocity (1..127)."""
    return max(1, min(127, round_half_up(velocity / 100 * 127)))
