"""Encode tick-placed notes as standard MIDI file bytes via mido.

The exporter hands over one ``TrackGroup`` per output track; each carries
its tempo, time signature and absolute-tick note placements.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import mido

from .constants import DEFAULT_BPM, PPQ, TIME_SIGNATURE
from .timing import note_name_to_midi, unscale_velocity


@dataclass(frozen=True, slots=True)
class NotePlacement:
    """A note positioned on the tick grid."""

    pitch_name: str        # e.g. "C4"
    tick: int              # absolute start tick
    duration_ticks: int    # >= 1
    velocity: int          # 1..100
    channel: int           # 1..16


@dataclass(frozen=True, slots=True)
class TrackGroup:
    """One output track."""

    key: str               # "main" or "ch-<n>"
    name: str
    bpm: float = DEFAULT_BPM
    time_signature: tuple[int, int] = TIME_SIGNATURE
    placements: tuple[NotePlacement, ...] = field(default_factory=tuple)


class Encoder(Protocol):
    def encode(self, tracks: Sequence[TrackGroup]) -> bytes:
        """Return the binary MIDI file for ``tracks``."""
        ...


class MidoEncoder:
    """Write TrackGroups to .mid bytes.

    A single track produces a Type 0 file, several tracks a Type 1 file
    where every track carries its own tempo and time signature.
    """

    def __init__(self, ticks_per_beat: int = PPQ) -> None:
        self.ticks_per_beat = ticks_per_beat

    def encode(self, tracks: Sequence[TrackGroup]) -> bytes:
        mid = self.build(tracks)
        buf = io.BytesIO()
        mid.save(file=buf)
        return buf.getvalue()

    def build(self, tracks: Sequence[TrackGroup]) -> mido.MidiFile:
        """Build the ``mido.MidiFile`` without serializing it."""
        mid = mido.MidiFile(
            type=0 if len(tracks) == 1 else 1,
            ticks_per_beat=self.ticks_per_beat,
        )
        for group in tracks:
            mid.tracks.append(self._build_track(group))
        return mid

    @staticmethod
    def _build_track(group: TrackGroup) -> mido.MidiTrack:
        trk = mido.MidiTrack()
        numerator, denominator = group.time_signature
        trk.append(mido.MetaMessage("track_name", name=group.name, time=0))
        trk.append(mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(group.bpm), time=0))
        trk.append(mido.MetaMessage(
            "time_signature", numerator=numerator, denominator=denominator, time=0,
        ))

        # (absolute tick, note_off sorts before note_on, message)
        timeline: list[tuple[int, int, mido.Message]] = []
        for p in group.placements:
            note = note_name_to_midi(p.pitch_name)
            ch = (p.channel - 1) & 0x0F
            timeline.append((p.tick, 1, mido.Message(
                "note_on", note=note, velocity=unscale_velocity(p.velocity), channel=ch,
            )))
            timeline.append((p.tick + p.duration_ticks, 0, mido.Message(
                "note_off", note=note, velocity=0, channel=ch,
            )))
        timeline.sort(key=lambda item: (item[0], item[1]))

        prev_tick = 0
        for tick, _, msg in timeline:
            trk.append(msg.copy(time=tick - prev_tick))
            prev_tick = tick

        trk.append(mido.MetaMessage("end_of_track", time=0))
        return trk
