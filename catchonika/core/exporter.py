"""Export a time range of the rolling buffer as tick-placed note tracks.

Steps: select ``[start_ms, end_ms]`` from the buffer, replay it through the
note reconstructor, group notes into tracks, convert ms to ticks at a
single tempo, and hand the tracks to the encoder. Export never mutates
the buffer or live capture state, so repeating it is safe.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone

from .constants import (
    DEFAULT_BPM,
    FILE_PREFIX,
    MAX_BPM,
    MIN_BPM,
    PPQ,
    TIME_SIGNATURE,
    TRACK_NAME_PREFIX,
)
from .errors import ExportError
from .event_buffer import RollingBuffer
from .events import RawEvent
from .midi_writer import Encoder, NotePlacement, TrackGroup
from .reconstructor import ReconstructedNote, reconstruct_notes
from .timing import midi_note_to_name, ms_to_ticks, round_half_up, scale_velocity

log = logging.getLogger(__name__)

MERGED_KEY = "main"


@dataclass(frozen=True, slots=True)
class RenderedRange:
    """Result of rendering one export window."""

    start_ms: float
    end_ms: float
    bpm: float
    notes: tuple[ReconstructedNote, ...]
    tracks: tuple[TrackGroup, ...]
    data: bytes

    @property
    def note_count(self) -> int:
        return len(self.notes)

    @property
    def track_count(self) -> int:
        return len(self.tracks)


def resolve_bpm(bpm: float | None, default: float) -> float:
    """Use ``bpm`` when it is a finite positive number, else ``default``.

    The result is clamped to ``MIN_BPM..MAX_BPM`` so the tempo always fits
    in a MIDI file.
    """
    value = default
    if bpm is not None:
        try:
            number = float(bpm)
        except (TypeError, ValueError):
            number = math.nan
        if math.isfinite(number) and number > 0:
            value = number
    clamped = max(MIN_BPM, min(MAX_BPM, value))
    if clamped != value:
        log.warning("Tempo %g BPM out of range, using %g", value, clamped)
    return clamped


def track_key(channel: int, group_by_channel: bool) -> str:
    return f"ch-{channel}" if group_by_channel else MERGED_KEY


def group_notes(
    notes: list[ReconstructedNote],
    group_by_channel: bool,
) -> dict[str, list[ReconstructedNote]]:
    """Bucket notes into tracks; buckets ordered by channel, notes by start."""
    by_track: dict[str, list[ReconstructedNote]] = {}
    for n in sorted(notes, key=lambda n: n.channel if group_by_channel else 0):
        by_track.setdefault(track_key(n.channel, group_by_channel), []).append(n)
    for bucket in by_track.values():
        bucket.sort(key=lambda n: n.start_ms)
    return by_track


def to_placement(note: ReconstructedNote, bpm: float) -> NotePlacement:
    """Convert one note to a tick placement.

    Positions are absolute session time, so a clip saved from the middle of
    a session keeps its offset from the session start.
    """
    return NotePlacement(
        pitch_name=midi_note_to_name(note.note),
        tick=ms_to_ticks(note.start_ms, bpm, PPQ),
        duration_ticks=ms_to_ticks(note.duration_ms, bpm, PPQ),
        velocity=scale_velocity(note.velocity),
        channel=note.channel,
    )


def export_filename(label: str, bpm: float, when: datetime | None = None) -> str:
    """``catchonika-<label>-<bpm>bpm-<ISO timestamp, ':' and '.' as '-'>.mid``."""
    if when is None:
        when = datetime.now(timezone.utc)
    when = when.astimezone(timezone.utc)
    stamp = when.strftime("%Y-%m-%dT%H:%M:%S") + f".{when.microsecond // 1000:03d}Z"
    stamp = stamp.replace(":", "-").replace(".", "-")
    return f"{FILE_PREFIX}-{label}-{round_half_up(bpm)}bpm-{stamp}.mid"


class RangeExporter:
    """Turns buffer windows into encoded MIDI file bytes."""

    def __init__(
        self,
        buffer: RollingBuffer,
        encoder: Encoder,
        default_bpm: float = DEFAULT_BPM,
        group_by_channel: bool = False,
    ) -> None:
        self._buffer = buffer
        self._encoder = encoder
        self.default_bpm = default_bpm
        self.group_by_channel = group_by_channel

    def collect(self, start_ms: float, end_ms: float) -> list[RawEvent]:
        """Events in ``[start_ms, end_ms]``, stably sorted by timestamp."""
        if start_ms > end_ms:
            raise ExportError(f"invalid export window: {start_ms} > {end_ms}")
        return sorted(self._buffer.select(start_ms, end_ms), key=lambda e: e.t)

    def reconstruct(self, start_ms: float, end_ms: float) -> list[ReconstructedNote]:
        return reconstruct_notes(self.collect(start_ms, end_ms), start_ms, end_ms)

    def group(
        self,
        notes: list[ReconstructedNote],
        group_by_channel: bool | None = None,
    ) -> dict[str, list[ReconstructedNote]]:
        by_channel = self.group_by_channel if group_by_channel is None else group_by_channel
        return group_notes(notes, by_channel)

    def build_tracks(
        self,
        notes: list[ReconstructedNote],
        bpm: float,
        group_by_channel: bool,
    ) -> list[TrackGroup]:
        grouped = self.group(notes, group_by_channel)
        if not grouped:
            # Empty range still yields a playable one-track file
            grouped = {MERGED_KEY: []}
        return [
            TrackGroup(
                key=key,
                name=f"{TRACK_NAME_PREFIX} {key}",
                bpm=bpm,
                time_signature=TIME_SIGNATURE,
                placements=tuple(to_placement(n, bpm) for n in bucket),
            )
            for key, bucket in grouped.items()
        ]

    def render(
        self,
        start_ms: float,
        end_ms: float,
        bpm: float | None = None,
        group_by_channel: bool | None = None,
    ) -> RenderedRange:
        """Reconstruct, group, convert and encode one window.

        Synchronous and not cancellable once started.
        """
        bpm_used = resolve_bpm(bpm, self.default_bpm)
        by_channel = self.group_by_channel if group_by_channel is None else group_by_channel

        notes = self.reconstruct(start_ms, end_ms)
        tracks = self.build_tracks(notes, bpm_used, by_channel)
        try:
            data = self._encoder.encode(tracks)
        except (ValueError, TypeError, OSError) as exc:
            raise ExportError(f"encoder failed: {exc}") from exc

        log.info(
            "Rendered %.0f–%.0f ms: %d notes in %d tracks at %g BPM",
            start_ms, end_ms, len(notes), len(tracks), bpm_used,
        )
        return RenderedRange(
            start_ms=start_ms,
            end_ms=end_ms,
            bpm=bpm_used,
            notes=tuple(notes),
            tracks=tuple(tracks),
            data=data,
        )
