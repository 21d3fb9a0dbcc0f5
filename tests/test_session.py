"""Tests for catchonika.core.session — CaptureSession wiring and export."""

from __future__ import annotations

import io
from datetime import datetime, timezone

import mido
import pytest

from catchonika.core.config import CaptureSettings
from catchonika.core.errors import CapabilityError, ConfigurationError, ExportError
from catchonika.core.midi_writer import MidoEncoder

FIXED_NOW = datetime(2026, 10, 18, 8, 30, 0, 250000, tzinfo=timezone.utc)


@pytest.fixture
def make_session(input_source, sink, clock, scheduler):
    def _make(encoder=None, **settings):
        from catchonika.core.session import CaptureSession

        return CaptureSession(
            input_source=input_source,
            encoder=encoder or MidoEncoder(),
            sink=sink,
            clock=clock,
            scheduler=scheduler,
            settings=CaptureSettings(**settings),
            now=lambda: FIXED_NOW,
        )
    return _make


def _play(session, clock, t, *data):
    clock.set(t)
    session.on_message(bytes(data), "id", "Keys")


class TestConstruction:
    def test_missing_encoder_fails_fast(self, input_source, sink):
        from catchonika.core.session import CaptureSession

        with pytest.raises(ConfigurationError):
            CaptureSession(input_source, None, sink)

    def test_encoder_without_encode_rejected(self, input_source, sink):
        from catchonika.core.session import CaptureSession

        with pytest.raises(ConfigurationError):
            CaptureSession(input_source, object(), sink)

    def test_initial_state(self, make_session):
        session = make_session()
        assert session.is_recording is False
        assert session.event_count == 0
        assert session.status == "Starting…"


class TestLifecycle:
    def test_start_subscribes_and_schedules(self, make_session, input_source, scheduler):
        session = make_session()
        assert session.start() is True
        assert session.is_recording
        assert input_source.callback == session.on_message
        assert scheduler.pending == 2
        assert session.status == "Inputs: Port A"

    def test_start_twice_is_noop(self, make_session, scheduler):
        session = make_session()
        session.start()
        session.start()
        assert scheduler.pending == 2

    def test_capability_failure_leaves_idle(self, make_session, input_source, scheduler):
        input_source.fail = CapabilityError("Web MIDI not supported")
        session = make_session()
        assert session.start() is False
        assert session.is_recording is False
        assert session.status.startswith("MIDI access failed")
        assert scheduler.pending == 0

    def test_no_inputs_status(self, make_session, input_source):
        input_source.available = []
        session = make_session()
        session.start()
        assert session.status == "Inputs: none"

    def test_stop(self, make_session, input_source, scheduler):
        session = make_session()
        session.start()
        session.stop()
        assert input_source.closed
        assert scheduler.pending == 0
        assert session.is_recording is False

    def test_context_manager(self, make_session, input_source):
        with make_session() as session:
            assert session.is_recording
        assert input_source.closed

    def test_rescan_reports_new_inputs(self, make_session, input_source, scheduler):
        session = make_session()
        session.start()
        input_source.available = ["Port A", "Pads"]
        scheduler.advance(3)
        assert session.status == "Inputs: Port A, Pads"

    def test_status_callback(self, input_source, sink, clock, scheduler):
        from catchonika.core.session import CaptureSession

        seen = []
        session = CaptureSession(
            input_source, MidoEncoder(), sink, clock=clock, scheduler=scheduler,
            on_status=seen.append,
        )
        session.start()
        assert seen == ["Catchonika: recording…", "Inputs: Port A"]


class TestCapture:
    def test_messages_recorded(self, make_session, clock):
        session = make_session()
        session.start()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 10, 0x80, 60, 0)
        _play(session, clock, 20)  # empty payload
        assert session.event_count == 2

    def test_periodic_sweep(self, make_session, clock, scheduler):
        session = make_session(buffer_minutes=1)
        session.start()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 5_000, 0x80, 60, 0)
        scheduler.advance(62)
        assert session.event_count == 2
        scheduler.advance(8)  # sweep at 70 s: cutoff 10 s
        assert session.event_count == 0

    def test_clear(self, make_session, clock):
        session = make_session()
        session.start()
        _play(session, clock, 0, 0x90, 60, 100)
        session.clear()
        assert session.event_count == 0
        assert session.ingestor.sounding_count == 0
        assert session.status == "Cleared buffer."


class TestExport:
    def test_save_last(self, make_session, clock, sink):
        session = make_session()
        session.start()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 100, 0xB0, 64, 127)
        _play(session, clock, 200, 0x80, 60, 0)
        _play(session, clock, 500, 0xB0, 64, 0)
        clock.set(1_000)

        result = session.save_last(60)
        assert result.filename == "catchonika-last-60s-120bpm-2026-10-18T08-30-00-250Z.mid"
        assert result.note_count == 1
        assert result.rendered.notes[0].end_ms == 500
        assert session.status == f"Saved {result.filename}"
        assert result.filename in sink.files

        mid = mido.MidiFile(file=io.BytesIO(sink.files[result.filename]))
        notes = [m for m in mid.tracks[0] if m.type == "note_off"]
        assert notes[0].time == 128  # 500 ms at 120 BPM

    def test_save_last_window(self, make_session, clock):
        session = make_session()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 1_000, 0x80, 60, 0)
        _play(session, clock, 70_000, 0x90, 62, 100)
        _play(session, clock, 71_000, 0x80, 62, 0)
        clock.set(80_000)
        result = session.save_last(60)
        assert [n.note for n in result.rendered.notes] == [62]

    def test_save_full_label_and_bpm(self, make_session, clock):
        session = make_session(default_bpm=100)
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 10, 0x80, 60, 0)
        result = session.save_full(bpm=90.6)
        assert result.filename.startswith("catchonika-session-91bpm-")
        assert result.bpm == 90.6

    def test_invalid_bpm_uses_default(self, make_session, clock):
        session = make_session(default_bpm=100)
        clock.set(10)
        assert session.save_full(bpm=float("nan")).bpm == 100

    def test_group_by_channel_setting(self, make_session, clock):
        session = make_session(group_by_channel=True)
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 5, 0x91, 64, 100)
        _play(session, clock, 10, 0x80, 60, 0)
        _play(session, clock, 15, 0x81, 64, 0)
        assert session.save_full().track_count == 2

    def test_export_is_idempotent(self, make_session, clock, sink):
        session = make_session()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 50, 0xB0, 64, 127)
        _play(session, clock, 60, 0x80, 60, 0)
        clock.set(300)
        first = session.save_range(0, 300)
        second = session.save_range(0, 300)
        assert first.rendered.notes == second.rendered.notes
        assert first.rendered.data == second.rendered.data

    def test_export_does_not_touch_live_state(self, make_session, clock):
        session = make_session()
        _play(session, clock, 0, 0x90, 60, 100)
        _play(session, clock, 10, 0xB0, 64, 127)
        session.save_full()
        assert session.ingestor.sounding_count == 1
        assert session.ingestor.sustain_held(1) is True
        assert session.event_count == 2

    def test_sink_failure(self, make_session, clock, sink):
        sink.fail = OSError("disk full")
        session = make_session()
        clock.set(10)
        with pytest.raises(ExportError, match="disk full"):
            session.save_full()
        assert session.status.startswith("Export failed")

    def test_encoder_failure(self, make_session, clock, recording_encoder):
        recording_encoder.fail = ValueError("cannot encode")
        session = make_session(encoder=recording_encoder)
        clock.set(10)
        with pytest.raises(ExportError):
            session.save_full()
        assert session.status.startswith("Export failed")

    def test_invalid_range(self, make_session):
        session = make_session()
        with pytest.raises(ExportError):
            session.save_range(500, 100)


class TestDirectorySink:
    def test_writes_file(self, tmp_path):
        from catchonika.core.file_sink import DirectorySink

        path = DirectorySink(tmp_path / "sub" / "dir").deliver(b"MThd", "x.mid")
        assert path.exists()
        assert path.read_bytes() == b"MThd"
