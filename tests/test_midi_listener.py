"""Tests for catchonika.core.midi_listener — MidiInputHub with mocked mido."""

from __future__ import annotations

from unittest import mock

import mido
import pytest

from catchonika.core.errors import CapabilityError
from catchonika.core.midi_listener import MidiInputHub


def _fake_port():
    port = mock.MagicMock()
    port.closed = False
    return port


class TestListPorts:
    def test_list_ports(self):
        with mock.patch("mido.get_input_names", return_value=["Port A", "Port B"]):
            assert MidiInputHub.list_ports() == ["Port A", "Port B"]

    @pytest.mark.parametrize("error", [ImportError("no rtmidi"), OSError("denied"), RuntimeError("x")])
    def test_backend_failure_is_capability_error(self, error):
        with mock.patch("mido.get_input_names", side_effect=error):
            with pytest.raises(CapabilityError):
                MidiInputHub.list_ports()


class TestOpen:
    def test_initial_state(self):
        hub = MidiInputHub()
        assert hub.connected is False
        assert hub.port_names == []

    def test_open_all(self):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names", return_value=["Port A", "Port B"]), \
                mock.patch("mido.open_input", side_effect=[_fake_port(), _fake_port()]) as mock_open:
            opened = hub.open_all(mock.MagicMock())
        assert opened == ["Port A", "Port B"]
        assert mock_open.call_count == 2
        assert hub.connected is True
        assert hub.port_names == ["Port A", "Port B"]

    def test_ignored_ports_skipped(self):
        hub = MidiInputHub(ignore=["Through"])
        with mock.patch("mido.get_input_names", return_value=["Midi Through:0", "Keys"]), \
                mock.patch("mido.open_input", return_value=_fake_port()):
            hub.open_all(mock.MagicMock())
        assert hub.port_names == ["Keys"]

    def test_open_failure_skips_port(self):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names", return_value=["Bad", "Good"]), \
                mock.patch("mido.open_input", side_effect=[OSError("busy"), _fake_port()]):
            opened = hub.open_all(mock.MagicMock())
        assert opened == ["Good"]

    def test_capability_error_propagates(self):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names", side_effect=ImportError("no backend")):
            with pytest.raises(CapabilityError):
                hub.open_all(mock.MagicMock())

    def test_refresh_without_callback_is_noop(self):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names") as names:
            assert hub.refresh() == []
        names.assert_not_called()


class TestRefresh:
    def test_connect_and_disconnect(self):
        hub = MidiInputHub()
        port_a = _fake_port()
        with mock.patch("mido.get_input_names", return_value=["A"]), \
                mock.patch("mido.open_input", return_value=port_a):
            hub.open_all(mock.MagicMock())

        port_b = _fake_port()
        with mock.patch("mido.get_input_names", return_value=["B"]), \
                mock.patch("mido.open_input", return_value=port_b):
            opened = hub.refresh()

        assert opened == ["B"]
        port_a.close.assert_called_once()
        assert hub.port_names == ["B"]

    def test_existing_ports_not_reopened(self):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names", return_value=["A"]), \
                mock.patch("mido.open_input", return_value=_fake_port()) as mock_open:
            hub.open_all(mock.MagicMock())
            assert hub.refresh() == []
        assert mock_open.call_count == 1


class TestClose:
    def test_close_all(self):
        hub = MidiInputHub()
        port = _fake_port()
        with mock.patch("mido.get_input_names", return_value=["A"]), \
                mock.patch("mido.open_input", return_value=port):
            hub.open_all(mock.MagicMock())
        hub.close_all()
        port.close.assert_called_once()
        assert hub.connected is False

    def test_close_error_logged(self):
        hub = MidiInputHub()
        port = _fake_port()
        port.close.side_effect = OSError("fail")
        with mock.patch("mido.get_input_names", return_value=["A"]), \
                mock.patch("mido.open_input", return_value=port):
            hub.open_all(mock.MagicMock())
        hub.close_all()  # Should not raise
        assert hub.port_names == []

    def test_reopen_closes_previous(self):
        hub = MidiInputHub()
        port1, port2 = _fake_port(), _fake_port()
        with mock.patch("mido.get_input_names", return_value=["A"]), \
                mock.patch("mido.open_input", side_effect=[port1, port2]):
            hub.open_all(mock.MagicMock())
            hub.open_all(mock.MagicMock())
        port1.close.assert_called_once()


class TestMessages:
    def _open_with(self, callback):
        hub = MidiInputHub()
        with mock.patch("mido.get_input_names", return_value=["Keys"]), \
                mock.patch("mido.open_input", return_value=_fake_port()) as mock_open:
            hub.open_all(callback)
        handler = mock_open.call_args.kwargs["callback"]
        return hub, handler

    def test_forwards_raw_bytes(self):
        cb = mock.MagicMock()
        _, handler = self._open_with(cb)
        handler(mido.Message("note_on", note=60, velocity=100, channel=2))
        cb.assert_called_once_with(bytes([0x92, 60, 100]), "Keys", "Keys")

    def test_forwards_control_change(self):
        cb = mock.MagicMock()
        _, handler = self._open_with(cb)
        handler(mido.Message("control_change", control=64, value=127))
        cb.assert_called_once_with(bytes([0xB0, 64, 127]), "Keys", "Keys")

    def test_callback_exception_swallowed(self):
        cb = mock.MagicMock(side_effect=ValueError("boom"))
        _, handler = self._open_with(cb)
        handler(mido.Message("note_on", note=60, velocity=100))  # Should not raise

    def test_no_delivery_after_close(self):
        cb = mock.MagicMock()
        hub, handler = self._open_with(cb)
        hub.close_all()
        handler(mido.Message("note_on", note=60, velocity=100))
        cb.assert_not_called()
