"""MIDI input enumeration and per-port callback capture using mido/rtmidi."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

import mido

from .errors import CapabilityError

log = logging.getLogger(__name__)

# (raw message bytes, source id, source name)
MessageCallback = Callable[[bytes, str, str], None]

# Errors mido raises when the port backend is missing or refuses access
_BACKEND_ERRORS = (ImportError, OSError, RuntimeError)


class MidiInputHub:
    """Opens every available MIDI input and forwards raw messages.

    The callback runs on the rtmidi C++ thread of each port. Ports whose
    name contains one of ``ignore`` are skipped.
    """

    def __init__(self, ignore: Iterable[str] = ()) -> None:
        self._ignore = tuple(ignore)
        self._ports: dict[str, mido.ports.BaseInput] = {}
        self._callback: MessageCallback | None = None

    @staticmethod
    def list_ports() -> list[str]:
        """Return available MIDI input port names.

        Raises CapabilityError when no MIDI backend is usable.
        """
        try:
            return list(mido.get_input_names())
        except _BACKEND_ERRORS as exc:
            raise CapabilityError(f"MIDI input unavailable: {exc}") from exc

    @property
    def port_names(self) -> list[str]:
        return list(self._ports)

    @property
    def connected(self) -> bool:
        return bool(self._ports)

    def open_all(self, callback: MessageCallback) -> list[str]:
        """Subscribe ``callback`` to every input port. Returns opened names."""
        self.close_all()
        self._callback = callback
        return self.refresh()

    def refresh(self) -> list[str]:
        """Open newly connected ports and close vanished ones.

        Returns the names of ports opened by this call.
        """
        if self._callback is None:
            return []
        available = [n for n in self.list_ports() if not self._ignored(n)]

        for name in [n for n in self._ports if n not in available]:
            self._close_port(name)
            log.info("MIDI input disconnected: %s", name)

        opened: list[str] = []
        for name in available:
            if name in self._ports:
                continue
            try:
                self._ports[name] = mido.open_input(name, callback=self._make_handler(name))
            except _BACKEND_ERRORS:
                log.warning("Could not open MIDI input %s", name, exc_info=True)
                continue
            opened.append(name)
            log.info("Opened MIDI input: %s", name)
        return opened

    def close_all(self) -> None:
        """Unsubscribe from every port."""
        for name in list(self._ports):
            self._close_port(name)
        self._callback = None

    def _ignored(self, name: str) -> bool:
        return any(pattern in name for pattern in self._ignore)

    def _close_port(self, name: str) -> None:
        port = self._ports.pop(name)
        try:
            port.close()
        except (OSError, RuntimeError):
            log.warning("Error closing MIDI input %s", name, exc_info=True)

    def _make_handler(self, name: str) -> Callable[[mido.Message], None]:
        def _on_message(msg: mido.Message) -> None:
            """Runs on the rtmidi thread; errors are logged, never raised."""
            callback = self._callback
            if callback is None:
                return
            try:
                callback(bytes(msg.bytes()), name, name)
            except (AttributeError, IndexError, TypeError, ValueError):
                log.exception("Error in MIDI callback for %s", name)

        return _on_message
