"""Error types raised by the capture session and exporter."""

from __future__ import annotations


class CatchonikaError(Exception):
    """Base class for all Catchonika errors."""


class CapabilityError(CatchonikaError):
    """The platform cannot provide MIDI input access (unsupported or denied)."""


class ConfigurationError(CatchonikaError):
    """A required collaborator (e.g. the MIDI file encoder) is missing."""


class ExportError(CatchonikaError):
    """Exporting a time range to a .mid file failed."""
