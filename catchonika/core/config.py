"""Configuration persistence using JSON format.

Stored at ``~/.catchonika/config.json``. Missing keys are filled from
``DEFAULT_CONFIG`` so older files keep working when new settings appear.
The CLI writes its overrides back with ``--save-defaults``.
"""

from __future__ import annotations

import copy
import json
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .constants import (
    DEFAULT_BPM,
    DEFAULT_BUFFER_MINUTES,
    DEFAULT_LAST_SECONDS,
    SWEEP_INTERVAL,
)

log = logging.getLogger(__name__)


# Default configuration schema
DEFAULT_CONFIG = {
    "version": "1.0",
    "capture": {
        "buffer_minutes": DEFAULT_BUFFER_MINUTES,
        "sweep_interval": SWEEP_INTERVAL,  # seconds
        "ignore_ports": [],  # substrings, e.g. "Midi Through"
    },
    "export": {
        "default_bpm": DEFAULT_BPM,
        "group_by_channel": False,
        "last_seconds": DEFAULT_LAST_SECONDS,
        "output_dir": "",  # "" = current directory
    },
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Return ``base`` with ``override`` applied on top, recursing into dicts."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigManager:
    """JSON-backed capture and export defaults.

    Keys are addressed with dot paths such as ``"export.default_bpm"``.
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        self.config_dir = config_dir or Path.home() / ".catchonika"
        self.config_file = self.config_dir / "config.json"
        self._config = self._read()

    def _read(self) -> dict[str, Any]:
        self.config_dir.mkdir(parents=True, exist_ok=True)
        if not self.config_file.exists():
            config = copy.deepcopy(DEFAULT_CONFIG)
            self._write(config)
            return config
        try:
            loaded = json.loads(self.config_file.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("top-level JSON value is not an object")
        except (ValueError, OSError) as e:
            log.warning("Failed to load %s: %s. Using defaults.", self.config_file, e)
            return copy.deepcopy(DEFAULT_CONFIG)
        return _deep_merge(DEFAULT_CONFIG, loaded)

    def _write(self, config: dict[str, Any]) -> None:
        try:
            self.config_file.write_text(
                json.dumps(config, indent=2, ensure_ascii=False), encoding="utf-8",
            )
        except OSError as e:
            log.warning("Failed to save %s: %s", self.config_file, e)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Look up a dot-path key, e.g. ``config.get("capture.buffer_minutes", 30)``."""
        value: Any = self._config
        for key in key_path.split("."):
            if not isinstance(value, dict) or value.get(key) is None:
                return default
            value = value[key]
        return value

    def update(self, values: Mapping[str, Any]) -> list[str]:
        """Store several dot-path keys and save once.

        ``None`` values are skipped, so unset CLI options can be passed
        through directly. Returns the keys that were written.
        """
        written = []
        for key_path, value in values.items():
            if value is None:
                continue
            *parents, leaf = key_path.split(".")
            target = self._config
            for key in parents:
                if not isinstance(target.get(key), dict):
                    target[key] = {}
                target = target[key]
            target[leaf] = value
            written.append(key_path)
        if written:
            self._write(self._config)
            log.info("Saved defaults: %s", ", ".join(written))
        return written

    def get_all(self) -> dict[str, Any]:
        """Deep copy of the whole configuration."""
        return copy.deepcopy(self._config)

    def reset(self) -> None:
        """Restore and save the default configuration."""
        self._config = copy.deepcopy(DEFAULT_CONFIG)
        self._write(self._config)


def _ports(value: Any) -> tuple[str, ...]:
    # A bare string is one pattern, not a sequence of characters
    if isinstance(value, str):
        value = [value]
    return tuple(str(p) for p in value or () if str(p))


def _positive(value: Any, default: float, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number) or number <= 0:
        log.warning("Invalid %s %r, using %s", name, value, default)
        return default
    return number


@dataclass(frozen=True, slots=True)
class CaptureSettings:
    """Validated settings for one capture session."""

    buffer_minutes: float = DEFAULT_BUFFER_MINUTES
    default_bpm: float = DEFAULT_BPM
    group_by_channel: bool = False
    sweep_interval: float = SWEEP_INTERVAL
    last_seconds: float = DEFAULT_LAST_SECONDS
    output_dir: str = ""
    ignore_ports: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: ConfigManager, **overrides: Any) -> CaptureSettings:
        """Build settings from ``config``; non-None ``overrides`` win."""
        values = {
            "buffer_minutes": config.get("capture.buffer_minutes"),
            "sweep_interval": config.get("capture.sweep_interval"),
            "ignore_ports": config.get("capture.ignore_ports", []),
            "default_bpm": config.get("export.default_bpm"),
            "group_by_channel": config.get("export.group_by_channel", False),
            "last_seconds": config.get("export.last_seconds"),
            "output_dir": config.get("export.output_dir", ""),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(
            buffer_minutes=_positive(values["buffer_minutes"], DEFAULT_BUFFER_MINUTES, "buffer_minutes"),
            default_bpm=_positive(values["default_bpm"], DEFAULT_BPM, "default_bpm"),
            group_by_channel=bool(values["group_by_channel"]),
            sweep_interval=_positive(values["sweep_interval"], SWEEP_INTERVAL, "sweep_interval"),
            last_seconds=_positive(values["last_seconds"], DEFAULT_LAST_SECONDS, "last_seconds"),
            output_dir=str(values["output_dir"] or ""),
            ignore_ports=_ports(values["ignore_ports"]),
        )
