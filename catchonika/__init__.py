"""Catchonika — always-on MIDI capture with one-shot export to .mid."""

from importlib.metadata import PackageNotFoundError, version
from pathlib import Path


def _source_version() -> str:
    """Version from pyproject.toml when running from an uninstalled checkout."""
    import tomllib

    pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
    try:
        with pyproject.open("rb") as f:
            return tomllib.load(f)["project"]["version"]
    except (OSError, KeyError, tomllib.TOMLDecodeError):
        return "0.0.0-dev"


try:
    __version__ = version("catchonika")
except PackageNotFoundError:
    __version__ = _source_version()
