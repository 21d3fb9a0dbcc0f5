"""Entry point: start always-on capture and accept save commands on stdin."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .core.config import CaptureSettings, ConfigManager
from .core.errors import CapabilityError, CatchonikaError
from .core.file_sink import DirectorySink
from .core.midi_listener import MidiInputHub
from .core.midi_writer import MidoEncoder
from .core.session import CaptureSession

HELP = """Commands:
  s [seconds] [bpm]  save the last N seconds (defaults from config)
  f [bpm]            save the full session
  c                  clear the buffer
  p                  print status
  q                  quit"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="catchonika",
        description="Always-on MIDI capture with one-shot export to .mid",
    )
    parser.add_argument("--list-ports", action="store_true", help="List MIDI inputs and exit")
    parser.add_argument("--buffer-minutes", type=float, help="Rolling buffer length")
    parser.add_argument("--bpm", type=float, help="Default export tempo")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--group-by-channel", dest="group_by_channel", action="store_true",
                       default=None, help="Export one track per MIDI channel")
    group.add_argument("--merged", dest="group_by_channel", action="store_false",
                       help="Export all channels into one track")
    parser.add_argument("--output-dir", help="Where .mid files are written")
    parser.add_argument("--config-dir", type=Path, help="Config directory (default ~/.catchonika)")
    parser.add_argument("--save-defaults", action="store_true",
                        help="Store the options given here as the new defaults")
    parser.add_argument("--reset-config", action="store_true", help="Restore default settings")
    parser.add_argument("--show-config", action="store_true", help="Print settings and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def run_command(session: CaptureSession, line: str) -> bool:
    """Execute one stdin command. Returns False when the user quits."""
    parts = line.split()
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]

    try:
        if cmd == "q":
            return False
        if cmd == "s":
            seconds = float(args[0]) if args else None
            bpm = float(args[1]) if len(args) > 1 else None
            result = session.save_last(seconds, bpm=bpm)
            print(f"{result.path} ({result.note_count} notes)")
        elif cmd == "f":
            bpm = float(args[0]) if args else None
            result = session.save_full(bpm=bpm)
            print(f"{result.path} ({result.note_count} notes)")
        elif cmd == "c":
            session.clear()
        elif cmd == "p":
            print(f"{session.status} ({session.event_count} events buffered)")
        else:
            print(HELP)
    except ValueError:
        print(f"Invalid argument: {' '.join(args)}")
    except CatchonikaError as exc:
        print(f"Error: {exc}")
    return True


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.list_ports:
        try:
            for name in MidiInputHub.list_ports():
                print(name)
        except CapabilityError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        return 0

    config = ConfigManager(config_dir=args.config_dir)
    if args.reset_config:
        config.reset()
    if args.save_defaults:
        config.update({
            "capture.buffer_minutes": args.buffer_minutes,
            "export.default_bpm": args.bpm,
            "export.group_by_channel": args.group_by_channel,
            "export.output_dir": args.output_dir,
        })
    if args.show_config:
        print(json.dumps(config.get_all(), indent=2, ensure_ascii=False))
        return 0

    settings = CaptureSettings.from_config(
        config,
        buffer_minutes=args.buffer_minutes,
        default_bpm=args.bpm,
        group_by_channel=args.group_by_channel,
        output_dir=args.output_dir,
    )

    session = CaptureSession(
        input_source=MidiInputHub(ignore=settings.ignore_ports),
        encoder=MidoEncoder(),
        sink=DirectorySink(settings.output_dir or Path.cwd()),
        settings=settings,
    )

    with session:
        print(HELP)
        try:
            for line in sys.stdin:
                if not run_command(session, line):
                    break
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
