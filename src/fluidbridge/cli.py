"""Command line entry point for the FluidSynth bridge."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from . import diagnostics, native_runtime
from .config import SessionConfig, load_configuration
from .errors import FluidSynthError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fluidbridge", description="FluidSynth bridge utilities")
    parser.add_argument(
        "--diagnostics",
        action="store_true",
        help="Append bridge diagnostics to the log file (see FLUIDBRIDGE_LOG_PATH)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("info", help="Resolve the native library and report its version")

    render = sub.add_parser("render", help="Render a MIDI file to an audio file")
    render.add_argument("midi", type=Path, help="Input MIDI file")
    render.add_argument("output", type=Path, help="Audio file to create")
    render.add_argument("--config", type=Path, help="Path to a JSON session configuration")
    render.add_argument("--soundfont", type=Path, help="Soundfont to load (overrides the configuration)")
    render.add_argument("--file-type", default="wav", help="Value for audio.file.type (default: wav)")

    notes = sub.add_parser("test-notes", help="Play an ascending octave on the audio driver")
    notes.add_argument("--config", type=Path, help="Path to a JSON session configuration")
    notes.add_argument("--soundfont", type=Path, help="Soundfont to load (overrides the configuration)")
    notes.add_argument("--delay", type=float, default=0.5, help="Seconds per note")
    return parser


def _session_config(args: argparse.Namespace) -> SessionConfig:
    config = load_configuration(args.config) if args.config else SessionConfig()
    if args.soundfont is not None:
        config.soundfont = args.soundfont
    return config


def _cmd_info() -> int:
    from .session import SynthSession

    if not native_runtime.ensure_loaded():
        print(f"FluidSynth unavailable: {native_runtime.UNAVAILABLE_REASON}")
        return 1
    surface = native_runtime.get_native_impl()
    session = SynthSession(surface)
    print(f"FluidSynth {session.version} loaded from {surface.path}")
    return 0


def _cmd_render(args: argparse.Namespace) -> int:
    from .session import SynthSession

    config = _session_config(args)
    with SynthSession() as session:
        # the render clone never opens a driver, so the source needs none either
        session.open(create_audio_driver=False, settings=config.settings)
        session.apply_config(config)
        output = session.render_to_file(args.midi, args.output, file_type=args.file_type)
    print(f"Rendered {args.midi} to {output}")
    return 0


def _cmd_test_notes(args: argparse.Namespace) -> int:
    from .session import SynthSession

    config = _session_config(args)
    with SynthSession() as session:
        session.open(create_audio_driver=config.audio_driver, settings=config.settings)
        session.apply_config(config)
        session.play_test_notes(delay=args.delay)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.diagnostics:
        diagnostics.enable_logging(True)

    try:
        if args.command == "info":
            return _cmd_info()
        if args.command == "render":
            return _cmd_render(args)
        if args.command == "test-notes":
            return _cmd_test_notes(args)
    except (FluidSynthError, ValueError, TypeError, OSError) as exc:
        print(f"error: {exc}")
        return 1
    parser.error(f"unknown command {args.command}")
    return 2


__all__ = ["main", "build_parser"]
