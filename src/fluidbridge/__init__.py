"""Python bridge to the native FluidSynth synthesizer."""

from __future__ import annotations

from .config import SessionConfig, load_configuration
from .effects import ChorusConfig, ReverbConfig
from .errors import (
    DriverCreationError,
    EngineCreationError,
    FluidSynthError,
    InputNotFoundError,
    LibraryNotLoadedError,
    NotLoadedError,
    RenderError,
    SettingApplyError,
    SoundFontLoadError,
    SoundFontUnloadError,
    VersionTooOldError,
)
from .events import (
    ControlChange,
    NoteOff,
    NoteOn,
    OtherMessage,
    ProgramChange,
    SysEx,
    SystemReset,
    decode_message,
)
from .native_runtime import ensure_loaded
from .render import render_to_file
from .session import SoundFontReference, SynthSession, version_satisfies

__all__ = [
    "ChorusConfig",
    "ControlChange",
    "DriverCreationError",
    "EngineCreationError",
    "FluidSynthError",
    "InputNotFoundError",
    "LibraryNotLoadedError",
    "NotLoadedError",
    "NoteOff",
    "NoteOn",
    "OtherMessage",
    "ProgramChange",
    "RenderError",
    "ReverbConfig",
    "SessionConfig",
    "SettingApplyError",
    "SoundFontLoadError",
    "SoundFontReference",
    "SoundFontUnloadError",
    "SynthSession",
    "SysEx",
    "SystemReset",
    "VersionTooOldError",
    "decode_message",
    "ensure_loaded",
    "load_configuration",
    "render_to_file",
    "version_satisfies",
]
