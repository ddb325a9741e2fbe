"""Exception hierarchy for the FluidSynth bridge."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class FluidSynthError(RuntimeError):
    """Base class for every error raised by :mod:`fluidbridge`."""


class LibraryNotLoadedError(FluidSynthError):
    """The native FluidSynth library could not be resolved in this process."""


NotLoadedError = LibraryNotLoadedError


class VersionTooOldError(FluidSynthError):
    def __init__(self, version: str, minimum: str) -> None:
        super().__init__(f"FluidSynth version {version} is too old. Minimum is {minimum}")
        self.version = version
        self.minimum = minimum


class EngineCreationError(FluidSynthError):
    """``new_fluid_synth`` returned NULL."""


class DriverCreationError(FluidSynthError):
    """``new_fluid_audio_driver`` returned NULL."""


class SettingApplyError(FluidSynthError):
    """One or more settings of an aggregated configuration were rejected."""

    def __init__(self, keys: Iterable[str]) -> None:
        self.keys = tuple(keys)
        super().__init__("failed to apply settings: " + ", ".join(self.keys))


class SoundFontLoadError(FluidSynthError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(f"Loading soundfont failed f={path}")
        self.path = Path(path)


class SoundFontUnloadError(FluidSynthError):
    def __init__(self, sfont_id: int) -> None:
        super().__init__(f"Unloading soundfont id={sfont_id} failed")
        self.sfont_id = sfont_id


class InputNotFoundError(FluidSynthError, FileNotFoundError):
    def __init__(self, path: str | Path) -> None:
        super().__init__(f"Can't access input file {path}")
        self.path = Path(path)


class RenderError(FluidSynthError):
    """Offline rendering failed; ``output_path`` names the file being written."""

    def __init__(self, output_path: str | Path, detail: str | None = None) -> None:
        self.output_path = Path(output_path)
        self.detail = detail
        message = f"Problem while generating audio file {self.output_path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


__all__ = [
    "DriverCreationError",
    "EngineCreationError",
    "FluidSynthError",
    "InputNotFoundError",
    "LibraryNotLoadedError",
    "NotLoadedError",
    "RenderError",
    "SettingApplyError",
    "SoundFontLoadError",
    "SoundFontUnloadError",
    "VersionTooOldError",
]
