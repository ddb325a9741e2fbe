"""Configuration for library resolution and synth sessions."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, MutableMapping

from .diagnostics import log_event
from .effects import ChorusConfig, ReverbConfig

_LIBRARY_OVERRIDE_ENV = "FLUIDBRIDGE_LIBRARY"
_PREFERENCES_ENV = "FLUIDBRIDGE_PREFERENCES"
_BUNDLE_DIR_ENV = "FLUIDBRIDGE_BUNDLE_DIR"
_EXTRACT_DIR_ENV = "FLUIDBRIDGE_EXTRACT_DIR"
_MIN_VERSION_ENV = "FLUIDBRIDGE_MIN_VERSION"

# FluidSynth 2.2.0 introduced the libfluidsynth3 ABI this package is declared against.
DEFAULT_MINIMUM_VERSION = (2, 2, 0)

_PACKAGE_ROOT = Path(__file__).resolve().parent
_REPO_ROOT = _PACKAGE_ROOT.parents[1]
DEFAULT_CONFIG_PATH = _REPO_ROOT / "configs" / "default.json"


@dataclass(frozen=True)
class LoaderConfig:
    """Environment-derived settings for locating the native library."""

    library_override: str | None
    preferences_path: Path
    bundle_dir: Path
    extract_dir: Path
    minimum_version: tuple[int, int, int]


def parse_version(text: str) -> tuple[int, int, int]:
    """Parse ``"major.minor.micro"``; raises ``ValueError`` on malformed input."""

    parts = text.strip().split(".")
    if len(parts) != 3:
        raise ValueError(f"version must have three components: {text!r}")
    major, minor, micro = (int(part) for part in parts)
    return major, minor, micro


def _env_path(env_var: str, default: Path) -> Path:
    value = os.environ.get(env_var, "").strip()
    if not value:
        return default
    return Path(value).expanduser()


@lru_cache(maxsize=1)
def get_loader_config() -> LoaderConfig:
    override = os.environ.get(_LIBRARY_OVERRIDE_ENV, "").strip() or None
    minimum = DEFAULT_MINIMUM_VERSION
    min_version_text = os.environ.get(_MIN_VERSION_ENV, "").strip()
    if min_version_text:
        try:
            minimum = parse_version(min_version_text)
        except ValueError as exc:
            log_event("config", f"ignoring {_MIN_VERSION_ENV}={min_version_text!r}: {exc}")
    return LoaderConfig(
        library_override=override,
        preferences_path=_env_path(_PREFERENCES_ENV, Path.home() / ".fluidbridge" / "preferences.json"),
        bundle_dir=_env_path(_BUNDLE_DIR_ENV, _PACKAGE_ROOT / "libs"),
        extract_dir=_env_path(_EXTRACT_DIR_ENV, Path(tempfile.gettempdir()) / "fluidbridge"),
        minimum_version=minimum,
    )


SettingValue = str | int | float


@dataclass(slots=True)
class SessionConfig:
    """Initial state applied to a :class:`~fluidbridge.session.SynthSession`."""

    settings: Mapping[str, SettingValue] = field(default_factory=dict)
    gain: float | None = None
    reverb: ReverbConfig | None = None
    chorus: ChorusConfig | None = None
    soundfont: Path | None = None
    audio_driver: bool = True


def _normalise_settings(data: Mapping[str, Any]) -> dict[str, SettingValue]:
    settings: dict[str, SettingValue] = {}
    for key, value in data.items():
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise TypeError(f"settings.{key} must be a string, integer or float")
        settings[str(key)] = value
    return settings


def _normalise_effect(name: str, data: Any, factory):
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise TypeError(f"{name} must be an object")
    try:
        return factory(data)
    except KeyError as exc:
        raise ValueError(f"{name}.{exc.args[0]} must be provided") from None


def load_configuration(path: str | Path) -> SessionConfig:
    """Load a :class:`SessionConfig` from the JSON file at ``path``.

    Relative soundfont paths resolve against the configuration file's folder.
    """

    config_path = Path(path)
    with open(config_path, "r", encoding="utf8") as fh:
        raw: MutableMapping[str, Any] = json.load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("configuration root must be an object")
    settings_data = raw.get("settings", {}) or {}
    if not isinstance(settings_data, Mapping):
        raise TypeError("settings must be an object")
    gain = raw.get("gain")
    soundfont = raw.get("soundfont")
    soundfont_path = None
    if soundfont:
        soundfont_path = Path(str(soundfont)).expanduser()
        if not soundfont_path.is_absolute():
            soundfont_path = (config_path.parent / soundfont_path).resolve()
    return SessionConfig(
        settings=_normalise_settings(settings_data),
        gain=None if gain is None else float(gain),
        reverb=_normalise_effect("reverb", raw.get("reverb"), ReverbConfig.from_mapping),
        chorus=_normalise_effect("chorus", raw.get("chorus"), ChorusConfig.from_mapping),
        soundfont=soundfont_path,
        audio_driver=bool(raw.get("audio_driver", True)),
    )


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_MINIMUM_VERSION",
    "LoaderConfig",
    "SessionConfig",
    "get_loader_config",
    "load_configuration",
    "parse_version",
]
