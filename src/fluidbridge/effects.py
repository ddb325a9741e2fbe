"""Reverb and chorus value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

# Native settings keys, in the order they are applied.
REVERB_KEYS = {
    "damp": "synth.reverb.damp",
    "level": "synth.reverb.level",
    "room": "synth.reverb.room-size",
    "width": "synth.reverb.width",
}
CHORUS_KEYS = {
    "depth": "synth.chorus.depth",
    "level": "synth.chorus.level",
    "voice_count": "synth.chorus.nr",
    "speed": "synth.chorus.speed",
}

# fluid_chorus_mod
CHORUS_MOD_SINE = 0
CHORUS_MOD_TRIANGLE = 1


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class ReverbConfig:
    """Reverb parameters of a synth instance.

    ``name`` is a display label only and is ignored by equality, so two
    configurations with identical parameters compare equal.
    """

    room: float
    damp: float
    width: float
    level: float
    name: str | None = field(default=None, compare=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ReverbConfig":
        return cls(
            room=float(data["room"]),
            damp=float(data["damp"]),
            width=float(data["width"]),
            level=float(data["level"]),
            name=_optional_str(data.get("name")),
        )


@dataclass(frozen=True)
class ChorusConfig:
    """Chorus parameters of a synth instance. ``type`` is a ``CHORUS_MOD_*`` value."""

    voice_count: int
    speed: float
    depth: float
    type: int
    level: float
    name: str | None = field(default=None, compare=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ChorusConfig":
        return cls(
            voice_count=int(data["voice_count"]),
            speed=float(data["speed"]),
            depth=float(data["depth"]),
            type=int(data.get("type", CHORUS_MOD_SINE)),
            level=float(data["level"]),
            name=_optional_str(data.get("name")),
        )


__all__ = [
    "CHORUS_KEYS",
    "CHORUS_MOD_SINE",
    "CHORUS_MOD_TRIANGLE",
    "ChorusConfig",
    "REVERB_KEYS",
    "ReverbConfig",
]
