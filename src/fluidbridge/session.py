"""Application-facing wrapper around one native FluidSynth instance."""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Mapping, Sequence

import numpy as np

from . import native_runtime
from .arena import retain_cstring, scoped
from .config import SessionConfig, get_loader_config, parse_version
from .diagnostics import log_event
from .effects import CHORUS_KEYS, REVERB_KEYS, ChorusConfig, ReverbConfig
from .errors import (
    FluidSynthError,
    SettingApplyError,
    SoundFontLoadError,
    SoundFontUnloadError,
    VersionTooOldError,
)
from .events import Event, EventTranslator, NoteOff, NoteOn, decode_message
from .handles import NativeHandleSet
from .native_loader import is_platform_supported
from .native_runtime import FLUID_FAILED, FLUID_OK, FX_GROUP_ALL, NativeSurface
from .settings import SettingsBridge

PROP_GAIN = "gain"
PROP_REVERB = "reverb"
PROP_CHORUS = "chorus"

DEVICE_ID_KEY = "synth.device-id"
# FluidSynth 2.3.0 only reacts to the standard XG System ON message when the
# device id is 16 (FluidSynth issue #1092).
XG_COMPAT_DEVICE_ID = 16

Listener = Callable[[str, object, object], None]


def version_satisfies(version: str | Sequence[int], minimum: str | Sequence[int]) -> bool:
    """Return ``True`` when ``version`` >= ``minimum``, comparing each part numerically.

    An unparsable version never satisfies the minimum.
    """

    try:
        current = parse_version(version) if isinstance(version, str) else tuple(int(v) for v in version)
        floor = parse_version(minimum) if isinstance(minimum, str) else tuple(int(v) for v in minimum)
    except ValueError as exc:
        log_event("session", f"can't parse version maj.min.mic: {exc}")
        return False
    return current >= floor


@dataclass(frozen=True)
class SoundFontReference:
    path: Path | None = None
    sfont_id: int = -1

    @property
    def loaded(self) -> bool:
        return self.path is not None and self.sfont_id != -1


NO_SOUNDFONT = SoundFontReference()


class SynthSession:
    """One FluidSynth settings/synth/driver triple plus its cached state.

    The session starts closed; :meth:`open` allocates the native resources
    and :meth:`close` releases them.  A session is not thread safe: callers
    must serialise access to one instance.
    """

    def __init__(
        self,
        surface: NativeSurface | None = None,
        *,
        minimum_version: Sequence[int] | None = None,
    ) -> None:
        self._surface = surface
        self._minimum_version = tuple(minimum_version) if minimum_version is not None else None
        self._handles: NativeHandleSet | None = None
        self._settings: SettingsBridge | None = None
        self._translator: EventTranslator | None = None
        self._reverb: ReverbConfig | None = None
        self._chorus: ChorusConfig | None = None
        self._soundfont = NO_SOUNDFONT
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Library / surface
    # ------------------------------------------------------------------
    @staticmethod
    def is_library_loaded() -> bool:
        """Resolve the native library if needed and report whether it is usable."""

        return native_runtime.ensure_loaded()

    @staticmethod
    def is_platform_supported() -> bool:
        return is_platform_supported()

    def _ensure_surface(self) -> NativeSurface:
        if self._surface is None:
            self._surface = native_runtime.get_native_impl()
        if self._handles is None:
            self._handles = NativeHandleSet(self._surface)
            self._settings = SettingsBridge(self._handles)
            self._translator = EventTranslator(self._handles)
        return self._surface

    @property
    def surface(self) -> NativeSurface:
        return self._ensure_surface()

    @property
    def minimum_version(self) -> tuple[int, ...]:
        if self._minimum_version is not None:
            return self._minimum_version
        return get_loader_config().minimum_version

    @property
    def version(self) -> str:
        """Native library version as ``"major.minor.micro"``."""

        surface = self._ensure_surface()
        with scoped(surface.ffi) as arena:
            major, minor, micro = arena.int_out(), arena.int_out(), arena.int_out()
            surface.lib.fluid_version(major, minor, micro)
            return f"{int(major[0])}.{int(minor[0])}.{int(micro[0])}"

    def check_minimum_version(self, major: int, minor: int, micro: int) -> bool:
        return version_satisfies(self.version, (major, minor, micro))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self._handles is not None and self._handles.is_open

    def open(
        self,
        create_audio_driver: bool = True,
        settings: Mapping[str, str | int | float] | None = None,
    ) -> None:
        """Allocate settings, synth and (optionally) the audio driver.

        ``settings`` are applied to the fresh settings object before the synth
        is created, so creation-time keys such as ``synth.sample-rate`` or
        ``audio.driver`` take effect.
        """

        self._ensure_surface()
        if self.is_open:
            return

        version = self.version
        log_event("session", f"open() FluidSynth version={version}")
        minimum = self.minimum_version
        if not version_satisfies(version, minimum):
            error = VersionTooOldError(version, ".".join(str(part) for part in minimum))
            log_event("session", f"open() {error}")
            raise error

        handles = self._handles
        handles.create_settings()
        if settings:
            failed = [key for key, value in settings.items() if not self._settings.set(key, value)]
            if failed:
                self.close()
                raise SettingApplyError(failed)
        handles.create_synth()
        self._set_device_id_for_xg_compatibility()
        if create_audio_driver:
            try:
                handles.create_driver()
            except FluidSynthError:
                self.close()
                raise
        log_event("session", "open() native FluidSynth instance initialized")

    def _set_device_id_for_xg_compatibility(self) -> None:
        self._settings.set_int(DEVICE_ID_KEY, XG_COMPAT_DEVICE_ID)

    def close(self) -> None:
        """Release the native resources. Safe on a closed or never-opened session."""

        if self._handles is not None:
            self._handles.close()
        self._soundfont = NO_SOUNDFONT
        self._reverb = None
        self._chorus = None

    def __enter__(self) -> "SynthSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.close()
        except Exception:
            pass

    def clone(self, create_audio_driver: bool = False) -> "SynthSession":
        """Return a new open session initialised from this one.

        Gain, reverb, chorus, ``synth.device-id`` and the loaded soundfont are
        copied.  An audio driver is created only when requested and this
        session has one.
        """

        if not self.is_open:
            raise ValueError("clone() requires an open session")
        twin = SynthSession(self._surface, minimum_version=self._minimum_version)
        twin._ensure_surface()
        handles = twin._handles
        handles.create_settings()
        handles.create_synth()
        try:
            twin.gain = self.gain
            twin.set_reverb(self.reverb)
            twin.set_chorus(self.chorus)
            twin.settings.set_int(DEVICE_ID_KEY, self.settings.get_int(DEVICE_ID_KEY))
            if create_audio_driver and self._handles.has_driver:
                handles.create_driver()
            if self._soundfont.loaded:
                twin.load_soundfont(self._soundfont.path)
        except BaseException:
            twin.close()
            raise
        return twin

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def settings(self) -> SettingsBridge:
        self._ensure_surface()
        return self._settings

    @property
    def native_synth(self):
        return self._handles.synth if self._handles is not None else None

    @property
    def native_settings(self):
        return self._handles.settings if self._handles is not None else None

    @property
    def native_driver(self):
        return self._handles.driver if self._handles is not None else None

    @property
    def has_audio_driver(self) -> bool:
        return self._handles is not None and self._handles.has_driver

    def _synth(self):
        if not self.is_open:
            raise FluidSynthError("session is not open")
        return self._handles.synth

    @property
    def soundfont(self) -> SoundFontReference:
        return self._soundfont

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener(name, old, new)``; returns a function that unregisters it."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def _fire(self, name: str, old: object, new: object) -> None:
        if old == new:
            return
        for listener in list(self._listeners):
            listener(name, old, new)

    # ------------------------------------------------------------------
    # Gain and effects
    # ------------------------------------------------------------------
    @property
    def gain(self) -> float:
        synth = self._synth()
        return float(self._surface.lib.fluid_synth_get_gain(synth))

    @gain.setter
    def gain(self, value: float) -> None:
        synth = self._synth()
        old = self.gain
        # The native gain is a float; compare at that precision.
        if np.float32(old) == np.float32(value):
            return
        self._surface.lib.fluid_synth_set_gain(synth, float(value))
        self._fire(PROP_GAIN, old, float(value))

    @property
    def reverb(self) -> ReverbConfig:
        """The reverb last set on this session, else the native settings values."""

        if self._reverb is not None:
            return self._reverb
        settings = self.settings
        return ReverbConfig(
            room=settings.get_double(REVERB_KEYS["room"]),
            damp=settings.get_double(REVERB_KEYS["damp"]),
            width=settings.get_double(REVERB_KEYS["width"]),
            level=settings.get_double(REVERB_KEYS["level"]),
        )

    @reverb.setter
    def reverb(self, value: ReverbConfig) -> None:
        self.set_reverb(value)

    def set_reverb(self, reverb: ReverbConfig) -> bool:
        """Apply every reverb setting; ``False`` if any of them was rejected.

        A value equal to the last one set is skipped: re-applying reverb
        settings briefly alters the sound even when nothing changed.  A partial
        failure is not rolled back.
        """

        old = self._reverb
        if reverb == old:
            return True
        settings = self.settings
        ok = settings.set_double(REVERB_KEYS["damp"], reverb.damp)
        ok &= settings.set_double(REVERB_KEYS["level"], reverb.level)
        ok &= settings.set_double(REVERB_KEYS["room"], reverb.room)
        ok &= settings.set_double(REVERB_KEYS["width"], reverb.width)
        self._reverb = reverb
        self._fire(PROP_REVERB, old, reverb)
        return ok

    @property
    def chorus(self) -> ChorusConfig:
        """The chorus last set on this session, else the native values."""

        if self._chorus is not None:
            return self._chorus
        settings = self.settings
        synth = self._synth()
        with scoped(self._surface.ffi) as arena:
            mod_type = arena.int_out()
            self._surface.lib.fluid_synth_get_chorus_group_type(synth, FX_GROUP_ALL, mod_type)
            chorus_type = int(mod_type[0])
        return ChorusConfig(
            voice_count=settings.get_int(CHORUS_KEYS["voice_count"]),
            speed=settings.get_double(CHORUS_KEYS["speed"]),
            depth=settings.get_double(CHORUS_KEYS["depth"]),
            type=chorus_type,
            level=settings.get_double(CHORUS_KEYS["level"]),
        )

    @chorus.setter
    def chorus(self, value: ChorusConfig) -> None:
        self.set_chorus(value)

    def set_chorus(self, chorus: ChorusConfig) -> bool:
        """Apply every chorus setting and the modulation type; same rules as :meth:`set_reverb`."""

        old = self._chorus
        if chorus == old:
            return True
        settings = self.settings
        synth = self._synth()
        ok = settings.set_double(CHORUS_KEYS["depth"], chorus.depth)
        ok &= settings.set_double(CHORUS_KEYS["level"], chorus.level)
        ok &= settings.set_int(CHORUS_KEYS["voice_count"], chorus.voice_count)
        ok &= settings.set_double(CHORUS_KEYS["speed"], chorus.speed)
        rc = self._surface.lib.fluid_synth_set_chorus_group_type(synth, FX_GROUP_ALL, int(chorus.type))
        ok &= int(rc) == FLUID_OK
        self._chorus = chorus
        self._fire(PROP_CHORUS, old, chorus)
        return ok

    # ------------------------------------------------------------------
    # Soundfonts
    # ------------------------------------------------------------------
    def load_soundfont(self, path: str | Path) -> int:
        """Load ``path`` and reassign presets on every channel; returns the soundfont id."""

        if path is None:
            raise ValueError("path must be provided")
        synth = self._synth()
        sf_path = Path(path).absolute()
        # FluidSynth may keep the filename pointer, so it outlives this call.
        c_path = retain_cstring(self._surface.ffi, str(sf_path))
        sfont_id = int(self._surface.lib.fluid_synth_sfload(synth, c_path, 1))
        if sfont_id == FLUID_FAILED:
            self._soundfont = NO_SOUNDFONT
            error = SoundFontLoadError(sf_path)
            log_event("session", f"loadSoundFont() {error}")
            raise error
        log_event("session", f"loadSoundFont() SoundFont successfully loaded {sf_path}")
        self._soundfont = SoundFontReference(sf_path, sfont_id)
        return sfont_id

    def unload_soundfont(self, sfont_id: int) -> None:
        synth = self._synth()
        rc = int(self._surface.lib.fluid_synth_sfunload(synth, int(sfont_id), 1))
        if rc == FLUID_FAILED:
            error = SoundFontUnloadError(sfont_id)
            log_event("session", f"unloadSoundfont() {error}")
            raise error
        if self._soundfont.sfont_id == sfont_id:
            self._soundfont = NO_SOUNDFONT

    # ------------------------------------------------------------------
    # Events and rendering
    # ------------------------------------------------------------------
    def send(self, event: Event) -> bool:
        self._synth()
        return self._translator.translate(event)

    def send_message(self, data: bytes | Sequence[int]) -> bool:
        """Decode raw MIDI bytes and send the resulting event."""

        return self.send(decode_message(data))

    def play_test_notes(self, delay: float = 0.5, channel: int = 0, velocity: int = 80) -> None:
        for key in range(60, 72):
            self.send(NoteOn(channel, key, velocity))
            if delay > 0:
                time.sleep(delay)
            self.send(NoteOff(channel, key))

    def write_float(self, frames: int) -> np.ndarray:
        """Synthesize ``frames`` stereo frames into a ``(2, frames)`` float32 array.

        Meant for sessions opened without an audio driver.
        """

        if frames <= 0:
            raise ValueError("frames must be positive")
        synth = self._synth()
        ffi = self._surface.ffi
        buffer = np.zeros((2, int(frames)), dtype=np.float32)
        left = ffi.from_buffer("float[]", buffer[0])
        right = ffi.from_buffer("float[]", buffer[1])
        rc = self._surface.lib.fluid_synth_write_float(synth, int(frames), left, 0, 1, right, 0, 1)
        if int(rc) != FLUID_OK:
            raise FluidSynthError(f"fluid_synth_write_float failed for {frames} frames")
        return buffer

    def render_to_file(self, input_path: str | Path, output_path: str | Path, file_type: str = "wav") -> Path:
        """Render a MIDI file offline; see :mod:`fluidbridge.render`."""

        from .render import render_to_file

        return render_to_file(self, input_path, output_path, file_type=file_type)

    def apply_config(self, config: SessionConfig) -> bool:
        """Apply gain, effects and soundfont from ``config`` to an open session."""

        ok = True
        if config.gain is not None:
            self.gain = config.gain
        if config.reverb is not None:
            ok &= self.set_reverb(config.reverb)
        if config.chorus is not None:
            ok &= self.set_chorus(config.chorus)
        if config.soundfont is not None:
            self.load_soundfont(config.soundfont)
        return ok


__all__ = [
    "NO_SOUNDFONT",
    "PROP_CHORUS",
    "PROP_GAIN",
    "PROP_REVERB",
    "SoundFontReference",
    "SynthSession",
    "XG_COMPAT_DEVICE_ID",
    "version_satisfies",
]
