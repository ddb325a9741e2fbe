"""Shared fixtures: a recording stand-in for the FluidSynth shared library."""

from __future__ import annotations

import pytest

from fluidbridge.config import get_loader_config
from fluidbridge.native_runtime import (
    FLUID_FAILED,
    FLUID_OK,
    FLUID_PLAYER_DONE,
    FLUID_PLAYER_PLAYING,
    FLUID_PLAYER_READY,
    NativeSurface,
    build_ffi,
)

DEFAULT_SETTINGS = {
    "synth.gain": 0.2,
    "synth.device-id": 0,
    "synth.lock-memory": 1,
    "synth.reverb.room-size": 0.2,
    "synth.reverb.damp": 0.0,
    "synth.reverb.width": 0.5,
    "synth.reverb.level": 0.9,
    "synth.chorus.nr": 3,
    "synth.chorus.speed": 0.3,
    "synth.chorus.depth": 8.0,
    "synth.chorus.level": 2.0,
    "audio.file.name": "fluidsynth.wav",
    "audio.file.type": "auto",
    "player.timing-source": "system",
}


class FakeFluidSynth:
    """Implements the declared FluidSynth functions in Python.

    Every call is appended to :attr:`calls` as ``(name, *args)``.  Names listed
    in :attr:`null_results` make the matching constructor return NULL.
    """

    def __init__(self, ffi, version=(2, 3, 0)) -> None:
        self.ffi = ffi
        self.version = version
        self.calls: list[tuple] = []
        self.null_results: set[str] = set()
        self.rejected_keys: set[str] = set()
        self.missing_soundfonts: set[str] = set()
        self.settings: dict[int, dict] = {}
        self.synths: dict[int, dict] = {}
        self.player_blocks = 4
        self.fail_block_at: int | None = None
        self.player_add_rc = FLUID_OK
        self.player_stop_rc = FLUID_OK
        self.player_join_rc = FLUID_OK
        self.blocks_processed = 0
        self.player_state = FLUID_PLAYER_READY
        self.sysex_handled = 1
        self._next_address = 0x1000
        self._next_sfont = 1

    # helpers ----------------------------------------------------------
    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def count(self, name: str) -> int:
        return self.names().count(name)

    def key(self, handle) -> int:
        return int(self.ffi.cast("uintptr_t", handle))

    def _handle(self, ctype: str):
        self._next_address += 0x10
        return self.ffi.cast(ctype, self._next_address)

    def _str(self, cdata) -> str:
        return self.ffi.string(cdata).decode("utf-8")

    def settings_of(self, handle) -> dict:
        return self.settings[self.key(handle)]

    # version / settings --------------------------------------------------
    def fluid_version(self, major, minor, micro):
        self.calls.append(("fluid_version",))
        major[0], minor[0], micro[0] = self.version

    def new_fluid_settings(self):
        self.calls.append(("new_fluid_settings",))
        if "new_fluid_settings" in self.null_results:
            return self.ffi.NULL
        handle = self._handle("fluid_settings_t *")
        self.settings[self.key(handle)] = dict(DEFAULT_SETTINGS)
        return handle

    def delete_fluid_settings(self, settings):
        self.calls.append(("delete_fluid_settings", self.key(settings)))
        self.settings.pop(self.key(settings), None)

    def _set(self, name, settings, key_cdata, value):
        key = self._str(key_cdata)
        self.calls.append((name, key, value))
        if key in self.rejected_keys:
            return FLUID_FAILED
        self.settings_of(settings)[key] = value
        return FLUID_OK

    def fluid_settings_setstr(self, settings, name, value):
        return self._set("fluid_settings_setstr", settings, name, self._str(value))

    def fluid_settings_setint(self, settings, name, value):
        return self._set("fluid_settings_setint", settings, name, int(value))

    def fluid_settings_setnum(self, settings, name, value):
        return self._set("fluid_settings_setnum", settings, name, float(value))

    def fluid_settings_copystr(self, settings, name, out, length):
        key = self._str(name)
        self.calls.append(("fluid_settings_copystr", key))
        values = self.settings_of(settings)
        if key not in values:
            return FLUID_FAILED
        data = str(values[key]).encode("utf-8")[: length - 1]
        self.ffi.memmove(out, data, len(data))
        out[len(data)] = b"\x00"
        return FLUID_OK

    def fluid_settings_getint(self, settings, name, out):
        key = self._str(name)
        self.calls.append(("fluid_settings_getint", key))
        values = self.settings_of(settings)
        if key not in values:
            return FLUID_FAILED
        out[0] = int(values[key])
        return FLUID_OK

    def fluid_settings_getnum(self, settings, name, out):
        key = self._str(name)
        self.calls.append(("fluid_settings_getnum", key))
        values = self.settings_of(settings)
        if key not in values:
            return FLUID_FAILED
        out[0] = float(values[key])
        return FLUID_OK

    # synth / driver ------------------------------------------------------
    def new_fluid_synth(self, settings):
        self.calls.append(("new_fluid_synth", self.key(settings)))
        if "new_fluid_synth" in self.null_results:
            return self.ffi.NULL
        handle = self._handle("fluid_synth_t *")
        self.synths[self.key(handle)] = {
            "settings": self.key(settings),
            "gain": float(self.ffi.cast("float", 0.2)),
            "chorus_type": 0,
            "soundfonts": {},
        }
        return handle

    def delete_fluid_synth(self, synth):
        self.calls.append(("delete_fluid_synth", self.key(synth)))
        self.synths.pop(self.key(synth), None)

    def new_fluid_audio_driver(self, settings, synth):
        self.calls.append(("new_fluid_audio_driver", self.key(settings), self.key(synth)))
        if "new_fluid_audio_driver" in self.null_results:
            return self.ffi.NULL
        return self._handle("fluid_audio_driver_t *")

    def delete_fluid_audio_driver(self, driver):
        self.calls.append(("delete_fluid_audio_driver", self.key(driver)))

    # events --------------------------------------------------------------
    def fluid_synth_noteon(self, synth, chan, key, vel):
        self.calls.append(("fluid_synth_noteon", chan, key, vel))
        return FLUID_OK

    def fluid_synth_noteoff(self, synth, chan, key):
        self.calls.append(("fluid_synth_noteoff", chan, key))
        return FLUID_OK

    def fluid_synth_cc(self, synth, chan, ctrl, val):
        self.calls.append(("fluid_synth_cc", chan, ctrl, val))
        return FLUID_OK

    def fluid_synth_program_change(self, synth, chan, program):
        self.calls.append(("fluid_synth_program_change", chan, program))
        return FLUID_OK

    def fluid_synth_system_reset(self, synth):
        self.calls.append(("fluid_synth_system_reset",))
        return FLUID_OK

    def fluid_synth_sysex(self, synth, data, length, response, response_len, handled, dryrun):
        payload = bytes(self.ffi.buffer(data, length))
        self.calls.append(("fluid_synth_sysex", payload, dryrun))
        handled[0] = self.sysex_handled
        return FLUID_OK

    # gain / chorus -------------------------------------------------------
    def fluid_synth_set_gain(self, synth, gain):
        self.calls.append(("fluid_synth_set_gain", gain))
        self.synths[self.key(synth)]["gain"] = float(self.ffi.cast("float", gain))

    def fluid_synth_get_gain(self, synth):
        self.calls.append(("fluid_synth_get_gain",))
        return self.synths[self.key(synth)]["gain"]

    def fluid_synth_set_chorus_group_type(self, synth, fx_group, mod_type):
        self.calls.append(("fluid_synth_set_chorus_group_type", fx_group, mod_type))
        self.synths[self.key(synth)]["chorus_type"] = mod_type
        return FLUID_OK

    def fluid_synth_get_chorus_group_type(self, synth, fx_group, out):
        self.calls.append(("fluid_synth_get_chorus_group_type", fx_group))
        out[0] = self.synths[self.key(synth)]["chorus_type"]
        return FLUID_OK

    # soundfonts ----------------------------------------------------------
    def fluid_synth_sfload(self, synth, filename, reset_presets):
        path = self._str(filename)
        self.calls.append(("fluid_synth_sfload", path, reset_presets))
        if path in self.missing_soundfonts:
            return FLUID_FAILED
        sfont_id = self._next_sfont
        self._next_sfont += 1
        self.synths[self.key(synth)]["soundfonts"][sfont_id] = path
        return sfont_id

    def fluid_synth_sfunload(self, synth, sfont_id, reset_presets):
        self.calls.append(("fluid_synth_sfunload", sfont_id, reset_presets))
        fonts = self.synths[self.key(synth)]["soundfonts"]
        if sfont_id not in fonts:
            return FLUID_FAILED
        del fonts[sfont_id]
        return FLUID_OK

    def fluid_synth_write_float(self, synth, length, lout, loff, lincr, rout, roff, rincr):
        self.calls.append(("fluid_synth_write_float", length))
        left = self.ffi.cast("float *", lout)
        right = self.ffi.cast("float *", rout)
        for index in range(length):
            left[loff + index * lincr] = 0.25
            right[roff + index * rincr] = -0.25
        return FLUID_OK

    # player / file renderer ----------------------------------------------
    def new_fluid_player(self, synth):
        self.calls.append(("new_fluid_player", self.key(synth)))
        if "new_fluid_player" in self.null_results:
            return self.ffi.NULL
        return self._handle("fluid_player_t *")

    def delete_fluid_player(self, player):
        self.calls.append(("delete_fluid_player",))

    def fluid_player_add(self, player, midifile):
        self.calls.append(("fluid_player_add", self._str(midifile)))
        return self.player_add_rc

    def fluid_player_play(self, player):
        self.calls.append(("fluid_player_play",))
        self.player_state = FLUID_PLAYER_PLAYING
        return FLUID_OK

    def fluid_player_stop(self, player):
        self.calls.append(("fluid_player_stop",))
        self.player_state = FLUID_PLAYER_DONE
        return self.player_stop_rc

    def fluid_player_join(self, player):
        self.calls.append(("fluid_player_join",))
        return self.player_join_rc

    def fluid_player_get_status(self, player):
        self.calls.append(("fluid_player_get_status",))
        if self.player_state == FLUID_PLAYER_PLAYING and self.blocks_processed >= self.player_blocks:
            self.player_state = FLUID_PLAYER_DONE
        return self.player_state

    def new_fluid_file_renderer(self, synth):
        self.calls.append(("new_fluid_file_renderer", self.key(synth)))
        if "new_fluid_file_renderer" in self.null_results:
            return self.ffi.NULL
        return self._handle("fluid_file_renderer_t *")

    def fluid_file_renderer_process_block(self, renderer):
        self.blocks_processed += 1
        self.calls.append(("fluid_file_renderer_process_block", self.blocks_processed))
        if self.fail_block_at is not None and self.blocks_processed == self.fail_block_at:
            return FLUID_FAILED
        return FLUID_OK

    def delete_fluid_file_renderer(self, renderer):
        self.calls.append(("delete_fluid_file_renderer",))


@pytest.fixture(autouse=True)
def isolated_preferences(monkeypatch, tmp_path):
    """Keep library resolution away from the real user preference file."""
    monkeypatch.setenv("FLUIDBRIDGE_PREFERENCES", str(tmp_path / "preferences.json"))
    get_loader_config.cache_clear()
    yield
    get_loader_config.cache_clear()


@pytest.fixture
def ffi():
    return build_ffi()


@pytest.fixture
def fake_lib(ffi) -> FakeFluidSynth:
    return FakeFluidSynth(ffi)


@pytest.fixture
def surface(ffi, fake_lib) -> NativeSurface:
    return NativeSurface(ffi, fake_lib, "/fake/libfluidsynth.so.3")


@pytest.fixture
def open_session(surface):
    from fluidbridge.session import SynthSession

    session = SynthSession(surface)
    session.open(create_audio_driver=True)
    yield session
    session.close()
