"""cffi binding of the FluidSynth C API subset used by the bridge.

The library is resolved at most once per process.  ``AVAILABLE`` and
``UNAVAILABLE_REASON`` describe the outcome after :func:`ensure_loaded` ran.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable

import cffi

from .config import get_loader_config
from .errors import LibraryNotLoadedError
from .native_loader import LibraryResolver
from .persistence import PreferenceStore

AVAILABLE = False
UNAVAILABLE_REASON: str | None = None
_IMPL: "NativeSurface | None" = None
_RESOLVED = False
_RESOLVE_LOCK = threading.Lock()

FLUID_OK = 0
FLUID_FAILED = -1

FLUID_PLAYER_READY = 0
FLUID_PLAYER_PLAYING = 1
FLUID_PLAYER_STOPPING = 2
FLUID_PLAYER_DONE = 3

# fx_group value addressing every effect group at once
FX_GROUP_ALL = -1

_CDEF = """
typedef struct _fluid_hashtable_t fluid_settings_t;
typedef struct _fluid_synth_t fluid_synth_t;
typedef struct _fluid_audio_driver_t fluid_audio_driver_t;
typedef struct _fluid_player_t fluid_player_t;
typedef struct _fluid_file_renderer_t fluid_file_renderer_t;

void fluid_version(int *major, int *minor, int *micro);

fluid_settings_t *new_fluid_settings(void);
void delete_fluid_settings(fluid_settings_t *settings);
int fluid_settings_setstr(fluid_settings_t *settings, const char *name, const char *str);
int fluid_settings_copystr(fluid_settings_t *settings, const char *name, char *str, int len);
int fluid_settings_setnum(fluid_settings_t *settings, const char *name, double val);
int fluid_settings_getnum(fluid_settings_t *settings, const char *name, double *val);
int fluid_settings_setint(fluid_settings_t *settings, const char *name, int val);
int fluid_settings_getint(fluid_settings_t *settings, const char *name, int *val);

fluid_synth_t *new_fluid_synth(fluid_settings_t *settings);
void delete_fluid_synth(fluid_synth_t *synth);
fluid_audio_driver_t *new_fluid_audio_driver(fluid_settings_t *settings, fluid_synth_t *synth);
void delete_fluid_audio_driver(fluid_audio_driver_t *driver);

int fluid_synth_noteon(fluid_synth_t *synth, int chan, int key, int vel);
int fluid_synth_noteoff(fluid_synth_t *synth, int chan, int key);
int fluid_synth_cc(fluid_synth_t *synth, int chan, int ctrl, int val);
int fluid_synth_program_change(fluid_synth_t *synth, int chan, int program);
int fluid_synth_system_reset(fluid_synth_t *synth);
int fluid_synth_sysex(
    fluid_synth_t *synth,
    const char *data,
    int len,
    char *response,
    int *response_len,
    int *handled,
    int dryrun
);

void fluid_synth_set_gain(fluid_synth_t *synth, float gain);
float fluid_synth_get_gain(fluid_synth_t *synth);
int fluid_synth_set_chorus_group_type(fluid_synth_t *synth, int fx_group, int type);
int fluid_synth_get_chorus_group_type(fluid_synth_t *synth, int fx_group, int *type);

int fluid_synth_sfload(fluid_synth_t *synth, const char *filename, int reset_presets);
int fluid_synth_sfunload(fluid_synth_t *synth, int id, int reset_presets);

int fluid_synth_write_float(
    fluid_synth_t *synth,
    int len,
    void *lout,
    int loff,
    int lincr,
    void *rout,
    int roff,
    int rincr
);

fluid_player_t *new_fluid_player(fluid_synth_t *synth);
void delete_fluid_player(fluid_player_t *player);
int fluid_player_add(fluid_player_t *player, const char *midifile);
int fluid_player_play(fluid_player_t *player);
int fluid_player_stop(fluid_player_t *player);
int fluid_player_join(fluid_player_t *player);
int fluid_player_get_status(fluid_player_t *player);

fluid_file_renderer_t *new_fluid_file_renderer(fluid_synth_t *synth);
int fluid_file_renderer_process_block(fluid_file_renderer_t *dev);
void delete_fluid_file_renderer(fluid_file_renderer_t *dev);
"""


@dataclass(frozen=True)
class NativeSurface:
    """The ``(ffi, lib)`` pair every native call goes through."""

    ffi: cffi.FFI
    lib: object
    path: str | None = None


@lru_cache(maxsize=1)
def build_ffi() -> cffi.FFI:
    """Return the process-wide FFI carrying the FluidSynth declarations."""

    ffi = cffi.FFI()
    ffi.cdef(_CDEF)
    return ffi


def _default_resolver(ffi: cffi.FFI) -> LibraryResolver:
    config = get_loader_config()
    return LibraryResolver(
        ffi.dlopen,
        preferences=PreferenceStore(config.preferences_path),
        override=config.library_override,
        bundle_dir=config.bundle_dir,
        extract_dir=config.extract_dir,
    )


def ensure_loaded(
    resolver_factory: Callable[[cffi.FFI], LibraryResolver] | None = None,
) -> bool:
    """Resolve the native library once; later calls return the first outcome."""

    global AVAILABLE, UNAVAILABLE_REASON, _IMPL, _RESOLVED
    if _RESOLVED:
        return AVAILABLE
    with _RESOLVE_LOCK:
        if _RESOLVED:
            return AVAILABLE
        ffi = build_ffi()
        factory = resolver_factory if resolver_factory is not None else _default_resolver
        try:
            resolver = factory(ffi)
            ok = resolver.resolve()
        except Exception as exc:  # pragma: no cover - depends on the host system
            ok = False
            reason = f"Failed to resolve FluidSynth library: {exc}"
        else:
            reason = resolver.failure_reason
        if ok:
            _IMPL = NativeSurface(ffi, resolver.library, resolver.resolved_path)
            AVAILABLE = True
            UNAVAILABLE_REASON = None
        else:
            _IMPL = None
            AVAILABLE = False
            UNAVAILABLE_REASON = reason or "FluidSynth library could not be loaded"
        _RESOLVED = True
    return AVAILABLE


def get_native_impl() -> NativeSurface:
    """Return the loaded surface or raise :class:`LibraryNotLoadedError`."""

    if not ensure_loaded() or _IMPL is None:
        raise LibraryNotLoadedError(
            f"FluidSynth libraries not loaded: {UNAVAILABLE_REASON}"
        )
    return _IMPL


def is_loaded() -> bool:
    return ensure_loaded()


__all__ = [
    "AVAILABLE",
    "FLUID_FAILED",
    "FLUID_OK",
    "FLUID_PLAYER_DONE",
    "FLUID_PLAYER_PLAYING",
    "FLUID_PLAYER_READY",
    "FLUID_PLAYER_STOPPING",
    "FX_GROUP_ALL",
    "NativeSurface",
    "UNAVAILABLE_REASON",
    "build_ffi",
    "ensure_loaded",
    "get_native_impl",
    "is_loaded",
]
