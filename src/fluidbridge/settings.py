"""Typed accessors over a native ``fluid_settings_t``."""

from __future__ import annotations

from .arena import scoped
from .errors import FluidSynthError
from .handles import NativeHandleSet
from .native_runtime import FLUID_OK

STRING_BUFFER_SIZE = 256


class SettingsBridge:
    """Get and set FluidSynth settings by dotted key.

    Keys are passed through untouched; an unknown key shows up as a ``False``
    return from the setters or a zero/empty value from the getters.
    """

    def __init__(self, handles: NativeHandleSet) -> None:
        self._handles = handles
        self.ffi = handles.ffi
        self.lib = handles.lib

    def _settings(self):
        if not self._handles.has_settings:
            raise FluidSynthError("native settings are not available: session is closed")
        return self._handles.settings

    def set_string(self, key: str, value: str) -> bool:
        settings = self._settings()
        with scoped(self.ffi) as arena:
            rc = self.lib.fluid_settings_setstr(settings, arena.cstring(key), arena.cstring(value))
        return int(rc) == FLUID_OK

    def set_int(self, key: str, value: int) -> bool:
        settings = self._settings()
        with scoped(self.ffi) as arena:
            rc = self.lib.fluid_settings_setint(settings, arena.cstring(key), int(value))
        return int(rc) == FLUID_OK

    def set_double(self, key: str, value: float) -> bool:
        settings = self._settings()
        with scoped(self.ffi) as arena:
            rc = self.lib.fluid_settings_setnum(settings, arena.cstring(key), float(value))
        return int(rc) == FLUID_OK

    def set(self, key: str, value: str | int | float) -> bool:
        """Dispatch to the typed setter matching ``value``'s Python type."""

        if isinstance(value, str):
            return self.set_string(key, value)
        if isinstance(value, bool) or isinstance(value, int):
            return self.set_int(key, int(value))
        if isinstance(value, float):
            return self.set_double(key, value)
        raise TypeError(f"unsupported setting value type for {key}: {type(value).__name__}")

    def get_string(self, key: str) -> str:
        """Return the value copied into a 256 byte buffer; longer values are truncated."""

        settings = self._settings()
        with scoped(self.ffi) as arena:
            out = arena.buffer(STRING_BUFFER_SIZE)
            self.lib.fluid_settings_copystr(settings, arena.cstring(key), out, STRING_BUFFER_SIZE)
            return self.ffi.string(out).decode("utf-8", "replace")

    def get_int(self, key: str) -> int:
        settings = self._settings()
        with scoped(self.ffi) as arena:
            out = arena.int_out()
            self.lib.fluid_settings_getint(settings, arena.cstring(key), out)
            return int(out[0])

    def get_double(self, key: str) -> float:
        settings = self._settings()
        with scoped(self.ffi) as arena:
            out = arena.double_out()
            self.lib.fluid_settings_getnum(settings, arena.cstring(key), out)
            return float(out[0])


__all__ = ["STRING_BUFFER_SIZE", "SettingsBridge"]
