"""Ownership of the native settings, synth and audio driver handles."""

from __future__ import annotations

from .diagnostics import log_event
from .errors import DriverCreationError, EngineCreationError
from .native_runtime import NativeSurface


class NativeHandleSet:
    """Owns one settings, one synth and an optional audio driver handle.

    Handles are created settings -> synth -> driver and destroyed in the
    reverse order.  A failed creation releases what was already created
    before raising.  The set cannot be copied: two owners would delete the
    same native objects.
    """

    def __init__(self, surface: NativeSurface) -> None:
        self.surface = surface
        self.ffi = surface.ffi
        self.lib = surface.lib
        self.settings = self.ffi.NULL
        self.synth = self.ffi.NULL
        self.driver = self.ffi.NULL

    def __copy__(self):
        raise TypeError("NativeHandleSet cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("NativeHandleSet cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("NativeHandleSet cannot be pickled")

    def _is_null(self, handle) -> bool:
        return handle is None or handle == self.ffi.NULL

    @property
    def is_open(self) -> bool:
        return not self._is_null(self.synth)

    @property
    def has_settings(self) -> bool:
        return not self._is_null(self.settings)

    @property
    def has_driver(self) -> bool:
        return not self._is_null(self.driver)

    def create_settings(self):
        if self.has_settings:
            raise RuntimeError("settings handle already created")
        settings = self.lib.new_fluid_settings()
        if self._is_null(settings):
            raise EngineCreationError("Error creating native FluidSynth settings instance")
        self.settings = settings
        return settings

    def create_synth(self):
        if not self.has_settings:
            raise RuntimeError("settings must be created before the synth")
        if self.is_open:
            raise RuntimeError("synth handle already created")
        synth = self.lib.new_fluid_synth(self.settings)
        if self._is_null(synth):
            self.close()
            raise EngineCreationError("Error creating native FluidSynth synth instance")
        self.synth = synth
        return synth

    def create_driver(self):
        if not self.is_open:
            raise RuntimeError("synth must be created before the audio driver")
        if self.has_driver:
            raise RuntimeError("audio driver already created")
        driver = self.lib.new_fluid_audio_driver(self.settings, self.synth)
        if self._is_null(driver):
            self.close()
            raise DriverCreationError("Error creating native FluidSynth audio driver")
        self.driver = driver
        return driver

    def close(self) -> None:
        """Destroy driver, synth then settings. Safe to call repeatedly."""

        released = False
        if self.has_driver:
            self.lib.delete_fluid_audio_driver(self.driver)
            released = True
        if self.is_open:
            self.lib.delete_fluid_synth(self.synth)
            released = True
        if self.has_settings:
            self.lib.delete_fluid_settings(self.settings)
            released = True
        self.driver = self.synth = self.settings = self.ffi.NULL
        if released:
            log_event("handles", "close() native FluidSynth instance closed")


__all__ = ["NativeHandleSet"]
