"""Locate and load the native FluidSynth shared library.

Linux and macOS rely on a system installation: an explicit override is tried
first, then the location that worked last time, then the conventional
filenames in the conventional library folders.  Windows ships its DLLs with
the package; they are copied to a stable temporary folder and loaded one by
one in reverse dependency order so that ``libfluidsynth-3.dll`` finds its
dependencies already mapped into the process.
"""

from __future__ import annotations

import os
import platform
import shutil
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Iterable, List, Sequence

from .diagnostics import log_event
from .persistence import PREF_LIBRARY_PATH, PreferenceStore

PLATFORM_WINDOWS = "windows"
PLATFORM_MACOS = "macos"
PLATFORM_LINUX = "linux"
PLATFORM_OTHER = "other"

LIB_FILENAMES = {
    PLATFORM_LINUX: ("libfluidsynth.so.3", "libfluidsynth.so"),
    PLATFORM_MACOS: ("libfluidsynth.3.dylib", "libfluidsynth.dylib"),
}

# Homebrew uses /usr/local/lib on Intel and /opt/homebrew/lib on Apple silicon,
# fink uses /opt/sw/lib and MacPorts /opt/local/lib.
LIB_DIRS = {
    PLATFORM_LINUX: ("/usr/lib/x86_64-linux-gnu", "/usr/lib", "/usr/lib64", "/usr/local/lib", "/lib"),
    PLATFORM_MACOS: ("/usr/local/lib", "/opt/homebrew/lib", "/opt/sw/lib", "/opt/local/lib"),
}

# Reverse dependency order: libfluidsynth must stay last.
BUNDLED_LIBS = {
    "amd64": (
        "win/amd64/libintl-8.dll",
        "win/amd64/libglib-2.0-0.dll",
        "win/amd64/libgthread-2.0-0.dll",
        "win/amd64/libgobject-2.0-0.dll",
        "win/amd64/libsndfile-1.dll",
        "win/amd64/libgcc_s_sjlj-1.dll",
        "win/amd64/libwinpthread-1.dll",
        "win/amd64/libgomp-1.dll",
        "win/amd64/libstdc++-6.dll",
        "win/amd64/libinstpatch-2.dll",
        "win/amd64/libfluidsynth-3.dll",
    ),
    "x86": (),
}

Loader = Callable[[str], object]


def platform_family(name: str | None = None) -> str:
    """Map ``sys.platform`` (or ``name``) onto a platform family."""

    value = (name if name is not None else sys.platform).lower()
    if value.startswith("win") or value == "cygwin":
        return PLATFORM_WINDOWS
    if value == "darwin" or "mac" in value:
        return PLATFORM_MACOS
    if value.startswith("linux"):
        return PLATFORM_LINUX
    return PLATFORM_OTHER


def machine_arch(machine: str | None = None) -> str:
    value = (machine if machine is not None else platform.machine()).lower()
    if value in {"x86_64", "amd64", "x64"}:
        return "amd64"
    if value in {"x86", "i386", "i686"}:
        return "x86"
    return value


def is_platform_supported(name: str | None = None) -> bool:
    return platform_family(name) in {PLATFORM_WINDOWS, PLATFORM_MACOS, PLATFORM_LINUX}


@dataclass(frozen=True)
class LibraryCandidate:
    """Static search plan for one platform family."""

    platform: str
    locations: tuple[tuple[str, str], ...] = ()
    override: str | None = None

    def paths(self) -> List[tuple[str, str]]:
        return list(self.locations)


def build_candidate(
    family: str,
    override: str | None = None,
    *,
    filenames: Sequence[str] | None = None,
    directories: Sequence[str] | None = None,
) -> LibraryCandidate:
    """Return the candidate list for ``family``: filename-major, directory-minor."""

    names = tuple(filenames if filenames is not None else LIB_FILENAMES.get(family, ()))
    dirs = tuple(directories if directories is not None else LIB_DIRS.get(family, ()))
    locations = tuple((directory, filename) for filename in names for directory in dirs)
    return LibraryCandidate(platform=family, locations=locations, override=override)


def _is_absolute(location: str) -> bool:
    return location.startswith("/") or location.startswith(os.sep) or os.path.isabs(location)


class LibraryResolver:
    """One-shot resolution of the FluidSynth library for this process.

    ``loader`` performs the actual load (``ffi.dlopen`` in production) and must
    raise ``OSError`` when a location cannot be loaded.  Every attempted
    location is appended to :attr:`attempts` in order.
    """

    def __init__(
        self,
        loader: Loader,
        *,
        family: str | None = None,
        preferences: PreferenceStore | None = None,
        override: str | None = None,
        candidate: LibraryCandidate | None = None,
        bundle_dir: str | Path | None = None,
        extract_dir: str | Path | None = None,
        bundled_libs: Sequence[str] | None = None,
        arch: str | None = None,
        directory_exists: Callable[[str], bool] = os.path.isdir,
    ) -> None:
        self._loader = loader
        self.family = family if family is not None else platform_family()
        self.preferences = preferences
        if candidate is None:
            candidate = build_candidate(self.family, override)
        elif override is not None and candidate.override is None:
            candidate = replace(candidate, override=override)
        self.candidate = candidate
        self.bundle_dir = Path(bundle_dir) if bundle_dir is not None else None
        self.extract_dir = Path(extract_dir) if extract_dir is not None else None
        self.arch = arch if arch is not None else machine_arch()
        if bundled_libs is None:
            bundled_libs = BUNDLED_LIBS.get(self.arch, ())
        self.bundled_libs = tuple(bundled_libs)
        self._directory_exists = directory_exists
        self.attempts: list[str] = []
        self.library: object | None = None
        self.resolved_path: str | None = None
        self.failure_reason: str | None = None

    # ------------------------------------------------------------------
    def resolve(self) -> bool:
        """Load the library; return ``True`` on success."""

        if self.family == PLATFORM_WINDOWS:
            ok = self._resolve_bundled()
        elif self.family in (PLATFORM_LINUX, PLATFORM_MACOS):
            ok = self._resolve_search()
        else:
            self.failure_reason = f"Platform not supported: {sys.platform}"
            log_event("resolver", self.failure_reason)
            ok = False
        if ok:
            log_event("resolver", f"resolve() success using {self.resolved_path}")
        return ok

    def _try_load(self, location: str) -> bool:
        self.attempts.append(location)
        strategy = "path" if _is_absolute(location) else "name"
        try:
            library = self._loader(location)
        except OSError as exc:
            log_event("resolver", f"could not load {location} by {strategy}: {exc}")
            return False
        self.library = library
        self.resolved_path = location
        return True

    def _resolve_search(self) -> bool:
        override = self.candidate.override
        if override:
            if self._try_load(override):
                log_event("resolver", f"using override library {override}")
                return True
            log_event("resolver", f"override library {override} could not be loaded, continuing")

        if self.preferences is not None:
            preferred = self.preferences.get(PREF_LIBRARY_PATH)
            if preferred:
                if self._try_load(preferred):
                    log_event("resolver", f"using preferred library {preferred}")
                    return True
                self.preferences.remove(PREF_LIBRARY_PATH)
                log_event("resolver", f"preferred library {preferred} is no longer loadable, removed")

        for directory, filename in self.candidate.paths():
            if not self._directory_exists(directory):
                continue
            location = str(Path(directory) / filename)
            if self._try_load(location):
                if self.preferences is not None:
                    self.preferences.put(PREF_LIBRARY_PATH, location)
                return True

        self.failure_reason = f"no loadable FluidSynth library among {len(self.attempts)} attempted location(s)"
        log_event("resolver", self.failure_reason)
        return False

    # ------------------------------------------------------------------
    def extract_bundled(self, resources: Iterable[str]) -> list[Path]:
        """Copy bundled libraries into :attr:`extract_dir`, skipping existing files."""

        if self.bundle_dir is None or self.extract_dir is None:
            raise OSError("bundle_dir and extract_dir are required for bundled libraries")
        self.extract_dir.mkdir(parents=True, exist_ok=True)
        extracted: list[Path] = []
        copies = 0
        for resource in resources:
            source = self.bundle_dir / resource
            target = self.extract_dir / Path(resource).name
            if not target.exists():
                try:
                    shutil.copyfile(source, target)
                except OSError:
                    try:
                        target.unlink()
                    except FileNotFoundError:
                        pass
                    raise
                copies += 1
            extracted.append(target)
        log_event("resolver", f"copied {copies} native library file(s) to {self.extract_dir}")
        return extracted

    def _resolve_bundled(self) -> bool:
        if not self.bundled_libs:
            self.failure_reason = f"No bundled libraries for arch={self.arch}"
            log_event("resolver", self.failure_reason)
            return False
        try:
            paths = self.extract_bundled(self.bundled_libs)
        except OSError as exc:
            self.failure_reason = f"Error extracting native libraries: {exc}"
            log_event("resolver", self.failure_reason)
            return False

        add_dll_directory = getattr(os, "add_dll_directory", None)
        if add_dll_directory is not None and self.extract_dir is not None:
            try:
                add_dll_directory(str(self.extract_dir))
            except OSError as exc:
                log_event("resolver", f"add_dll_directory({self.extract_dir}) failed: {exc}")

        for path in paths:
            location = str(path.resolve())
            if not self._try_load(location):
                self.library = None
                self.resolved_path = None
                self.failure_reason = f"Can't load bundled library {location}"
                return False
        return True


__all__ = [
    "BUNDLED_LIBS",
    "LIB_DIRS",
    "LIB_FILENAMES",
    "LibraryCandidate",
    "LibraryResolver",
    "PLATFORM_LINUX",
    "PLATFORM_MACOS",
    "PLATFORM_OTHER",
    "PLATFORM_WINDOWS",
    "build_candidate",
    "is_platform_supported",
    "machine_arch",
    "platform_family",
]
