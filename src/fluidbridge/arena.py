"""Scoped foreign memory for native call arguments.

Every bridge call marshals its arguments inside a :class:`ForeignArena`; the
arena releases all of its allocations when the scope ends, whether the call
returned normally or raised.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

import cffi

T = TypeVar("T")

_RETAINED: dict[str, object] = {}
_RETAINED_LOCK = threading.Lock()


class ForeignArena:
    """Allocator whose allocations share a single lifetime."""

    def __init__(self, ffi: cffi.FFI) -> None:
        self.ffi = ffi
        self._allocations: list[object] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._allocations)

    def new(self, ctype: str, init=None):
        if self._closed:
            raise RuntimeError("arena is closed")
        cdata = self.ffi.new(ctype, init)
        self._allocations.append(cdata)
        return cdata

    def cstring(self, text: str):
        """NUL-terminated UTF-8 copy of ``text``."""

        return self.new("char[]", text.encode("utf-8"))

    def buffer(self, size: int):
        """Zeroed ``char[size]`` output buffer."""

        if size <= 0:
            raise ValueError("size must be positive")
        return self.new(f"char[{int(size)}]")

    def byte_array(self, data: bytes):
        # char[] built from bytes would append a NUL; size it exactly instead
        array = self.new(f"char[{max(len(data), 1)}]")
        if data:
            self.ffi.memmove(array, data, len(data))
        return array

    def int_out(self):
        return self.new("int *", 0)

    def double_out(self):
        return self.new("double *", 0.0)

    def float_out(self):
        return self.new("float *", 0.0)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        allocations = self._allocations
        self._allocations = []
        for cdata in reversed(allocations):
            self.ffi.release(cdata)

    def __enter__(self) -> "ForeignArena":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@contextmanager
def scoped(ffi: cffi.FFI) -> Iterator[ForeignArena]:
    arena = ForeignArena(ffi)
    try:
        yield arena
    finally:
        arena.close()


def with_scope(ffi: cffi.FFI, body: Callable[[ForeignArena], T]) -> T:
    """Run ``body`` with a fresh arena and release it on every exit path."""

    with scoped(ffi) as arena:
        return body(arena)


def retain_cstring(ffi: cffi.FFI, text: str):
    """Allocate a C string that lives for the rest of the process.

    Used for strings the native library may keep a pointer to after the call
    returns, such as a loaded soundfont filename.  Equal strings share one
    allocation.
    """

    with _RETAINED_LOCK:
        cdata = _RETAINED.get(text)
        if cdata is None:
            cdata = ffi.new("char[]", text.encode("utf-8"))
            _RETAINED[text] = cdata
    return cdata


__all__ = ["ForeignArena", "retain_cstring", "scoped", "with_scope"]
