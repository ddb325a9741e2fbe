"""Opt-in diagnostics log for the Python/FluidSynth bridge."""
from __future__ import annotations

import os
import threading
from pathlib import Path

__all__ = ["enable_logging", "logging_enabled", "log_event", "log_path", "set_log_path"]


_LOGGING_ENV = "FLUIDBRIDGE_DIAGNOSTICS"
_LOG_PATH_ENV = "FLUIDBRIDGE_LOG_PATH"

_LOG_ENABLED = os.environ.get(_LOGGING_ENV, "").lower() in {"1", "true", "yes", "on"}
_LOG_PATH = Path(os.environ.get(_LOG_PATH_ENV, "") or "logs/fluidbridge.log")
_LOG_LOCK = threading.Lock()


def enable_logging(enabled: bool) -> None:
    """Enable or disable the bridge log."""

    global _LOG_ENABLED
    _LOG_ENABLED = bool(enabled)


def logging_enabled() -> bool:
    return _LOG_ENABLED


def log_path() -> Path:
    return _LOG_PATH


def set_log_path(path: str | Path) -> None:
    global _LOG_PATH
    _LOG_PATH = Path(path)


def log_event(component: str, message: str) -> None:
    """Append ``message`` tagged with ``component`` when logging is enabled.

    Failures to write the log are ignored: diagnostics must never change the
    outcome of a native call.
    """

    if not _LOG_ENABLED:
        return
    path = _LOG_PATH
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        return
    try:
        with _LOG_LOCK:
            with path.open("a", encoding="utf-8") as handle:
                handle.write(f"[{component}] {message}\n")
    except OSError:
        return
