# persistence.py
"""User-scoped key/value preferences stored as a JSON document."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from .diagnostics import log_event

PREF_LIBRARY_PATH = "library_path"


class PreferenceStore:
    """Small JSON-backed store; every mutation is written atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            log_event("preferences", f"Failed to load preferences {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _save(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.path.with_name(self.path.name + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            log_event("preferences", f"Failed to save preferences {self.path}: {e}")

    def get(self, key: str, default: str | None = None) -> str | None:
        with self._lock:
            return self._load().get(key, default)

    def put(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._save(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._save(data)


__all__ = ["PREF_LIBRARY_PATH", "PreferenceStore"]
