"""
Persistent state for the daily interests buffer.

StateStore holds one root container (a JSON-compatible dict) and writes it
through to an injected backend on every save():

    store = StateStore(JsonFileBackend(Path("data/interests_state.json")))
    store.state["dailyInterests"] = {}
    store.save()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol


logger = logging.getLogger(__name__)


class StorageBackend(Protocol):
    def load(self) -> dict | None:
        ...

    def save(self, value: dict) -> None:
        ...

    def delete(self) -> None:
        ...


class MemoryBackend:
    """Keeps a serialized copy, so stored state never aliases live state."""

    def __init__(self, initial: dict | None = None):
        self._raw = json.dumps(initial) if initial is not None else None

    def load(self) -> dict | None:
        if self._raw is None:
            return None
        return json.loads(self._raw)

    def save(self, value: dict) -> None:
        self._raw = json.dumps(value)

    def delete(self) -> None:
        self._raw = None


class JsonFileBackend:
    """State in a single JSON file, replaced atomically on save."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("Unreadable state file %s (%s); starting empty", self.path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("State file %s does not hold a mapping; starting empty", self.path)
            return None
        return data

    def save(self, value: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(value, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def delete(self) -> None:
        if self.path.exists():
            self.path.unlink()


class StateStore:
    """Process-wide state container with write-through persistence."""

    def __init__(self, backend: StorageBackend | None = None):
        self.backend = backend if backend is not None else MemoryBackend()
        self.state: dict = self.backend.load() or {}

    def get(self, key: str, default=None):
        return self.state.get(key, default)

    def set(self, key: str, value) -> None:
        self.state[key] = value
        self.save()

    def delete(self, key: str) -> None:
        if key in self.state:
            del self.state[key]
            self.save()

    def save(self) -> None:
        self.backend.save(self.state)

    def reload(self) -> None:
        self.state = self.backend.load() or {}
