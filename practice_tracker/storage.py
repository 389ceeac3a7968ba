"""
Durable client-side storage.

A small JSON key-value file standing in for browser local storage. Holds
the last-selected athlete and the persisted authentication session.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger


SELECTED_ATHLETE_KEY = "selected_athlete_id"
AUTH_SESSION_KEY = "auth_session"


class DurableStorage:
    """
    Key-value store persisted to a single JSON file.

    Every write is flushed to disk immediately so a later process sees it.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def get(self, key: str, default: Optional[Any] = None) -> Any:
        return self._read_all().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


class MemoryStorage(DurableStorage):
    """In-process storage with the same interface, used when no file is wanted."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def _read_all(self) -> Dict[str, Any]:
        return dict(self._data)

    def _write_all(self, data: Dict[str, Any]) -> None:
        self._data = dict(data)
