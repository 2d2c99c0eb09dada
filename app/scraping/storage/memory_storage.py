"""
In-process storage used by tests and one-off CLI runs.
"""

from __future__ import annotations

import copy
import threading
from typing import Any

from app.scraping.storage.base import KeyValueStorage


class InMemoryKeyValueStorage(KeyValueStorage):
    """
    Dict-backed storage. Values are deep-copied on the way in and out so
    callers never share mutable state with the store.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._data.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)
