"""
Storage layer interface for persisted scraper state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStorage(ABC):
    """
    Key to JSON-value store backing scheduler config, run history and
    sitemap snapshots.
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """
        Return the stored value or ``None`` when the key is absent.
        """

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """
        Store a JSON-serializable value, replacing any previous one.
        """

    @abstractmethod
    def remove(self, key: str) -> None:
        """
        Delete the key. Removing a missing key is a no-op.
        """
