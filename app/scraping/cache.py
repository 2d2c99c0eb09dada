"""
In-memory response cache for the fetch layer.
"""

from __future__ import annotations

import hashlib
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Mapping
from urllib.parse import urldefrag

from app.scraping.types import FetchResponse

_KEY_HEADERS = ("accept", "accept-language")


def build_cache_key(*, method: str, url: str, headers: Mapping[str, str] | None = None) -> str:
    """
    Hash the request identity: method, URL without fragment and the headers
    that change the representation served.
    """

    lowered = {key.lower(): value.strip() for key, value in (headers or {}).items()}
    parts = [method.upper(), urldefrag(url.strip())[0]]
    parts.extend(f"{name}={lowered.get(name, '')}" for name in _KEY_HEADERS)
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()


class ResponseCache:
    """
    Thread-safe LRU cache with per-entry expiry.
    """

    def __init__(
        self,
        *,
        max_entries: int = 500,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._ttl_seconds = max(0.0, ttl_seconds)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, FetchResponse]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> FetchResponse | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, response = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return response

    def put(self, key: str, response: FetchResponse, *, ttl_seconds: float | None = None) -> None:
        ttl = self._ttl_seconds if ttl_seconds is None else max(0.0, ttl_seconds)
        with self._lock:
            self._entries[key] = (self._clock() + ttl, response)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
