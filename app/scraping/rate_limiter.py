"""
Domain-aware request spacing.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from urllib.parse import urlparse


class DomainRateLimiter:
    """
    Enforces a minimum interval between request starts per domain.

    Each caller reserves the next free start slot for its domain under the
    lock and sleeps outside it, so concurrent callers for different domains
    never wait on each other.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_interval_seconds = max(0.0, min_interval_seconds)
        self._sleep = sleep
        self._clock = clock
        self._next_slot_by_domain: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, *, url: str, min_interval_seconds: float | None = None) -> float:
        """
        Sleep as needed and return the number of seconds waited.
        """

        interval = self._min_interval_seconds
        if min_interval_seconds is not None:
            interval = max(0.0, min_interval_seconds)
        if interval <= 0:
            return 0.0

        parsed = urlparse(url)
        domain = parsed.netloc.lower() or parsed.path.lower()
        if not domain:
            return 0.0

        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot_by_domain.get(domain, now))
            self._next_slot_by_domain[domain] = slot + interval
        wait_seconds = slot - now
        if wait_seconds > 0:
            self._sleep(wait_seconds)
        return wait_seconds

    def reset(self) -> None:
        with self._lock:
            self._next_slot_by_domain.clear()
