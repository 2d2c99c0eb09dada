"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

USER_AGENT_POOL: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0",
)

DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "User-Agent": USER_AGENT_POOL[0],
}


@dataclass(frozen=True)
class FetchConfig:
    """
    Fetch policy. Per-request overrides are merged over the fetcher default.
    """

    timeout_seconds: float = 30.0
    retries: int = 3
    retry_delay_seconds: float = 1.0
    incremental_backoff: bool = True
    request_interval_seconds: float = 0.0
    concurrency: int = 5
    enable_cache: bool = True
    cache_ttl_seconds: float = 3600.0
    cache_max_entries: int = 500
    rotate_user_agent: bool = True
    default_headers: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive.")
        if self.retries < 0:
            raise ValueError("retries must not be negative.")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1.")

    def merged(self, overrides: dict[str, Any] | None) -> "FetchConfig":
        if not overrides:
            return self
        return replace(self, **overrides)

    def retry_delay_for(self, attempt: int) -> float:
        """
        Delay before retry number ``attempt`` (1-based).
        """

        if self.incremental_backoff:
            return self.retry_delay_seconds * attempt
        return self.retry_delay_seconds


@dataclass(frozen=True)
class FetchRequest:
    """
    One outbound HTTP request.
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: str | bytes | None = None
    config: dict[str, Any] = field(default_factory=dict)
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class FetchResponse:
    """
    Response returned by ``HttpFetcher.fetch``.
    """

    status: int
    status_text: str
    headers: dict[str, str]
    content: str
    final_url: str
    from_cache: bool = False
    response_time_ms: int = 0
    metadata: dict[str, Any] | None = None

    def as_cached(self) -> "FetchResponse":
        return replace(self, from_cache=True, response_time_ms=0)


@dataclass(frozen=True)
class FetchStats:
    """
    Point-in-time fetch counters.
    """

    total_requests: int
    success_requests: int
    failed_requests: int
    cache_hits: int
    avg_response_time_ms: float
    success_rate: float
    current_concurrency: int
    queue_length: int
