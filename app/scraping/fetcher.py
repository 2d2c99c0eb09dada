"""
HTTP fetch layer: retries, identity rotation, response cache and a
concurrency cap around a shared ``requests.Session``.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from collections import deque
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any
from urllib.parse import urlparse

import requests
from requests.structures import CaseInsensitiveDict

from app.scraping.cache import ResponseCache, build_cache_key
from app.scraping.errors import FetchError, FetchErrorCode
from app.scraping.logging_utils import elapsed_ms, log_event
from app.scraping.rate_limiter import DomainRateLimiter
from app.scraping.types import USER_AGENT_POOL, FetchConfig, FetchRequest, FetchResponse, FetchStats

logger = logging.getLogger(__name__)

StatusPredicate = Callable[[int], bool]


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _is_reachable(status: int) -> bool:
    return 200 <= status < 400


class SlotLimiter:
    """
    FIFO counting limiter whose capacity can change while slots are held.

    Holders of a slot keep counting against the limit after ``resize``, so
    the number of holders never exceeds the current limit once the excess
    has drained.
    """

    def __init__(self, limit: int) -> None:
        self._cond = threading.Condition()
        self._limit = max(1, limit)
        self._held = 0
        self._queue: deque[object] = deque()

    @property
    def limit(self) -> int:
        with self._cond:
            return self._limit

    @property
    def held(self) -> int:
        with self._cond:
            return self._held

    def acquire(self) -> None:
        ticket = object()
        with self._cond:
            self._queue.append(ticket)
            try:
                while self._queue[0] is not ticket or self._held >= self._limit:
                    self._cond.wait()
            except BaseException:
                self._queue.remove(ticket)
                self._cond.notify_all()
                raise
            self._queue.popleft()
            self._held += 1
            self._cond.notify_all()

    def release(self) -> None:
        with self._cond:
            if self._held <= 0:
                raise ValueError("SlotLimiter released too many times")
            self._held -= 1
            self._cond.notify_all()

    def resize(self, limit: int) -> None:
        with self._cond:
            self._limit = max(1, limit)
            self._cond.notify_all()


class HttpFetcher:
    """
    Thread-safe HTTP client used by the sitemap reader and page scrapers.

    At most ``config.concurrency`` requests are on the wire at once; further
    callers block on the slot limiter and are admitted in arrival order.
    """

    def __init__(
        self,
        *,
        config: FetchConfig | None = None,
        session: requests.Session | None = None,
        cache: ResponseCache | None = None,
        rate_limiter: DomainRateLimiter | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or FetchConfig()
        self._session = session or requests.Session()
        self._cache = cache or ResponseCache(
            max_entries=self._config.cache_max_entries,
            ttl_seconds=self._config.cache_ttl_seconds,
        )
        self._rate_limiter = rate_limiter or DomainRateLimiter(
            min_interval_seconds=self._config.request_interval_seconds,
            sleep=sleep,
        )
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._slots = SlotLimiter(self._config.concurrency)

        self._stats_lock = threading.Lock()
        self._total_requests = 0
        self._success_requests = 0
        self._failed_requests = 0
        self._cache_hits = 0
        self._response_time_total_ms = 0
        self._timed_responses = 0
        self._in_flight = 0
        self._waiting = 0
        self._peak_in_flight = 0

    # ---- public API ----

    @property
    def config(self) -> FetchConfig:
        return self._config

    def fetch(
        self,
        request: FetchRequest | str,
        config: dict[str, Any] | None = None,
    ) -> FetchResponse:
        """
        Perform one request, raising ``FetchError`` once retries are exhausted.
        """

        if isinstance(request, str):
            request = FetchRequest(url=request)
        effective = self._config.merged({**request.config, **(config or {})})
        return self._fetch(request, effective, accept_status=_is_success)

    def fetch_many(
        self,
        items: Sequence[FetchRequest | str],
        *,
        return_exceptions: bool = False,
    ) -> list[FetchResponse | FetchError]:
        """
        Fetch several requests concurrently and return results in input order.

        With ``return_exceptions`` a failed request yields its ``FetchError``
        in place; otherwise the first failure is raised.
        """

        if not items:
            return []
        workers = min(self._config.concurrency, len(items))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fetch") as pool:
            futures = [pool.submit(self.fetch, item) for item in items]
            results: list[FetchResponse | FetchError] = []
            for future in futures:
                try:
                    results.append(future.result())
                except FetchError as exc:
                    if not return_exceptions:
                        raise
                    results.append(exc)
        return results

    def is_accessible(self, url: str) -> bool:
        """
        HEAD the URL once (one retry, 10s timeout); any error reads as ``False``.
        """

        effective = self._config.merged(
            {"retries": 1, "timeout_seconds": 10.0, "enable_cache": False}
        )
        try:
            self._fetch(FetchRequest(url=url, method="HEAD"), effective, accept_status=_is_reachable)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.DEBUG, "url_not_accessible", url=url, error=str(exc))
            return False
        return True

    def get_stats(self) -> FetchStats:
        with self._stats_lock:
            total = self._total_requests
            return FetchStats(
                total_requests=total,
                success_requests=self._success_requests,
                failed_requests=self._failed_requests,
                cache_hits=self._cache_hits,
                avg_response_time_ms=(
                    self._response_time_total_ms / self._timed_responses
                    if self._timed_responses
                    else 0.0
                ),
                success_rate=self._success_requests / total if total else 0.0,
                current_concurrency=self._in_flight,
                queue_length=self._waiting,
            )

    @property
    def peak_concurrency(self) -> int:
        with self._stats_lock:
            return self._peak_in_flight

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._total_requests = 0
            self._success_requests = 0
            self._failed_requests = 0
            self._cache_hits = 0
            self._response_time_total_ms = 0
            self._timed_responses = 0
            self._peak_in_flight = self._in_flight

    def clear_cache(self) -> None:
        self._cache.clear()
        log_event(logger, logging.DEBUG, "fetch_cache_cleared")

    def update_config(self, **overrides: Any) -> FetchConfig:
        """
        Replace the default policy. A lower concurrency limit holds back new
        requests until enough in-flight ones finish.
        """

        updated = self._config.merged(overrides)
        if updated.concurrency != self._config.concurrency:
            self._slots.resize(updated.concurrency)
        self._config = updated
        return updated

    def close(self) -> None:
        self._cache.clear()
        self._session.close()

    def __enter__(self) -> "HttpFetcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---- internals ----

    def _fetch(
        self,
        request: FetchRequest,
        config: FetchConfig,
        *,
        accept_status: StatusPredicate,
    ) -> FetchResponse:
        self._validate_url(request.url)
        method = request.method.upper()
        headers = self._build_headers(request, config)

        cache_key: str | None = None
        if config.enable_cache and method == "GET":
            cache_key = build_cache_key(method=method, url=request.url, headers=headers)
            cached = self._cache.get(cache_key)
            if cached is not None:
                self._record_cache_hit()
                log_event(logger, logging.DEBUG, "fetch_cache_hit", url=request.url)
                return cached.as_cached()

        self._mark_waiting()
        self._slots.acquire()
        self._mark_started()
        try:
            response = self._send_with_retries(
                request=request,
                method=method,
                headers=headers,
                config=config,
                accept_status=accept_status,
            )
        except Exception:
            self._record_result(success=False)
            raise
        finally:
            self._mark_finished()
            self._slots.release()

        self._record_result(success=True, response_time_ms=response.response_time_ms)
        if cache_key is not None and _is_success(response.status):
            self._cache.put(cache_key, response, ttl_seconds=config.cache_ttl_seconds)
        return response

    def _send_with_retries(
        self,
        *,
        request: FetchRequest,
        method: str,
        headers: CaseInsensitiveDict,
        config: FetchConfig,
        accept_status: StatusPredicate,
    ) -> FetchResponse:
        last_error: Exception | None = None
        attempts = config.retries + 1

        for attempt in range(attempts):
            self._rate_limiter.wait(
                url=request.url,
                min_interval_seconds=config.request_interval_seconds,
            )
            started = time.monotonic()
            try:
                raw = self._session.request(
                    method,
                    request.url,
                    headers=dict(headers),
                    data=request.body,
                    timeout=config.timeout_seconds,
                    allow_redirects=method != "HEAD",
                )
                if not accept_status(raw.status_code):
                    raise requests.HTTPError(
                        f"Unexpected status={raw.status_code}",
                        response=raw,
                    )
                return FetchResponse(
                    status=raw.status_code,
                    status_text=raw.reason or "",
                    headers=dict(raw.headers),
                    content=raw.text if method != "HEAD" else "",
                    final_url=raw.url or request.url,
                    from_cache=False,
                    response_time_ms=elapsed_ms(started),
                    metadata=request.metadata,
                )
            except requests.RequestException as exc:
                last_error = exc
                log_event(
                    logger,
                    logging.WARNING,
                    "fetch_attempt_failed",
                    url=request.url,
                    method=method,
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(exc),
                )

            if attempt >= config.retries:
                break
            self._sleep(config.retry_delay_for(attempt + 1))

        log_event(
            logger,
            logging.ERROR,
            "fetch_failed",
            url=request.url,
            method=method,
            retry_count=attempts,
            error=str(last_error),
        )
        raise FetchError(
            f"Failed to fetch {request.url} after {attempts} attempts: {last_error}",
            code=FetchErrorCode.MAX_RETRIES_EXCEEDED,
            url=request.url,
            retry_count=attempts,
            cause=last_error,
        )

    def _build_headers(self, request: FetchRequest, config: FetchConfig) -> CaseInsensitiveDict:
        headers: CaseInsensitiveDict = CaseInsensitiveDict(config.default_headers)
        headers.update(request.headers)
        if config.rotate_user_agent:
            headers["User-Agent"] = self._rng.choice(USER_AGENT_POOL)
        return headers

    @staticmethod
    def _validate_url(url: str) -> None:
        try:
            parsed = urlparse(url)
            valid = parsed.scheme in {"http", "https"} and bool(parsed.hostname)
        except ValueError:
            valid = False
        if not valid:
            raise FetchError(
                f"Invalid URL: {url!r}",
                code=FetchErrorCode.INVALID_URL,
                url=url,
                retry_count=0,
            )

    # ---- counters ----

    def _mark_waiting(self) -> None:
        with self._stats_lock:
            self._waiting += 1

    def _mark_started(self) -> None:
        with self._stats_lock:
            self._waiting -= 1
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)

    def _mark_finished(self) -> None:
        with self._stats_lock:
            self._in_flight -= 1

    def _record_cache_hit(self) -> None:
        with self._stats_lock:
            self._total_requests += 1
            self._success_requests += 1
            self._cache_hits += 1

    def _record_result(self, *, success: bool, response_time_ms: int = 0) -> None:
        with self._stats_lock:
            self._total_requests += 1
            if success:
                self._success_requests += 1
                self._response_time_total_ms += response_time_ms
                self._timed_responses += 1
            else:
                self._failed_requests += 1

