"""
tests/test_fetcher.py

Pytest unit tests for the HTTP fetch layer.

No network: every test drives ``HttpFetcher`` through a fake session and a
recording no-op sleep.

Coverage
--------
- Retry bound and MAX_RETRIES_EXCEEDED error contract
- Incremental vs fixed retry delay
- Non-2xx statuses are retried and never cached
- Response cache idempotence, clear_cache, per-request opt-out
- Concurrency cap under fetch_many and across a live resize
- is_accessible HEAD semantics
- User-Agent rotation with a seeded random source
- Stats counters and reset
- ResponseCache LRU/TTL and DomainRateLimiter spacing
"""

from __future__ import annotations

import random
import threading
import time
from typing import Any

import pytest
import requests

from app.scraping.cache import ResponseCache, build_cache_key
from app.scraping.errors import FetchError, FetchErrorCode
from app.scraping.fetcher import HttpFetcher, SlotLimiter
from app.scraping.rate_limiter import DomainRateLimiter
from app.scraping.types import USER_AGENT_POOL, FetchConfig, FetchRequest, FetchResponse


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeResponse:
    def __init__(self, url: str, status_code: int = 200, text: str = "", reason: str = "OK") -> None:
        self.url = url
        self.status_code = status_code
        self.text = text
        self.reason = reason
        self.headers = {"Content-Type": "text/html"}


class FakeSession:
    """
    Stand-in for ``requests.Session``.

    ``routes`` maps URL to a list of outcomes consumed in order (the last one
    repeats). An outcome is an exception instance, a status code, or body text.
    """

    def __init__(self, routes: dict[str, list[Any]] | None = None, delay: float = 0.0) -> None:
        self.routes = routes or {}
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        with self._lock:
            self.calls.append({"method": method, "url": url, **kwargs})
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
            outcomes = self.routes.get(url, ["<html>ok</html>"])
            outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        try:
            if self.delay:
                time.sleep(self.delay)
            if isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, int):
                return FakeResponse(url, status_code=outcome, text="", reason="Error")
            return FakeResponse(url, text=outcome)
        finally:
            with self._lock:
                self._in_flight -= 1

    def close(self) -> None:
        self.closed = True


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


def make_fetcher(session: FakeSession, sleep: RecordingSleep, **config: Any) -> HttpFetcher:
    return HttpFetcher(
        config=FetchConfig(**config),
        session=session,  # type: ignore[arg-type]
        rng=random.Random(42),
        sleep=sleep,
    )


URL = "https://www.example.com/games/alpha"


# ---------------------------------------------------------------------------
# Single fetch and retries
# ---------------------------------------------------------------------------


class TestFetch:
    def test_successful_fetch_returns_response(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: ["<html>alpha</html>"]})
        response = make_fetcher(session, sleep).fetch(URL)

        assert response.status == 200
        assert response.content == "<html>alpha</html>"
        assert response.final_url == URL
        assert response.from_cache is False
        assert sleep.calls == []

    def test_sends_standard_headers(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        make_fetcher(session, sleep).fetch(URL)

        headers = session.calls[0]["headers"]
        for name in ("User-Agent", "Accept", "Accept-Language", "Cache-Control", "Pragma"):
            assert name in headers
        assert session.calls[0]["timeout"] == 30.0

    def test_permanent_failure_makes_retries_plus_one_attempts(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [requests.ConnectionError("refused")]})
        fetcher = make_fetcher(session, sleep, retries=2)

        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch(URL)

        assert len(session.calls) == 3
        assert excinfo.value.code == FetchErrorCode.MAX_RETRIES_EXCEEDED
        assert excinfo.value.retry_count == 3
        assert excinfo.value.url == URL
        assert isinstance(excinfo.value.cause, requests.ConnectionError)

    def test_incremental_delay_grows_with_attempt(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [requests.Timeout("slow")]})
        with pytest.raises(FetchError):
            make_fetcher(session, sleep, retries=3, retry_delay_seconds=1.0).fetch(URL)
        assert sleep.calls == [1.0, 2.0, 3.0]

    def test_fixed_delay_when_backoff_disabled(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [requests.Timeout("slow")]})
        fetcher = make_fetcher(
            session,
            sleep,
            retries=2,
            retry_delay_seconds=0.5,
            incremental_backoff=False,
        )
        with pytest.raises(FetchError):
            fetcher.fetch(URL)
        assert sleep.calls == [0.5, 0.5]

    def test_non_2xx_status_is_retried(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [503, "<html>recovered</html>"]})
        response = make_fetcher(session, sleep, retries=2).fetch(URL)

        assert response.content == "<html>recovered</html>"
        assert len(session.calls) == 2

    def test_zero_retries_means_single_attempt(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [500]})
        with pytest.raises(FetchError) as excinfo:
            make_fetcher(session, sleep, retries=0).fetch(URL)
        assert len(session.calls) == 1
        assert excinfo.value.retry_count == 1

    def test_invalid_url_fails_without_network(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        with pytest.raises(FetchError) as excinfo:
            make_fetcher(session, sleep).fetch("ftp://example.com/file")
        assert excinfo.value.code == FetchErrorCode.INVALID_URL
        assert excinfo.value.retry_count == 0
        assert session.calls == []

    def test_unparseable_url_fails_as_invalid(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        with pytest.raises(FetchError) as excinfo:
            make_fetcher(session, sleep).fetch("http://[bad/sitemap.xml")
        assert excinfo.value.code == FetchErrorCode.INVALID_URL
        assert session.calls == []

    def test_per_request_config_overrides_default(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [requests.ConnectionError("down")]})
        fetcher = make_fetcher(session, sleep, retries=5)
        with pytest.raises(FetchError):
            fetcher.fetch(FetchRequest(url=URL, config={"retries": 1}))
        assert len(session.calls) == 2


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


class TestCache:
    def test_identical_requests_hit_network_once(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: ["<html>cached</html>"]})
        fetcher = make_fetcher(session, sleep, rotate_user_agent=False)

        first = fetcher.fetch(URL)
        second = fetcher.fetch(URL)

        assert len(session.calls) == 1
        assert first.content == second.content
        assert first.from_cache is False
        assert second.from_cache is True
        assert fetcher.get_stats().cache_hits == 1

    def test_clear_cache_restores_network_calls(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        fetcher = make_fetcher(session, sleep)

        fetcher.fetch(URL)
        fetcher.clear_cache()
        fetcher.clear_cache()
        third = fetcher.fetch(URL)

        assert len(session.calls) == 2
        assert third.from_cache is False

    def test_cache_ignores_rotating_user_agent(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        fetcher = make_fetcher(session, sleep, rotate_user_agent=True)
        fetcher.fetch(URL)
        fetcher.fetch(URL)
        assert len(session.calls) == 1

    def test_cache_can_be_disabled_per_request(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        fetcher = make_fetcher(session, sleep)

        fetcher.fetch(URL, {"enable_cache": False})
        fetcher.fetch(URL, {"enable_cache": False})

        assert len(session.calls) == 2

    def test_failed_status_is_not_cached(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [404]})
        fetcher = make_fetcher(session, sleep, retries=0)
        for _ in range(2):
            with pytest.raises(FetchError):
                fetcher.fetch(URL)
        assert len(session.calls) == 2

    def test_cache_key_ignores_fragment_and_header_case(self) -> None:
        plain = build_cache_key(method="get", url=URL, headers={"Accept": "text/html"})
        fragment = build_cache_key(method="GET", url=f"{URL}#top", headers={"accept": "text/html"})
        other_accept = build_cache_key(method="GET", url=URL, headers={"Accept": "application/xml"})

        assert plain == fragment
        assert plain != other_accept


class TestResponseCache:
    @staticmethod
    def _response(content: str) -> FetchResponse:
        return FetchResponse(status=200, status_text="OK", headers={}, content=content, final_url=URL)

    def test_lru_eviction(self) -> None:
        cache = ResponseCache(max_entries=2)
        cache.put("a", self._response("a"))
        cache.put("b", self._response("b"))
        assert cache.get("a") is not None
        cache.put("c", self._response("c"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert len(cache) == 2

    def test_entries_expire_after_ttl(self) -> None:
        now = [100.0]
        cache = ResponseCache(ttl_seconds=10, clock=lambda: now[0])
        cache.put("a", self._response("a"))

        now[0] = 105.0
        assert cache.get("a") is not None
        now[0] = 111.0
        assert cache.get("a") is None

    def test_purge_expired_counts_removed(self) -> None:
        now = [0.0]
        cache = ResponseCache(ttl_seconds=5, clock=lambda: now[0])
        cache.put("a", self._response("a"))
        cache.put("b", self._response("b"), ttl_seconds=60)
        now[0] = 10.0

        assert cache.purge_expired() == 1
        assert len(cache) == 1


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    def test_in_flight_requests_never_exceed_cap(self, sleep: RecordingSleep) -> None:
        session = FakeSession(delay=0.02)
        fetcher = make_fetcher(session, sleep, concurrency=3)
        urls = [f"https://www.example.com/games/{index}" for index in range(12)]

        results = fetcher.fetch_many(urls)

        assert [item.final_url for item in results] == urls
        assert session.max_in_flight <= 3
        assert fetcher.peak_concurrency <= 3
        assert fetcher.get_stats().current_concurrency == 0

    def test_cap_holds_with_more_workers_than_slots(self, sleep: RecordingSleep) -> None:
        session = FakeSession(delay=0.02)
        fetcher = make_fetcher(session, sleep, concurrency=2)
        urls = [f"https://www.example.com/p/{index}" for index in range(8)]

        threads = [threading.Thread(target=fetcher.fetch, args=(url,)) for url in urls]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(session.calls) == 8
        assert session.max_in_flight <= 2

    def test_raising_cap_counts_requests_already_in_flight(self, sleep: RecordingSleep) -> None:
        session = FakeSession(delay=0.3)
        fetcher = make_fetcher(session, sleep, concurrency=2)

        first = [
            threading.Thread(target=fetcher.fetch, args=(f"https://www.example.com/a/{index}",))
            for index in range(2)
        ]
        for thread in first:
            thread.start()
        deadline = time.monotonic() + 2.0
        while fetcher.get_stats().current_concurrency < 2 and time.monotonic() < deadline:
            time.sleep(0.005)

        fetcher.update_config(concurrency=3)
        second = [
            threading.Thread(target=fetcher.fetch, args=(f"https://www.example.com/b/{index}",))
            for index in range(3)
        ]
        for thread in second:
            thread.start()
        for thread in first + second:
            thread.join()

        assert len(session.calls) == 5
        assert session.max_in_flight <= 3
        assert fetcher.get_stats().current_concurrency == 0

    def test_lowering_cap_holds_new_requests_until_drained(self) -> None:
        limiter = SlotLimiter(3)
        for _ in range(3):
            limiter.acquire()
        limiter.resize(1)

        admitted = threading.Event()

        def worker() -> None:
            limiter.acquire()
            admitted.set()

        thread = threading.Thread(target=worker)
        thread.start()

        limiter.release()
        limiter.release()
        assert admitted.wait(0.1) is False

        limiter.release()
        assert admitted.wait(2.0) is True
        thread.join()
        assert limiter.held == 1
        assert limiter.limit == 1

    def test_release_without_acquire_raises(self) -> None:
        with pytest.raises(ValueError):
            SlotLimiter(1).release()

    def test_fetch_many_can_return_errors_in_place(self, sleep: RecordingSleep) -> None:
        bad = "https://www.example.com/broken"
        session = FakeSession({bad: [500]})
        fetcher = make_fetcher(session, sleep, retries=0)

        results = fetcher.fetch_many([URL, bad], return_exceptions=True)

        assert isinstance(results[0], FetchResponse)
        assert isinstance(results[1], FetchError)

    def test_fetch_many_raises_first_error_by_default(self, sleep: RecordingSleep) -> None:
        bad = "https://www.example.com/broken"
        session = FakeSession({bad: [500]})
        with pytest.raises(FetchError):
            make_fetcher(session, sleep, retries=0).fetch_many([URL, bad])


# ---------------------------------------------------------------------------
# Accessibility, identity rotation, stats
# ---------------------------------------------------------------------------


class TestAccessibility:
    def test_head_2xx_and_3xx_are_accessible(self, sleep: RecordingSleep) -> None:
        moved = "https://www.example.com/moved"
        session = FakeSession({moved: [301]})
        fetcher = make_fetcher(session, sleep)

        assert fetcher.is_accessible(URL) is True
        assert fetcher.is_accessible(moved) is True
        assert session.calls[0]["method"] == "HEAD"
        assert session.calls[0]["timeout"] == 10.0
        assert session.calls[0]["allow_redirects"] is False

    def test_error_status_is_not_accessible_after_one_retry(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [404]})
        assert make_fetcher(session, sleep).is_accessible(URL) is False
        assert len(session.calls) == 2

    def test_network_error_is_not_accessible(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [requests.ConnectionError("dns")]})
        assert make_fetcher(session, sleep).is_accessible(URL) is False

    def test_invalid_url_is_not_accessible(self, sleep: RecordingSleep) -> None:
        assert make_fetcher(FakeSession(), sleep).is_accessible("not a url") is False


class TestUserAgentRotation:
    def test_rotation_picks_from_pool_deterministically(self, sleep: RecordingSleep) -> None:
        def agents(seed: int) -> list[str]:
            session = FakeSession()
            fetcher = HttpFetcher(
                config=FetchConfig(enable_cache=False),
                session=session,  # type: ignore[arg-type]
                rng=random.Random(seed),
                sleep=sleep,
            )
            for _ in range(5):
                fetcher.fetch(URL)
            return [call["headers"]["User-Agent"] for call in session.calls]

        first = agents(7)
        assert first == agents(7)
        assert all(agent in USER_AGENT_POOL for agent in first)

    def test_caller_agent_kept_when_rotation_disabled(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        fetcher = make_fetcher(session, sleep, rotate_user_agent=False)
        fetcher.fetch(FetchRequest(url=URL, headers={"user-agent": "CustomBot/1.0"}))

        headers = {key.lower(): value for key, value in session.calls[0]["headers"].items()}
        assert headers["user-agent"] == "CustomBot/1.0"


class TestStats:
    def test_counters_and_reset(self, sleep: RecordingSleep) -> None:
        bad = "https://www.example.com/broken"
        session = FakeSession({bad: [500]})
        fetcher = make_fetcher(session, sleep, retries=0)

        fetcher.fetch(URL)
        with pytest.raises(FetchError):
            fetcher.fetch(bad)

        stats = fetcher.get_stats()
        assert stats.total_requests == 2
        assert stats.success_requests == 1
        assert stats.failed_requests == 1
        assert stats.success_rate == pytest.approx(0.5)

        fetcher.reset_stats()
        fetcher.reset_stats()
        reset = fetcher.get_stats()
        assert reset.total_requests == 0
        assert reset.success_rate == 0.0

    def test_unexpected_session_error_counts_as_failure(self, sleep: RecordingSleep) -> None:
        session = FakeSession({URL: [RuntimeError("decoder exploded")]})
        fetcher = make_fetcher(session, sleep, retries=2)

        with pytest.raises(RuntimeError, match="decoder exploded"):
            fetcher.fetch(URL)

        stats = fetcher.get_stats()
        assert stats.total_requests == 1
        assert stats.failed_requests == 1
        assert stats.current_concurrency == 0
        assert len(session.calls) == 1

    def test_update_config_changes_defaults(self, sleep: RecordingSleep) -> None:
        fetcher = make_fetcher(FakeSession(), sleep)
        updated = fetcher.update_config(retries=1, concurrency=2)
        assert updated.retries == 1
        assert fetcher.config.concurrency == 2

    def test_close_closes_session(self, sleep: RecordingSleep) -> None:
        session = FakeSession()
        with make_fetcher(session, sleep):
            pass
        assert session.closed is True


class TestDomainRateLimiter:
    def test_spaces_requests_per_domain(self) -> None:
        now = [0.0]
        waits: list[float] = []
        limiter = DomainRateLimiter(min_interval_seconds=2.0, sleep=waits.append, clock=lambda: now[0])

        assert limiter.wait(url="https://a.example.com/1") == 0.0
        assert limiter.wait(url="https://a.example.com/2") == pytest.approx(2.0)
        assert limiter.wait(url="https://b.example.com/1") == 0.0
        assert waits == [pytest.approx(2.0)]

    def test_zero_interval_never_waits(self) -> None:
        waits: list[float] = []
        limiter = DomainRateLimiter(min_interval_seconds=0, sleep=waits.append)
        limiter.wait(url=URL)
        limiter.wait(url=URL)
        assert waits == []
