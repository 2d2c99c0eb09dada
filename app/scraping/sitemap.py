"""
Sitemap reader: resolves a site's sitemap (or sitemap index) into a flat,
filtered list of candidate game-page URLs.
"""

from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

from app.domain.competitor_scraping import ScrapingStatus, SitemapSnapshot, WebsiteConfig
from app.scraping.errors import FetchError
from app.scraping.fetcher import HttpFetcher
from app.scraping.logging_utils import elapsed_ms, log_event
from app.scraping.types import FetchRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGES = 10000
DEFAULT_MAX_DEPTH = 5

DEFAULT_EXCLUDED_PATH_FRAGMENTS: tuple[str, ...] = (
    "/sitemap",
    "/rss",
    "/feed",
    "/api/",
    "/admin/",
    "/search",
    "/category",
    "/tag/",
    "/page/",
    "/blog/",
    "/news/",
    ".xml",
    ".json",
    ".css",
    ".js",
    ".png",
    ".jpg",
    ".gif",
    ".ico",
)

SITEMAP_HEADERS: dict[str, str] = {
    "Accept": "application/xml, text/xml, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}

# 3 attempts, 1s x attempt between them, never cached.
SITEMAP_FETCH_POLICY: dict[str, Any] = {
    "retries": 2,
    "retry_delay_seconds": 1.0,
    "incremental_backoff": True,
    "timeout_seconds": 30.0,
    "enable_cache": False,
}


class SitemapParseError(ValueError):
    """
    Raised for empty or malformed sitemap documents.
    """


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1].lower()


def _child_locs(root: ET.Element, container: str) -> list[str]:
    locs: list[str] = []
    for node in root.iter():
        if _local_name(node.tag) != container:
            continue
        for child in node:
            if _local_name(child.tag) == "loc" and child.text and child.text.strip():
                locs.append(child.text.strip())
                break
    return locs


def parse_sitemap_document(content: str) -> tuple[list[str], list[str]]:
    """
    Parse sitemap XML and return ``(page_urls, child_sitemap_urls)``.

    Child sitemaps are only reported when the document lists no pages.
    """

    if not content or not content.strip():
        raise SitemapParseError("Sitemap content is empty")
    try:
        root = ET.fromstring(content.strip())
    except ET.ParseError as exc:
        raise SitemapParseError(f"Malformed sitemap XML: {exc}") from exc

    page_urls = _child_locs(root, "url")
    if page_urls:
        return page_urls, []
    return [], _child_locs(root, "sitemap")


def filter_sitemap_urls(urls: Iterable[str], config: WebsiteConfig) -> list[str]:
    """
    Keep same-host URLs that match the site's pattern (or avoid the default
    exclusions), deduplicate, order by path length then URL, and cap.
    """

    base_host = (urlparse(config.base_url).hostname or "").lower()
    pattern = re.compile(config.scraping.url_pattern) if config.scraping.url_pattern else None

    kept: dict[str, int] = {}
    for raw_url in urls:
        url = raw_url.strip()
        try:
            parsed = urlparse(url)
            host = (parsed.hostname or "").lower()
        except ValueError:
            continue
        if parsed.scheme not in {"http", "https"} or not host or host != base_host:
            continue
        if pattern is not None:
            if not pattern.search(url):
                continue
        else:
            path = parsed.path.lower()
            if any(fragment in path for fragment in DEFAULT_EXCLUDED_PATH_FRAGMENTS):
                continue
        kept.setdefault(url, len(parsed.path))

    ordered = sorted(kept, key=lambda item: (kept[item], item))
    max_pages = config.scraping.max_pages or DEFAULT_MAX_PAGES
    return ordered[:max_pages]


class SitemapReader:
    """
    Fetches and resolves sitemaps through the shared ``HttpFetcher``.
    """

    def __init__(
        self,
        *,
        fetcher: HttpFetcher,
        max_depth: int = DEFAULT_MAX_DEPTH,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._max_depth = max(0, max_depth)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def fetch_sitemap(self, config: WebsiteConfig) -> SitemapSnapshot:
        """
        Build a snapshot for one site. Network errors, bad content and
        malformed site URLs come back as a failed snapshot.
        """

        started = time.monotonic()
        log_event(
            logger,
            logging.INFO,
            "sitemap_fetch_started",
            website=config.name,
            sitemap_url=config.sitemap_url,
        )
        try:
            raw_urls = self._collect_urls(
                config=config,
                sitemap_url=config.sitemap_url,
                depth=0,
                visited=set(),
            )
            urls = filter_sitemap_urls(raw_urls, config)
        except (FetchError, SitemapParseError, re.error, ValueError) as exc:
            duration = elapsed_ms(started)
            log_event(
                logger,
                logging.ERROR,
                "sitemap_fetch_failed",
                website=config.name,
                sitemap_url=config.sitemap_url,
                duration_ms=duration,
                error=str(exc),
            )
            return self._snapshot(
                config=config,
                urls=(),
                status=ScrapingStatus.FAILED,
                duration_ms=duration,
                error_message=str(exc),
            )

        duration = elapsed_ms(started)
        log_event(
            logger,
            logging.INFO,
            "sitemap_fetch_completed",
            website=config.name,
            sitemap_url=config.sitemap_url,
            discovered=len(raw_urls),
            kept=len(urls),
            duration_ms=duration,
        )
        return self._snapshot(
            config=config,
            urls=tuple(urls),
            status=ScrapingStatus.SUCCESS,
            duration_ms=duration,
        )

    def fetch_multiple(self, configs: Sequence[WebsiteConfig]) -> list[SitemapSnapshot]:
        """
        Fetch several sites concurrently; one snapshot per site, input order.
        """

        if not configs:
            return []
        workers = min(len(configs), self._fetcher.config.concurrency)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sitemap") as pool:
            return list(pool.map(self.fetch_sitemap, configs))

    def _collect_urls(
        self,
        *,
        config: WebsiteConfig,
        sitemap_url: str,
        depth: int,
        visited: set[str],
    ) -> list[str]:
        visited.add(sitemap_url)
        content = self._download(config=config, sitemap_url=sitemap_url)
        page_urls, child_sitemaps = parse_sitemap_document(content)
        if page_urls or not child_sitemaps:
            return page_urls

        if depth >= self._max_depth:
            log_event(
                logger,
                logging.WARNING,
                "sitemap_index_depth_exceeded",
                website=config.name,
                sitemap_url=sitemap_url,
                max_depth=self._max_depth,
                skipped_children=len(child_sitemaps),
            )
            return []

        collected: list[str] = []
        for child_url in child_sitemaps:
            if child_url in visited:
                log_event(
                    logger,
                    logging.WARNING,
                    "sitemap_index_cycle_skipped",
                    website=config.name,
                    sitemap_url=child_url,
                )
                continue
            try:
                collected.extend(
                    self._collect_urls(
                        config=config,
                        sitemap_url=child_url,
                        depth=depth + 1,
                        visited=visited,
                    )
                )
            except (FetchError, SitemapParseError) as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "child_sitemap_failed",
                    website=config.name,
                    sitemap_url=child_url,
                    error=str(exc),
                )
        return collected

    def _download(self, *, config: WebsiteConfig, sitemap_url: str) -> str:
        policy = dict(SITEMAP_FETCH_POLICY)
        if config.scraping.request_delay_ms:
            policy["request_interval_seconds"] = config.scraping.request_delay_ms / 1000.0
        response = self._fetcher.fetch(
            FetchRequest(
                url=sitemap_url,
                headers=dict(SITEMAP_HEADERS),
                metadata={"website_id": config.id},
            ),
            policy,
        )
        return response.content

    def _snapshot(
        self,
        *,
        config: WebsiteConfig,
        urls: tuple[str, ...],
        status: str,
        duration_ms: int,
        error_message: str | None = None,
    ) -> SitemapSnapshot:
        return SitemapSnapshot(
            website_id=config.id,
            website_name=config.name,
            sitemap_url=config.sitemap_url,
            urls=urls,
            last_fetched=self._clock(),
            status=status,
            fetch_duration_ms=duration_ms,
            total_urls=len(urls),
            error_message=error_message,
        )
