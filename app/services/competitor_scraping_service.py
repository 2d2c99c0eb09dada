"""
app/services/competitor_scraping_service.py

Service wiring for competitor sitemap discovery and page content extraction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Any

from app.domain.competitor_scraping import SitemapSnapshot, WebsiteConfig
from app.repositories.competitor_state_repository import CompetitorStateRepository
from app.scheduler.jobs import SitemapUpdateScheduler
from app.schemas.content_parsing import ParseConfig, ParseResult
from app.scraping.config import (
    CompetitorScrapingSettings,
    StateBackend,
    get_competitor_scraping_settings,
    load_website_configs,
)
from app.scraping.extractor import ContentExtractor
from app.scraping.fetcher import HttpFetcher
from app.scraping.logging_utils import log_event
from app.scraping.sitemap import SitemapReader
from app.scraping.storage import (
    InMemoryKeyValueStorage,
    KeyValueStorage,
    SQLAlchemyKeyValueStorage,
)
from db.session import SessionLocal, dispose_engine

logger = logging.getLogger(__name__)


def build_state_storage(settings: CompetitorScrapingSettings) -> KeyValueStorage:
    """
    Return the key/value store selected by ``SCRAPER_STATE_BACKEND``.
    """

    if settings.state_backend == StateBackend.DATABASE:
        return SQLAlchemyKeyValueStorage(session_factory=SessionLocal)
    return InMemoryKeyValueStorage()


class CompetitorScrapingService:
    """
    Composition root: one fetcher, sitemap reader, extractor and scheduler
    sharing one persisted state store.
    """

    def __init__(
        self,
        *,
        settings: CompetitorScrapingSettings | None = None,
        storage: KeyValueStorage | None = None,
        fetcher: HttpFetcher | None = None,
        extractor: ContentExtractor | None = None,
        scheduler: SitemapUpdateScheduler | None = None,
    ) -> None:
        self._settings = settings or get_competitor_scraping_settings()
        self._repository = CompetitorStateRepository(storage or build_state_storage(self._settings))
        self.fetcher = fetcher or HttpFetcher(config=self._settings.fetch_config())
        self.sitemap_reader = SitemapReader(
            fetcher=self.fetcher,
            max_depth=self._settings.sitemap_max_depth,
        )
        self.extractor = extractor or ContentExtractor()
        self.scheduler = scheduler or SitemapUpdateScheduler(
            repository=self._repository,
            sitemap_reader=self.sitemap_reader,
            website_source=self.get_websites,
            default_config=self._settings.default_task_config(),
        )

    @property
    def repository(self) -> CompetitorStateRepository:
        return self._repository

    # ---- website registry ----

    def get_websites(self) -> list[WebsiteConfig]:
        """
        Return persisted websites, seeding them from the JSON registry on
        first use.
        """

        stored = self._repository.load_websites()
        if stored is not None:
            return stored

        websites = load_website_configs(config_path=self._settings.config_path)
        self._repository.save_websites(websites)
        log_event(
            logger,
            logging.INFO,
            "competitor_websites_seeded",
            count=len(websites),
            config_path=self._settings.config_path,
        )
        return websites

    def save_websites(self, websites: Sequence[WebsiteConfig]) -> None:
        self._repository.save_websites(websites)

    def get_website(self, website_id: str) -> WebsiteConfig | None:
        for website in self.get_websites():
            if website.id == website_id:
                return website
        return None

    # ---- sitemap state ----

    def get_snapshots(self) -> list[SitemapSnapshot]:
        return self._repository.load_snapshots()

    def get_discovered_urls(self, website_id: str) -> list[str]:
        snapshot = self._repository.load_snapshot(website_id)
        return list(snapshot.urls) if snapshot is not None else []

    def refresh_site(self, website_id: str) -> SitemapSnapshot:
        """
        Fetch one site's sitemap now, outside the scheduler's run tracking.
        """

        website = self.get_website(website_id)
        if website is None:
            raise ValueError(f"Unknown competitor website '{website_id}'.")
        snapshot = self.sitemap_reader.fetch_sitemap(website)
        if snapshot.succeeded:
            self._repository.save_snapshot(snapshot)
        return snapshot

    # ---- page content ----

    def fetch_and_parse(
        self,
        url: str,
        config: ParseConfig | Mapping[str, Any] | None = None,
    ) -> ParseResult:
        """
        Fetch one competitor page and extract structured game content.

        Raises ``FetchError`` when the page cannot be fetched.
        """

        response = self.fetcher.fetch(url)
        return self.extractor.parse_content(response, config)

    def close(self) -> None:
        self.scheduler.stop_scheduler()
        self.fetcher.close()
        if self._settings.state_backend == StateBackend.DATABASE:
            dispose_engine()


@lru_cache(maxsize=1)
def get_competitor_scraping_service() -> CompetitorScrapingService:
    """
    Build and cache competitor scraping service.
    """

    return CompetitorScrapingService()
