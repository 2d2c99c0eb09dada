"""
Scraping configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.domain.competitor_scraping import UpdateTaskConfig
from app.scraping.types import FetchConfig


class StateBackend:
    MEMORY = "memory"
    DATABASE = "database"


@dataclass(frozen=True)
class CompetitorScrapingSettings:
    """
    Runtime settings for competitor sitemap discovery and page fetching.
    """

    config_path: str
    fetch_timeout_seconds: float
    fetch_retries: int
    fetch_retry_delay_seconds: float
    fetch_concurrency: int
    request_interval_seconds: float
    enable_cache: bool
    cache_ttl_seconds: float
    cache_max_entries: int
    rotate_user_agent: bool
    sitemap_max_depth: int
    update_interval_hours: float
    auto_update: bool
    max_concurrent_sites: int
    max_site_retries: int
    only_enabled_sites: bool
    state_backend: str = StateBackend.MEMORY

    def fetch_config(self) -> FetchConfig:
        return FetchConfig(
            timeout_seconds=self.fetch_timeout_seconds,
            retries=self.fetch_retries,
            retry_delay_seconds=self.fetch_retry_delay_seconds,
            request_interval_seconds=self.request_interval_seconds,
            concurrency=self.fetch_concurrency,
            enable_cache=self.enable_cache,
            cache_ttl_seconds=self.cache_ttl_seconds,
            cache_max_entries=self.cache_max_entries,
            rotate_user_agent=self.rotate_user_agent,
        )

    def default_task_config(self) -> UpdateTaskConfig:
        return UpdateTaskConfig(
            interval_hours=self.update_interval_hours,
            auto_update=self.auto_update,
            max_concurrent=self.max_concurrent_sites,
            max_retries=self.max_site_retries,
            only_enabled_sites=self.only_enabled_sites,
        )
