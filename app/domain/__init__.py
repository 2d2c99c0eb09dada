"""
app/domain package marker.
"""

from app.domain.competitor_scraping import (
    ScrapingOptions,
    ScrapingStatus,
    SiteUpdateResult,
    SitemapSnapshot,
    UpdateTaskConfig,
    UpdateTaskResult,
    UpdateTaskStatus,
    WebsiteConfig,
)

__all__ = [
    "ScrapingOptions",
    "ScrapingStatus",
    "SiteUpdateResult",
    "SitemapSnapshot",
    "UpdateTaskConfig",
    "UpdateTaskResult",
    "UpdateTaskStatus",
    "WebsiteConfig",
]
