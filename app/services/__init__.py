"""
app/services package marker.
"""

from app.services.competitor_scraping_service import (
    CompetitorScrapingService,
    build_state_storage,
    get_competitor_scraping_service,
)

__all__ = [
    "CompetitorScrapingService",
    "build_state_storage",
    "get_competitor_scraping_service",
]
