"""
Config helpers for competitor scraping.
"""

from app.scraping.config.loader import get_competitor_scraping_settings, load_website_configs
from app.scraping.config.models import CompetitorScrapingSettings, StateBackend

__all__ = [
    "CompetitorScrapingSettings",
    "StateBackend",
    "get_competitor_scraping_settings",
    "load_website_configs",
]
