"""
db/models/scraper_state.py

Key/value state rows for the competitor sitemap scheduler.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONValue, TimestampMixin


class ScraperStateKey:
    SCHEDULER_CONFIG = "sitemap_scheduler_config"
    SCHEDULER_HISTORY = "sitemap_scheduler_history"
    LAST_UPDATE = "sitemap_last_update"
    SITEMAPS = "competitor_sitemaps"
    WEBSITES = "competitor_websites"


class ScraperStateEntry(Base, TimestampMixin):
    __tablename__ = "scraper_state"

    key: Mapped[str] = mapped_column(
        String(128),
        primary_key=True,
        comment="sitemap_scheduler_config, sitemap_scheduler_history, competitor_sitemaps, ...",
    )
    value: Mapped[Any] = mapped_column(
        JSONValue,
        nullable=True,
    )
