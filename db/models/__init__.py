"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.scraper_state import ScraperStateEntry, ScraperStateKey

__all__ = [
    "ScraperStateEntry",
    "ScraperStateKey",
]
