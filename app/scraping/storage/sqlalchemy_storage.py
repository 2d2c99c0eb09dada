"""
SQLAlchemy-backed storage implementation for scraper state.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.scraping.storage.base import KeyValueStorage
from db.models.scraper_state import ScraperStateEntry


class SQLAlchemyKeyValueStorage(KeyValueStorage):
    """
    Persist state rows in ``scraper_state``. Each call runs in its own
    short-lived session so scheduler worker threads never share one.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, key: str) -> Any | None:
        with self._session_factory() as session:
            row = session.get(ScraperStateEntry, key)
            return row.value if row is not None else None

    def set(self, key: str, value: Any) -> None:
        with self._session_factory() as session:
            try:
                row = session.get(ScraperStateEntry, key)
                if row is None:
                    session.add(ScraperStateEntry(key=key, value=value))
                else:
                    row.value = value
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise

    def remove(self, key: str) -> None:
        with self._session_factory() as session:
            try:
                row = session.get(ScraperStateEntry, key)
                if row is not None:
                    session.delete(row)
                    session.commit()
            except SQLAlchemyError:
                session.rollback()
                raise
