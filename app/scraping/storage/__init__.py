"""
Storage layer exports.
"""

from app.scraping.storage.base import KeyValueStorage
from app.scraping.storage.memory_storage import InMemoryKeyValueStorage
from app.scraping.storage.sqlalchemy_storage import SQLAlchemyKeyValueStorage

__all__ = ["InMemoryKeyValueStorage", "KeyValueStorage", "SQLAlchemyKeyValueStorage"]
