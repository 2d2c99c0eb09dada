"""
Typed access to persisted competitor scraper state.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from datetime import datetime, timezone

from app.domain.competitor_scraping import (
    SitemapSnapshot,
    UpdateTaskConfig,
    UpdateTaskResult,
    WebsiteConfig,
)
from app.scraping.storage.base import KeyValueStorage
from db.models.scraper_state import ScraperStateKey

HISTORY_LIMIT = 50


class CompetitorStateRepository:
    """
    Read-modify-write helpers over a ``KeyValueStorage``.

    List-valued keys (history, snapshots) are updated under one lock so
    concurrent site updates never drop each other's writes.
    """

    def __init__(self, storage: KeyValueStorage, *, history_limit: int = HISTORY_LIMIT) -> None:
        self._storage = storage
        self._history_limit = max(1, history_limit)
        self._lock = threading.RLock()

    # ---- scheduler config ----

    def load_scheduler_config(self) -> UpdateTaskConfig | None:
        raw = self._storage.get(ScraperStateKey.SCHEDULER_CONFIG)
        if not isinstance(raw, dict):
            return None
        return UpdateTaskConfig.from_dict(raw)

    def save_scheduler_config(self, config: UpdateTaskConfig) -> None:
        self._storage.set(ScraperStateKey.SCHEDULER_CONFIG, config.to_dict())

    # ---- run history ----

    def load_task_history(self, limit: int | None = None) -> list[UpdateTaskResult]:
        raw = self._storage.get(ScraperStateKey.SCHEDULER_HISTORY)
        if not isinstance(raw, list):
            return []
        history = [UpdateTaskResult.from_dict(item) for item in raw if isinstance(item, dict)]
        history.sort(key=lambda item: item.start_time, reverse=True)
        if limit is not None:
            history = history[: max(0, limit)]
        return history

    def append_task_history(self, result: UpdateTaskResult) -> None:
        with self._lock:
            history = self.load_task_history()
            history = [item for item in history if item.task_id != result.task_id]
            history.append(result)
            history.sort(key=lambda item: item.start_time, reverse=True)
            kept = history[: self._history_limit]
            self._storage.set(
                ScraperStateKey.SCHEDULER_HISTORY,
                [item.to_dict() for item in kept],
            )

    def clear_task_history(self) -> None:
        self._storage.remove(ScraperStateKey.SCHEDULER_HISTORY)

    # ---- last update ----

    def load_last_update(self) -> datetime | None:
        raw = self._storage.get(ScraperStateKey.LAST_UPDATE)
        if not raw:
            return None
        parsed = datetime.fromisoformat(str(raw))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def save_last_update(self, moment: datetime) -> None:
        self._storage.set(ScraperStateKey.LAST_UPDATE, moment.isoformat())

    # ---- sitemap snapshots ----

    def load_snapshots(self) -> list[SitemapSnapshot]:
        raw = self._storage.get(ScraperStateKey.SITEMAPS)
        if not isinstance(raw, list):
            return []
        return [SitemapSnapshot.from_dict(item) for item in raw if isinstance(item, dict)]

    def load_snapshot(self, website_id: str) -> SitemapSnapshot | None:
        for snapshot in self.load_snapshots():
            if snapshot.website_id == website_id:
                return snapshot
        return None

    def save_snapshot(self, snapshot: SitemapSnapshot) -> None:
        with self._lock:
            snapshots = [item for item in self.load_snapshots() if item.website_id != snapshot.website_id]
            snapshots.append(snapshot)
            self._storage.set(
                ScraperStateKey.SITEMAPS,
                [item.to_dict() for item in snapshots],
            )

    # ---- website registry ----

    def load_websites(self) -> list[WebsiteConfig] | None:
        raw = self._storage.get(ScraperStateKey.WEBSITES)
        if not isinstance(raw, list):
            return None
        return [WebsiteConfig.from_dict(item) for item in raw if isinstance(item, dict)]

    def save_websites(self, websites: Sequence[WebsiteConfig]) -> None:
        self._storage.set(
            ScraperStateKey.WEBSITES,
            [website.to_dict() for website in websites],
        )
