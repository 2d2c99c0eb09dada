"""
tests/test_storage.py

Pytest unit tests for the key/value stores and CompetitorStateRepository.

The SQLAlchemy store runs against an in-memory SQLite engine; no
PostgreSQL server is required.

Coverage
--------
- In-memory store copies values in and out
- SQLAlchemy store insert / update / remove round trip
- Run history: newest first, capped, one entry per task id
- Snapshots: one per website, replaced on save
- Last update timestamps keep their timezone
- Missing keys and malformed payloads degrade to empty results
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.domain.competitor_scraping import (
    ScrapingOptions,
    ScrapingStatus,
    SitemapSnapshot,
    UpdateTaskConfig,
    UpdateTaskResult,
    UpdateTaskStatus,
    WebsiteConfig,
)
from app.repositories.competitor_state_repository import CompetitorStateRepository
from app.scraping.storage import InMemoryKeyValueStorage, SQLAlchemyKeyValueStorage
from db.base import Base
from db.models.scraper_state import ScraperStateEntry, ScraperStateKey

START = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


def task(task_id: str, minutes: int, status: str = UpdateTaskStatus.COMPLETED) -> UpdateTaskResult:
    result = UpdateTaskResult(task_id=task_id, start_time=START + timedelta(minutes=minutes))
    result.finish(status=status, end_time=result.start_time + timedelta(seconds=30))
    return result


def snapshot(website_id: str, urls: list[str]) -> SitemapSnapshot:
    return SitemapSnapshot(
        website_id=website_id,
        website_name=website_id.title(),
        sitemap_url=f"https://{website_id}.example.com/sitemap.xml",
        urls=tuple(urls),
        last_fetched=START,
        status=ScrapingStatus.SUCCESS,
        fetch_duration_ms=12,
        total_urls=len(urls),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sql_storage() -> Iterator[SQLAlchemyKeyValueStorage]:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine, tables=[ScraperStateEntry.__table__])
    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    yield SQLAlchemyKeyValueStorage(session_factory=session_factory)
    engine.dispose()


@pytest.fixture()
def repository() -> CompetitorStateRepository:
    return CompetitorStateRepository(InMemoryKeyValueStorage())


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class TestInMemoryKeyValueStorage:
    def test_values_are_copied(self) -> None:
        storage = InMemoryKeyValueStorage()
        payload = {"urls": ["a"]}
        storage.set("k", payload)

        payload["urls"].append("b")
        loaded = storage.get("k")
        loaded["urls"].append("c")

        assert storage.get("k") == {"urls": ["a"]}

    def test_missing_and_remove(self) -> None:
        storage = InMemoryKeyValueStorage({"k": 1})
        assert storage.keys() == ["k"]
        storage.remove("k")
        storage.remove("k")
        assert storage.get("k") is None


class TestSQLAlchemyKeyValueStorage:
    def test_insert_update_remove(self, sql_storage: SQLAlchemyKeyValueStorage) -> None:
        assert sql_storage.get("sitemap_last_update") is None

        sql_storage.set("sitemap_scheduler_config", {"interval_hours": 24})
        sql_storage.set("sitemap_scheduler_config", {"interval_hours": 6, "auto_update": True})

        assert sql_storage.get("sitemap_scheduler_config") == {"interval_hours": 6, "auto_update": True}

        sql_storage.remove("sitemap_scheduler_config")
        sql_storage.remove("sitemap_scheduler_config")
        assert sql_storage.get("sitemap_scheduler_config") is None

    def test_repository_over_sql_store(self, sql_storage: SQLAlchemyKeyValueStorage) -> None:
        repository = CompetitorStateRepository(sql_storage)
        repository.save_snapshot(snapshot("alpha", ["https://alpha.example.com/games/1"]))
        repository.append_task_history(task("task_1", 0))
        repository.save_last_update(START)

        assert repository.load_snapshot("alpha").urls == ("https://alpha.example.com/games/1",)
        assert [item.task_id for item in repository.load_task_history()] == ["task_1"]
        assert repository.load_last_update() == START


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class TestTaskHistory:
    def test_newest_first_and_capped(self) -> None:
        repository = CompetitorStateRepository(InMemoryKeyValueStorage(), history_limit=3)
        for index in (2, 0, 4, 1, 3):
            repository.append_task_history(task(f"task_{index}", index))

        history = repository.load_task_history()

        assert [item.task_id for item in history] == ["task_4", "task_3", "task_2"]
        assert [item.task_id for item in repository.load_task_history(limit=1)] == ["task_4"]

    def test_same_task_id_is_replaced(self, repository: CompetitorStateRepository) -> None:
        repository.append_task_history(task("task_1", 0, UpdateTaskStatus.RUNNING))
        repository.append_task_history(task("task_1", 0, UpdateTaskStatus.CANCELLED))

        history = repository.load_task_history()
        assert len(history) == 1
        assert history[0].status == UpdateTaskStatus.CANCELLED

    def test_clear(self, repository: CompetitorStateRepository) -> None:
        repository.append_task_history(task("task_1", 0))
        repository.clear_task_history()
        assert repository.load_task_history() == []

    def test_malformed_payload_is_ignored(self) -> None:
        storage = InMemoryKeyValueStorage({ScraperStateKey.SCHEDULER_HISTORY: "not a list"})
        assert CompetitorStateRepository(storage).load_task_history() == []


class TestSnapshots:
    def test_one_snapshot_per_website(self, repository: CompetitorStateRepository) -> None:
        repository.save_snapshot(snapshot("alpha", ["a"]))
        repository.save_snapshot(snapshot("beta", ["b"]))
        repository.save_snapshot(snapshot("alpha", ["a", "a2"]))

        snapshots = {item.website_id: item for item in repository.load_snapshots()}

        assert set(snapshots) == {"alpha", "beta"}
        assert snapshots["alpha"].urls == ("a", "a2")
        assert snapshots["alpha"].last_fetched == START
        assert repository.load_snapshot("gamma") is None


class TestSchedulerState:
    def test_config_round_trip(self, repository: CompetitorStateRepository) -> None:
        assert repository.load_scheduler_config() is None

        config = UpdateTaskConfig(interval_hours=6, auto_update=True, max_concurrent=2)
        repository.save_scheduler_config(config)

        assert repository.load_scheduler_config() == config

    def test_last_update_keeps_timezone(self, repository: CompetitorStateRepository) -> None:
        assert repository.load_last_update() is None

        moment = datetime(2026, 10, 19, 10, 30, tzinfo=timezone(timedelta(hours=2)))
        repository.save_last_update(moment)

        loaded = repository.load_last_update()
        assert loaded == moment
        assert loaded.utcoffset() == timedelta(hours=2)

    def test_naive_timestamp_is_read_as_utc(self) -> None:
        storage = InMemoryKeyValueStorage({ScraperStateKey.LAST_UPDATE: "2026-10-19T08:00:00"})
        assert CompetitorStateRepository(storage).load_last_update() == START


class TestWebsites:
    def test_none_until_seeded(self, repository: CompetitorStateRepository) -> None:
        assert repository.load_websites() is None

        websites = [
            WebsiteConfig(
                id="alpha",
                name="Alpha",
                base_url="https://alpha.example.com",
                sitemap_url="https://alpha.example.com/sitemap.xml",
                scraping=ScrapingOptions(url_pattern="/games/", max_pages=10),
            ),
            WebsiteConfig(
                id="beta",
                name="Beta",
                base_url="https://beta.example.com",
                sitemap_url="https://beta.example.com/sitemap.xml",
                enabled=False,
            ),
        ]
        repository.save_websites(websites)

        assert repository.load_websites() == websites

    def test_empty_list_is_distinct_from_missing(self, repository: CompetitorStateRepository) -> None:
        repository.save_websites([])
        assert repository.load_websites() == []
