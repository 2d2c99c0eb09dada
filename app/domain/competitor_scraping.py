"""
app/domain/competitor_scraping.py

Domain models for competitor sitemap discovery and scheduled refresh.

Records here are persisted as JSON blobs through ``KeyValueStorage``; every
type therefore exposes ``to_dict`` / ``from_dict`` with snake_case
keys and ISO-8601 timestamps.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ScrapingStatus:
    SUCCESS = "success"
    FAILED = "failed"


class UpdateTaskStatus:
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ScrapingOptions:
    """
    Per-site sitemap filtering options.
    """

    url_pattern: str | None = None
    max_pages: int | None = None
    request_delay_ms: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "url_pattern": self.url_pattern,
            "max_pages": self.max_pages,
            "request_delay_ms": self.request_delay_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "ScrapingOptions":
        data = data or {}
        max_pages = data.get("max_pages")
        request_delay = data.get("request_delay_ms")
        return cls(
            url_pattern=data.get("url_pattern") or None,
            max_pages=int(max_pages) if max_pages is not None else None,
            request_delay_ms=int(request_delay) if request_delay is not None else None,
        )


@dataclass(frozen=True)
class WebsiteConfig:
    """
    One competitor site whose sitemap is tracked.
    """

    id: str
    name: str
    base_url: str
    sitemap_url: str
    enabled: bool = True
    scraping: ScrapingOptions = field(default_factory=ScrapingOptions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "base_url": self.base_url,
            "sitemap_url": self.sitemap_url,
            "enabled": self.enabled,
            "scraping": self.scraping.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebsiteConfig":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            base_url=str(data["base_url"]),
            sitemap_url=str(data["sitemap_url"]),
            enabled=bool(data.get("enabled", True)),
            scraping=ScrapingOptions.from_dict(data.get("scraping")),
        )


@dataclass(frozen=True)
class SitemapSnapshot:
    """
    Result of one sitemap fetch for one site. Superseded, never mutated.
    """

    website_id: str
    website_name: str
    sitemap_url: str
    urls: tuple[str, ...]
    last_fetched: datetime
    status: str
    fetch_duration_ms: int
    total_urls: int
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == ScrapingStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "website_id": self.website_id,
            "website_name": self.website_name,
            "sitemap_url": self.sitemap_url,
            "urls": list(self.urls),
            "last_fetched": _format_datetime(self.last_fetched),
            "status": self.status,
            "fetch_duration_ms": self.fetch_duration_ms,
            "total_urls": self.total_urls,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SitemapSnapshot":
        urls = tuple(str(url) for url in data.get("urls", []))
        return cls(
            website_id=str(data["website_id"]),
            website_name=str(data.get("website_name", "")),
            sitemap_url=str(data.get("sitemap_url", "")),
            urls=urls,
            last_fetched=_parse_datetime(data.get("last_fetched")) or datetime.now(timezone.utc),
            status=str(data.get("status", ScrapingStatus.FAILED)),
            fetch_duration_ms=int(data.get("fetch_duration_ms", 0)),
            total_urls=int(data.get("total_urls", len(urls))),
            error_message=data.get("error_message"),
        )


@dataclass(frozen=True)
class UpdateTaskConfig:
    """
    Process-wide sitemap refresh policy.
    """

    interval_hours: float = 24
    auto_update: bool = False
    max_concurrent: int = 3
    max_retries: int = 2
    only_enabled_sites: bool = True

    def __post_init__(self) -> None:
        if self.interval_hours <= 0:
            raise ValueError("interval_hours must be positive.")
        if self.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1.")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative.")

    def merged(self, **overrides: Any) -> "UpdateTaskConfig":
        known = {key: value for key, value in overrides.items() if value is not None}
        unknown = set(known) - set(self.to_dict())
        if unknown:
            raise ValueError(f"Unknown scheduler config keys: {sorted(unknown)}")
        return replace(self, **known)

    def to_dict(self) -> dict[str, Any]:
        return {
            "interval_hours": self.interval_hours,
            "auto_update": self.auto_update,
            "max_concurrent": self.max_concurrent,
            "max_retries": self.max_retries,
            "only_enabled_sites": self.only_enabled_sites,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "UpdateTaskConfig":
        defaults = cls()
        data = data or {}
        return cls(
            interval_hours=float(data.get("interval_hours", defaults.interval_hours)),
            auto_update=bool(data.get("auto_update", defaults.auto_update)),
            max_concurrent=int(data.get("max_concurrent", defaults.max_concurrent)),
            max_retries=int(data.get("max_retries", defaults.max_retries)),
            only_enabled_sites=bool(data.get("only_enabled_sites", defaults.only_enabled_sites)),
        )


@dataclass(frozen=True)
class SiteUpdateResult:
    """
    Outcome for one site within one scheduler run.
    """

    website_id: str
    website_name: str
    status: str
    new_urls: int = 0
    updated_urls: int = 0
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "website_id": self.website_id,
            "website_name": self.website_name,
            "status": self.status,
            "new_urls": self.new_urls,
            "updated_urls": self.updated_urls,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


@dataclass
class UpdateTaskResult:
    """
    One scheduler run. Mutable only while the run is in progress.
    """

    task_id: str
    start_time: datetime
    status: str = UpdateTaskStatus.RUNNING
    end_time: datetime | None = None
    total_sites: int = 0
    success_sites: int = 0
    failed_sites: int = 0
    new_urls: int = 0
    updated_urls: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    def finish(self, *, status: str, end_time: datetime) -> None:
        self.status = status
        self.end_time = end_time
        self.duration_ms = max(0, int((end_time - self.start_time).total_seconds() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "start_time": _format_datetime(self.start_time),
            "end_time": _format_datetime(self.end_time),
            "status": self.status,
            "total_sites": self.total_sites,
            "success_sites": self.success_sites,
            "failed_sites": self.failed_sites,
            "new_urls": self.new_urls,
            "updated_urls": self.updated_urls,
            "errors": list(self.errors),
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UpdateTaskResult":
        return cls(
            task_id=str(data["task_id"]),
            start_time=_parse_datetime(data.get("start_time")) or datetime.now(timezone.utc),
            end_time=_parse_datetime(data.get("end_time")),
            status=str(data.get("status", UpdateTaskStatus.IDLE)),
            total_sites=int(data.get("total_sites", 0)),
            success_sites=int(data.get("success_sites", 0)),
            failed_sites=int(data.get("failed_sites", 0)),
            new_urls=int(data.get("new_urls", 0)),
            updated_urls=int(data.get("updated_urls", 0)),
            errors=[str(item) for item in data.get("errors", [])],
            duration_ms=int(data.get("duration_ms", 0)),
        )
