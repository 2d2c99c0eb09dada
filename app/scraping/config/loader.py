"""
Environment + JSON config loader for competitor scraping.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from urllib.parse import urljoin

from db.config import load_env_files

from app.domain.competitor_scraping import ScrapingOptions, WebsiteConfig
from app.scraping.config.models import CompetitorScrapingSettings, StateBackend

DEFAULT_CONFIG_PATH = "app/scraping/config/competitors.json"


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _project_root() -> Path:
    return Path(__file__).resolve().parents[3]


def _resolve_config_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


@lru_cache(maxsize=1)
def get_competitor_scraping_settings() -> CompetitorScrapingSettings:
    """
    Return cached scraper settings from environment variables.
    """

    load_env_files()
    config_path = _get_str_env("COMPETITOR_SCRAPE_CONFIG_PATH", DEFAULT_CONFIG_PATH)
    state_backend = _get_str_env("SCRAPER_STATE_BACKEND", StateBackend.MEMORY).lower()
    if state_backend not in {StateBackend.MEMORY, StateBackend.DATABASE}:
        state_backend = StateBackend.MEMORY

    return CompetitorScrapingSettings(
        config_path=str(_resolve_config_path(config_path)),
        fetch_timeout_seconds=max(1.0, _get_float_env("COMPETITOR_FETCH_TIMEOUT_SECONDS", 30.0)),
        fetch_retries=max(0, _get_int_env("COMPETITOR_FETCH_RETRIES", 3)),
        fetch_retry_delay_seconds=max(
            0.0,
            _get_float_env("COMPETITOR_FETCH_RETRY_DELAY_SECONDS", 1.0),
        ),
        fetch_concurrency=max(1, _get_int_env("COMPETITOR_FETCH_CONCURRENCY", 5)),
        request_interval_seconds=max(
            0.0,
            _get_float_env("COMPETITOR_FETCH_REQUEST_INTERVAL_SECONDS", 0.0),
        ),
        enable_cache=_get_bool_env("COMPETITOR_FETCH_ENABLE_CACHE", True),
        cache_ttl_seconds=max(1.0, _get_float_env("COMPETITOR_FETCH_CACHE_TTL_SECONDS", 3600.0)),
        cache_max_entries=max(1, _get_int_env("COMPETITOR_FETCH_CACHE_MAX_ENTRIES", 500)),
        rotate_user_agent=_get_bool_env("COMPETITOR_FETCH_ROTATE_USER_AGENT", True),
        sitemap_max_depth=max(1, _get_int_env("SITEMAP_MAX_DEPTH", 5)),
        update_interval_hours=max(
            0.01,
            _get_float_env("SITEMAP_UPDATE_INTERVAL_HOURS", 24.0),
        ),
        auto_update=_get_bool_env("SITEMAP_AUTO_UPDATE", False),
        max_concurrent_sites=max(1, _get_int_env("SITEMAP_MAX_CONCURRENT", 3)),
        max_site_retries=max(0, _get_int_env("SITEMAP_MAX_RETRIES", 2)),
        only_enabled_sites=_get_bool_env("SITEMAP_ONLY_ENABLED_SITES", True),
        state_backend=state_backend,
    )


def load_website_configs(*, config_path: str) -> list[WebsiteConfig]:
    """
    Load tracked competitor websites from a JSON file.

    Entries missing an id, name or base_url are skipped. Relative sitemap
    URLs are resolved against the site's base URL.
    """

    path = _resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Competitor config file not found: {path}")

    raw_data = json.loads(path.read_text(encoding="utf-8"))
    competitors = raw_data.get("competitors", [])
    if not isinstance(competitors, list):
        raise ValueError("Invalid competitor config: 'competitors' must be a list.")

    parsed: list[WebsiteConfig] = []
    seen_ids: set[str] = set()
    for entry in competitors:
        if not isinstance(entry, dict):
            continue

        website_id = str(entry.get("id", "")).strip()
        name = str(entry.get("name", "")).strip()
        base_url = str(entry.get("base_url", "")).strip()
        if not website_id or not name or not base_url or website_id in seen_ids:
            continue
        seen_ids.add(website_id)

        parsed.append(
            WebsiteConfig(
                id=website_id,
                name=name,
                base_url=base_url.rstrip("/"),
                sitemap_url=_resolve_sitemap_url(
                    base_url=base_url,
                    sitemap_url=_optional_str(entry.get("sitemap_url")) or "/sitemap.xml",
                ),
                enabled=_optional_bool(entry.get("enabled"), True),
                scraping=_parse_scraping_options(entry.get("scraping")),
            )
        )

    return parsed


def _resolve_sitemap_url(*, base_url: str, sitemap_url: str) -> str:
    if sitemap_url.startswith(("http://", "https://")):
        return sitemap_url
    return urljoin(f"{base_url.rstrip('/')}/", sitemap_url.lstrip("/"))


def _parse_scraping_options(raw: object) -> ScrapingOptions:
    if not isinstance(raw, dict):
        return ScrapingOptions()
    return ScrapingOptions(
        url_pattern=_optional_str(raw.get("url_pattern")),
        max_pages=_optional_int(raw.get("max_pages")),
        request_delay_ms=_optional_int(raw.get("request_delay_ms")),
    )


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None


def _optional_bool(value: object, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    return default
