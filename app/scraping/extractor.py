"""
Content extractor: dispatches fetched pages to the matching site parser and
keeps running parse statistics.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from app.schemas.content_parsing import ParseConfig, ParseResult
from app.scraping.logging_utils import log_event
from app.scraping.parsing import WebsiteParser
from app.scraping.registry import ParserRegistry
from app.scraping.types import FetchResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsingStats:
    total_parses: int = 0
    successful_parses: int = 0
    failed_parses: int = 0
    average_parse_time_ms: float = 0.0
    average_quality_score: float = 0.0
    parser_usage: dict[str, int] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return self.successful_parses / self.total_parses if self.total_parses else 0.0


class ContentExtractor:
    """
    Strategy dispatch over ``ParserRegistry`` with a shared default config.
    """

    def __init__(
        self,
        *,
        registry: ParserRegistry | None = None,
        config: ParseConfig | None = None,
    ) -> None:
        self._registry = registry or ParserRegistry()
        self._config = config or ParseConfig()
        self._stats_lock = threading.Lock()
        self._reset_counters()

    @property
    def config(self) -> ParseConfig:
        return self._config

    def update_config(self, **overrides: Any) -> ParseConfig:
        self._config = self._merge(overrides)
        return self._config

    def parse_content(
        self,
        response: FetchResponse,
        config: ParseConfig | Mapping[str, Any] | None = None,
    ) -> ParseResult:
        """
        Parse one fetched page using the parser registered for its final URL.
        """

        return self.parse_html(response.content, response.final_url, config)

    def parse_html(
        self,
        html: str,
        url: str,
        config: ParseConfig | Mapping[str, Any] | None = None,
    ) -> ParseResult:
        parser = self.find_parser(url)
        result = parser.parse(html, url, self._resolve_config(config))
        self._record(result)
        log_event(
            logger,
            logging.INFO if result.success else logging.WARNING,
            "content_parsed",
            url=url,
            parser=result.parser_name,
            success=result.success,
            quality_score=result.quality_score,
            parse_time_ms=result.parse_time_ms,
            error=result.error,
        )
        return result

    def batch_parse_content(
        self,
        responses: Sequence[FetchResponse],
        config: ParseConfig | Mapping[str, Any] | None = None,
    ) -> list[ParseResult]:
        resolved = self._resolve_config(config)
        return [self.parse_content(response, resolved) for response in responses]

    def find_parser(self, url: str) -> WebsiteParser:
        return self._registry.resolve(url)

    def register_parser(self, parser: WebsiteParser | str) -> WebsiteParser:
        registered = self._registry.register(parser)
        log_event(logger, logging.INFO, "parser_registered", parser=registered.name)
        return registered

    def get_supported_websites(self) -> list[dict[str, Any]]:
        supported = [
            {"name": parser.name, "domains": list(parser.domains)}
            for parser in self._registry.parsers
        ]
        supported.append({"name": self._registry.fallback.name, "domains": ["*"]})
        return supported

    def test_parser(
        self,
        url: str,
        html: str,
        *,
        parser_name: str | None = None,
        config: ParseConfig | Mapping[str, Any] | None = None,
    ) -> ParseResult:
        """
        Dry-run a parser against sample HTML without touching statistics.
        """

        parser = self._registry.get(parser_name) if parser_name else self.find_parser(url)
        if parser is None:
            raise ValueError(f"Unknown parser '{parser_name}'.")
        return parser.parse(html, url, self._resolve_config(config))

    def get_stats(self) -> ParsingStats:
        with self._stats_lock:
            total = self._total
            return ParsingStats(
                total_parses=total,
                successful_parses=self._successful,
                failed_parses=total - self._successful,
                average_parse_time_ms=self._parse_time_sum / total if total else 0.0,
                average_quality_score=(
                    self._quality_sum / self._successful if self._successful else 0.0
                ),
                parser_usage=dict(self._usage),
            )

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._reset_counters()

    def _reset_counters(self) -> None:
        self._total = 0
        self._successful = 0
        self._parse_time_sum = 0.0
        self._quality_sum = 0.0
        self._usage: dict[str, int] = {}

    def _record(self, result: ParseResult) -> None:
        with self._stats_lock:
            self._total += 1
            self._parse_time_sum += result.parse_time_ms
            self._usage[result.parser_name] = self._usage.get(result.parser_name, 0) + 1
            if result.success:
                self._successful += 1
                self._quality_sum += result.quality_score

    def _resolve_config(self, config: ParseConfig | Mapping[str, Any] | None) -> ParseConfig:
        if config is None:
            return self._config
        if isinstance(config, ParseConfig):
            return config
        return self._merge(config)

    def _merge(self, overrides: Mapping[str, Any]) -> ParseConfig:
        return ParseConfig.model_validate({**self._config.model_dump(), **overrides})
