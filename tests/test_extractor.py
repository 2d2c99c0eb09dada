"""
tests/test_extractor.py

Pytest unit tests for ContentExtractor and ParserRegistry.

Coverage
--------
- Dispatch on the response's final URL
- Running statistics (success rate, averages, parser usage)
- Parser registration: instances, replacement by name, import paths
- Dry-run parsing leaves statistics untouched
- Default and per-call config merging
- Batch parsing keeps input order
"""

from __future__ import annotations

import pytest

from app.schemas.content_parsing import ParseConfig, ParsedGameContent
from app.scraping.extractor import ContentExtractor
from app.scraping.parsing import CoolMathGamesParser, WebsiteParser
from app.scraping.registry import ParserRegistry
from app.scraping.types import FetchResponse

TITLE_ONLY_PAGE = "<html><body><h1>Some Fun Game Title</h1></body></html>"


class ArcadeHubParser(WebsiteParser):
    name = "ArcadeHub"
    domains = ("arcadehub.example",)
    title_selectors = (".hub-title", "h1")


class BrokenParser(WebsiteParser):
    name = "Broken"
    domains = ("broken.example",)

    def extract(self, *, html: str, url: str, config: ParseConfig) -> ParsedGameContent:
        raise RuntimeError("layout changed")


class NotAParser:
    name = "Nope"


def response(url: str, html: str = TITLE_ONLY_PAGE, *, final_url: str | None = None) -> FetchResponse:
    return FetchResponse(
        status=200,
        status_text="OK",
        headers={"content-type": "text/html"},
        content=html,
        final_url=final_url or url,
    )


@pytest.fixture()
def extractor() -> ContentExtractor:
    return ContentExtractor()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_uses_final_url_after_redirects(self, extractor: ContentExtractor) -> None:
        result = extractor.parse_content(
            response("https://short.link/abc", final_url="https://www.coolmathgames.com/0-run-3")
        )
        assert result.parser_name == "CoolMathGames"
        assert result.content is not None
        assert result.content.game_url == "https://www.coolmathgames.com/0-run-3"

    def test_unknown_host_uses_generic(self, extractor: ContentExtractor) -> None:
        assert extractor.find_parser("https://example.com/game").name == "Generic"

    def test_supported_websites_lists_fallback_last(self, extractor: ContentExtractor) -> None:
        supported = extractor.get_supported_websites()

        assert [item["name"] for item in supported] == [
            "CoolMathGames",
            "GameDistribution",
            "TwoPlayerGames",
            "Generic",
        ]
        assert supported[-1]["domains"] == ["*"]
        assert "coolmathgames.com" in supported[0]["domains"]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


class TestStats:
    def test_counts_successes_failures_and_usage(self, extractor: ContentExtractor) -> None:
        extractor.register_parser(BrokenParser())

        ok = extractor.parse_content(response("https://www.coolmathgames.com/0-x"))
        failed = extractor.parse_content(response("https://broken.example/game"))
        stats = extractor.get_stats()

        assert ok.success is True
        assert failed.success is False
        assert failed.error == "layout changed"
        assert stats.total_parses == 2
        assert stats.successful_parses == 1
        assert stats.failed_parses == 1
        assert stats.success_rate == pytest.approx(0.5)
        assert stats.average_quality_score == pytest.approx(15.0)
        assert stats.parser_usage == {"CoolMathGames": 1, "Broken": 1}

    def test_empty_stats(self, extractor: ContentExtractor) -> None:
        stats = extractor.get_stats()
        assert stats.total_parses == 0
        assert stats.success_rate == 0.0
        assert stats.average_parse_time_ms == 0.0

    def test_reset(self, extractor: ContentExtractor) -> None:
        extractor.parse_html(TITLE_ONLY_PAGE, "https://example.com/g")
        extractor.reset_stats()
        assert extractor.get_stats().total_parses == 0

    def test_dry_run_does_not_count(self, extractor: ContentExtractor) -> None:
        result = extractor.test_parser("https://example.com/g", TITLE_ONLY_PAGE, parser_name="CoolMathGames")

        assert result.parser_name == "CoolMathGames"
        assert extractor.get_stats().total_parses == 0

    def test_dry_run_with_unknown_parser(self, extractor: ContentExtractor) -> None:
        with pytest.raises(ValueError, match="Unknown parser"):
            extractor.test_parser("https://example.com/g", TITLE_ONLY_PAGE, parser_name="Missing")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    def test_register_instance_appends(self, extractor: ContentExtractor) -> None:
        extractor.register_parser(ArcadeHubParser())
        assert extractor.find_parser("https://arcadehub.example/g/1").name == "ArcadeHub"

    def test_register_import_path(self, extractor: ContentExtractor) -> None:
        registered = extractor.register_parser(f"{__name__}:ArcadeHubParser")

        assert isinstance(registered, ArcadeHubParser)
        result = extractor.parse_html(
            "<div class='hub-title'>Hub Racer</div>",
            "https://arcadehub.example/g/2",
        )
        assert result.content is not None
        assert result.content.title == "Hub Racer"

    def test_same_name_replaces_in_place(self) -> None:
        class PatchedCoolMath(CoolMathGamesParser):
            title_selectors = (".patched",)

        registry = ParserRegistry()
        registry.register(PatchedCoolMath())

        assert [parser.name for parser in registry.parsers] == [
            "CoolMathGames",
            "GameDistribution",
            "TwoPlayerGames",
        ]
        assert isinstance(registry.resolve("https://www.coolmathgames.com/0-x"), PatchedCoolMath)

    @pytest.mark.parametrize(
        "path",
        [
            "no_colon_here",
            f"{__name__}:DoesNotExist",
            f"{__name__}:NotAParser",
        ],
    )
    def test_bad_import_paths(self, extractor: ContentExtractor, path: str) -> None:
        with pytest.raises(ValueError):
            extractor.register_parser(path)

    def test_nameless_parser_is_rejected(self, extractor: ContentExtractor) -> None:
        class Nameless(WebsiteParser):
            pass

        with pytest.raises(ValueError, match="must declare a name"):
            extractor.register_parser(Nameless())

    def test_unregister(self) -> None:
        registry = ParserRegistry()
        assert registry.unregister("GameDistribution") is True
        assert registry.unregister("GameDistribution") is False
        assert registry.resolve("https://gamedistribution.com/games/x").name == "Generic"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConfig:
    def test_update_config_changes_default(self, extractor: ContentExtractor) -> None:
        updated = extractor.update_config(max_text_length=4)

        assert updated.max_text_length == 4
        result = extractor.parse_html(TITLE_ONLY_PAGE, "https://example.com/g")
        assert result.content is not None
        assert result.content.title == "Some"

    def test_per_call_mapping_merges_over_default(self, extractor: ContentExtractor) -> None:
        extractor.update_config(extract_links=True)
        result = extractor.parse_html(
            "<h1>Title here</h1><a href='/next'>next</a>",
            "https://example.com/g",
            {"extract_images": True},
        )
        assert result.content is not None
        assert result.content.links == ["https://example.com/next"]
        assert result.content.images == []

    def test_invalid_override_is_rejected(self, extractor: ContentExtractor) -> None:
        with pytest.raises(ValueError):
            extractor.update_config(max_text_length=0)


class TestBatch:
    def test_keeps_order(self, extractor: ContentExtractor) -> None:
        results = extractor.batch_parse_content(
            [
                response("https://gamedistribution.com/games/a"),
                response("https://www.coolmathgames.com/0-b"),
                response("https://example.com/c"),
            ]
        )
        assert [result.parser_name for result in results] == [
            "GameDistribution",
            "CoolMathGames",
            "Generic",
        ]
        assert extractor.get_stats().total_parses == 3
