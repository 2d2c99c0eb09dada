"""
app/schemas/content_parsing.py

Output contracts for structured competitor page extraction.

``ParsedGameContent`` and ``ParseResult`` are the only records handed to
downstream content-generation consumers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ParseConfig(BaseModel):
    """
    Options controlling one extraction pass.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    enable_text_cleaning: bool = True
    enable_html_filtering: bool = True
    max_text_length: int = Field(default=10000, ge=1)
    extract_links: bool = False
    extract_images: bool = False
    custom_selectors: dict[str, list[str]] = Field(default_factory=dict)


class ParsedGameContent(BaseModel):
    """
    Structured game-page content extracted from competitor HTML.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str = ""
    description: str = ""
    instructions: str | None = None
    features: list[str] | None = None
    tags: list[str] | None = None
    category: str | None = None
    thumbnail: str | None = None
    game_url: str | None = None
    rating: float | None = Field(default=None, ge=0.0, le=10.0)
    player_count: str | None = None
    developer: str | None = None
    links: list[str] | None = None
    images: list[str] | None = None


class ParseResult(BaseModel):
    """
    Outcome of one (page, parser) invocation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool
    parser_name: str
    parse_time_ms: int = Field(default=0, ge=0)
    quality_score: float = Field(default=0.0, ge=0.0, le=100.0)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    content: ParsedGameContent | None = None
    error: str | None = None

    @classmethod
    def failure(cls, *, parser_name: str, error: str, parse_time_ms: int = 0) -> "ParseResult":
        return cls(
            success=False,
            parser_name=parser_name,
            parse_time_ms=parse_time_ms,
            quality_score=0.0,
            confidence=0.0,
            error=error,
        )
