"""
BeautifulSoup-based extraction strategy shared by all site parsers.

Each field is resolved through a cascade:

1. caller-supplied custom selectors, then the parser's CSS selector list
   (first node with usable text wins; ``<meta>`` nodes yield ``content``);
2. structured metadata (JSON-LD ``Game``/``VideoGame`` objects, meta tags);
3. heuristics (long paragraphs, instruction keywords, breadcrumbs,
   description keywords, site defaults).

Subclasses only declare selectors, keywords and defaults.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Iterable
from typing import Any, ClassVar
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from app.schemas.content_parsing import ParseConfig, ParsedGameContent, ParseResult
from app.scraping.logging_utils import elapsed_ms, log_event

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\u4e00-\u9fff]")

_RATING_OUT_OF_TEN = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*10(?!\d)")
_RATING_OUT_OF_FIVE = re.compile(r"(\d+(?:\.\d+)?)\s*/\s*5(?!\d)")
_RATING_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_RATING_STARS = re.compile(r"(\d+(?:\.\d+)?)\s*stars?", re.IGNORECASE)
_RATING_NUMBER = re.compile(r"(\d+(?:\.\d+)?)")

_IMAGE_ATTRIBUTES = ("src", "data-src", "data-lazy-src", "data-original")
_FILTERED_TAGS = ("script", "style", "noscript", "iframe", "svg", "template")
_JSON_LD_TYPES = {"game", "videogame"}
_BREADCRUMB_SELECTOR = '.breadcrumb, .breadcrumbs, nav[aria-label="breadcrumb"]'
_STAR_SELECTOR = ".star.filled, .star.active, .fa-star, .rating-star.filled"

_MAX_LINKS = 200
_MAX_IMAGES = 100


def clean_text(value: str, *, max_length: int | None = None) -> str:
    """
    Collapse whitespace and keep printable ASCII plus CJK ideographs.
    """

    text = _WHITESPACE.sub(" ", value)
    text = _NON_PRINTABLE.sub("", text).strip()
    if max_length is not None and len(text) > max_length:
        text = text[:max_length].rstrip()
    return text


def normalize_rating(text: str) -> float | None:
    """
    Map ``x/10``, ``x/5``, ``x%``, ``x stars`` or a bare number onto 0-10.

    Bare numbers above 10 are read as a 100-point scale.
    """

    if not text:
        return None

    value: float | None = None
    for pattern, scale in (
        (_RATING_OUT_OF_TEN, 1.0),
        (_RATING_OUT_OF_FIVE, 2.0),
        (_RATING_PERCENT, 0.1),
        (_RATING_STARS, 2.0),
    ):
        match = pattern.search(text)
        if match:
            value = float(match.group(1)) * scale
            break

    if value is None:
        match = _RATING_NUMBER.search(text)
        if match is None:
            return None
        number = float(match.group(1))
        if number <= 10:
            value = number
        elif number <= 100:
            value = number / 10
        else:
            return None

    return round(min(max(value, 0.0), 10.0), 2)


def score_content(
    *,
    title: str,
    description: str,
    instructions: str | None,
    features: list[str] | None,
    tags: list[str] | None,
    category: str | None,
    title_weights: tuple[int, int, int] = (10, 5, 5),
) -> int:
    """
    Weighted completeness score before any per-parser scaling, 0-100.
    """

    score = 0
    if title:
        if len(title) > 3:
            score += title_weights[0]
        if len(title) > 10:
            score += title_weights[1]
        if len(title) > 20:
            score += title_weights[2]
    if description:
        score += sum(10 for threshold in (20, 50, 100) if len(description) > threshold)
    if instructions:
        if len(instructions) > 10:
            score += 8
        if len(instructions) > 50:
            score += 7
    if features:
        score += min(len(features) * 2, 10)
    if tags:
        score += min(len(tags) * 2, 10)
    if category:
        score += 5
    return min(score, 100)


def _dedupe(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


class WebsiteParser:
    """
    Site-family parser. ``parse`` never raises; failures become a failed
    ``ParseResult`` with zero score and confidence.
    """

    name: ClassVar[str] = ""
    domains: ClassVar[tuple[str, ...]] = ()

    title_selectors: ClassVar[tuple[str, ...]] = ("h1",)
    title_suffix: ClassVar[re.Pattern[str] | None] = None

    description_selectors: ClassVar[tuple[str, ...]] = ('meta[name="description"]',)
    description_min_length: ClassVar[int] = 0
    paragraph_description_selector: ClassVar[str | None] = None
    paragraph_description_min_length: ClassVar[int] = 30

    instruction_selectors: ClassVar[tuple[str, ...]] = (".instructions", ".how-to-play")
    instruction_keywords: ClassVar[tuple[str, ...]] = ("how to play", "instructions", "controls")

    feature_selectors: ClassVar[tuple[str, ...]] = (".features li",)
    feature_min_length: ClassVar[int] = 0
    feature_container_selectors: ClassVar[tuple[str, ...]] = ()
    feature_split_pattern: ClassVar[re.Pattern[str] | None] = None
    inferred_features: ClassVar[tuple[tuple[tuple[str, ...], str], ...]] = ()

    tag_selectors: ClassVar[tuple[str, ...]] = (".tags a",)
    tag_length_bounds: ClassVar[tuple[int, int] | None] = None
    default_tags: ClassVar[tuple[str, ...]] = ()

    category_selectors: ClassVar[tuple[str, ...]] = (".category",)
    category_length_bounds: ClassVar[tuple[int, int] | None] = None
    default_category: ClassVar[str | None] = None

    thumbnail_selectors: ClassVar[tuple[str, ...]] = ('meta[property="og:image"]',)
    rating_selectors: ClassVar[tuple[str, ...]] = (".rating",)
    developer_selectors: ClassVar[tuple[str, ...]] = (
        ".developer",
        ".game-developer",
        '[itemprop="author"]',
    )

    title_weights: ClassVar[tuple[int, int, int]] = (10, 5, 5)
    score_factor: ClassVar[float] = 1.0
    confidence_factor: ClassVar[float] = 1.0

    def can_parse(self, url: str) -> bool:
        try:
            host = (urlparse(url).hostname or "").lower()
        except ValueError:
            return False
        if not host:
            return False
        return any(host == domain or host.endswith(f".{domain}") for domain in self.domains)

    def parse(self, html: str, url: str, config: ParseConfig | None = None) -> ParseResult:
        config = config or ParseConfig()
        started = time.monotonic()
        try:
            content = self.extract(html=html, url=url, config=config)
            raw_score = score_content(
                title=content.title,
                description=content.description,
                instructions=content.instructions,
                features=content.features,
                tags=content.tags,
                category=content.category,
                title_weights=self.title_weights,
            )
            quality_score = round(min(raw_score * self.score_factor, 100.0), 2)
            confidence = round(min(quality_score / 100.0, 1.0) * self.confidence_factor, 4)
            return ParseResult(
                success=True,
                parser_name=self.name,
                parse_time_ms=elapsed_ms(started),
                quality_score=quality_score,
                confidence=confidence,
                content=content,
            )
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                logging.WARNING,
                "content_parse_failed",
                parser=self.name,
                url=url,
                error=str(exc),
            )
            return ParseResult.failure(
                parser_name=self.name,
                error=str(exc) or exc.__class__.__name__,
                parse_time_ms=elapsed_ms(started),
            )

    def extract(self, *, html: str, url: str, config: ParseConfig) -> ParsedGameContent:
        soup = BeautifulSoup(html or "", "html.parser")
        json_ld = self._extract_json_ld(soup)
        if config.enable_html_filtering:
            for node in soup.find_all(list(_FILTERED_TAGS)):
                node.decompose()

        custom = config.custom_selectors
        title = self.extract_title(soup, json_ld, custom.get("title", []))
        description = self.extract_description(soup, json_ld, custom.get("description", []))
        instructions = self.extract_instructions(soup, custom.get("instructions", []))
        features = self.extract_features(soup, description, custom.get("features", []))
        tags = self.extract_tags(soup, json_ld, custom.get("tags", []))
        category = self.extract_category(soup, json_ld, custom.get("category", []))
        thumbnail = self.extract_thumbnail(soup, json_ld, url, custom.get("thumbnail", []))
        rating = self.extract_rating(soup, json_ld, custom.get("rating", []))
        developer = self.extract_developer(soup, json_ld, custom.get("developer", []))

        def finish(value: str | None) -> str | None:
            if value is None:
                return None
            if config.enable_text_cleaning:
                return clean_text(value, max_length=config.max_text_length)
            return value[: config.max_text_length]

        def finish_list(values: list[str] | None) -> list[str] | None:
            if not values:
                return None
            cleaned = _dedupe(finish(value) or "" for value in values)
            return cleaned or None

        return ParsedGameContent(
            title=finish(title) or "",
            description=finish(description) or "",
            instructions=finish(instructions) or None,
            features=finish_list(features),
            tags=finish_list(tags),
            category=finish(category) or None,
            thumbnail=thumbnail,
            game_url=url,
            rating=rating,
            player_count=self._json_ld_text(json_ld, "numberOfPlayers"),
            developer=finish(developer) or None,
            links=self._extract_links(soup, url) if config.extract_links else None,
            images=self._extract_images(soup, url) if config.extract_images else None,
        )

    # ---- field extraction ----

    def extract_title(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> str:
        title = self._first_text(soup, [*custom, *self.title_selectors])
        if title:
            return title
        name = self._json_ld_text(json_ld, "name")
        if name:
            return name
        page_title = soup.find("title")
        if page_title is None:
            return ""
        return self.clean_page_title(page_title.get_text(" ", strip=True))

    def clean_page_title(self, title: str) -> str:
        if self.title_suffix is not None:
            title = self.title_suffix.sub("", title)
        return title.strip()

    def extract_description(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> str:
        description = self._first_text(
            soup,
            [*custom, *self.description_selectors],
            min_length=self.description_min_length,
        )
        if description:
            return description
        from_json_ld = self._json_ld_text(json_ld, "description")
        if from_json_ld:
            return from_json_ld
        if self.paragraph_description_selector:
            paragraph = soup.select_one(self.paragraph_description_selector)
            if paragraph is not None:
                text = paragraph.get_text(" ", strip=True)
                if len(text) > self.paragraph_description_min_length:
                    return text
        return ""

    def extract_instructions(self, soup: BeautifulSoup, custom: list[str]) -> str | None:
        instructions = self._first_text(soup, [*custom, *self.instruction_selectors])
        if instructions:
            return instructions
        for paragraph in soup.find_all("p"):
            text = paragraph.get_text(" ", strip=True)
            lowered = text.lower()
            if len(text) > 20 and any(keyword in lowered for keyword in self.instruction_keywords):
                return text
        return None

    def extract_features(
        self,
        soup: BeautifulSoup,
        description: str,
        custom: list[str],
    ) -> list[str] | None:
        features = [
            text
            for text in self._all_texts(soup, [*custom, *self.feature_selectors])
            if len(text) > self.feature_min_length
        ]
        if not features and self.feature_split_pattern is not None:
            for selector in self.feature_container_selectors:
                container = soup.select_one(selector)
                if container is None:
                    continue
                parts = [
                    part.strip()
                    for part in self.feature_split_pattern.split(container.get_text("\n", strip=True))
                    if len(part.strip()) > 3
                ]
                if parts:
                    features.extend(parts)
                    break
        if not features and self.inferred_features:
            lowered = description.lower()
            features.extend(
                label
                for keywords, label in self.inferred_features
                if any(keyword in lowered for keyword in keywords)
            )
        return _dedupe(features) or None

    def extract_tags(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> list[str] | None:
        tags = [
            text
            for text in self._all_texts(soup, [*custom, *self.tag_selectors])
            if self._within(text, self.tag_length_bounds)
        ]
        if not tags:
            keywords = soup.select_one('meta[name="keywords"]')
            if keywords is not None:
                minimum = self.tag_length_bounds[0] if self.tag_length_bounds else 0
                tags.extend(
                    keyword.strip()
                    for keyword in str(keywords.get("content", "")).split(",")
                    if len(keyword.strip()) > minimum
                )
        if not tags and json_ld is not None:
            genre = json_ld.get("genre")
            if isinstance(genre, list):
                tags.extend(str(item).strip() for item in genre if str(item).strip())
            elif isinstance(genre, str) and genre.strip():
                tags.append(genre.strip())
        if not tags:
            tags.extend(self.default_tags)
        return _dedupe(tags) or None

    def extract_category(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> str | None:
        for selector in [*custom, *self.category_selectors]:
            node = soup.select_one(selector)
            if node is None:
                continue
            text = self._node_text(node)
            if text and self._within(text, self.category_length_bounds):
                return text

        breadcrumb = soup.select_one(_BREADCRUMB_SELECTOR)
        if breadcrumb is not None:
            links = breadcrumb.find_all("a")
            if len(links) > 1:
                text = links[1].get_text(" ", strip=True)
                if text:
                    return text

        genre = json_ld.get("genre") if json_ld else None
        if isinstance(genre, str) and genre.strip():
            return genre.strip()
        return self.default_category

    def extract_thumbnail(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        page_url: str,
        custom: list[str],
    ) -> str | None:
        for selector in [*custom, *self.thumbnail_selectors]:
            node = soup.select_one(selector)
            if node is None:
                continue
            source = self._image_source(node)
            if not source:
                continue
            resolved = urljoin(page_url, source)
            if self.is_valid_image_url(resolved):
                return resolved

        image = json_ld.get("image") if json_ld else None
        if isinstance(image, list):
            image = image[0] if image else None
        if isinstance(image, dict):
            image = image.get("url")
        if isinstance(image, str) and image.strip():
            return urljoin(page_url, image.strip())
        return None

    def is_valid_image_url(self, url: str) -> bool:
        return urlparse(url).scheme in {"http", "https", "data"}

    def extract_rating(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> float | None:
        for selector in [*custom, *self.rating_selectors]:
            node = soup.select_one(selector)
            if node is None:
                continue
            rating = normalize_rating(node.get("data-rating") or node.get_text(" ", strip=True))
            if rating is not None:
                return rating

        filled = soup.select(_STAR_SELECTOR)
        if filled:
            return round(min(len(filled), 5) / 5 * 10, 2)

        aggregate = json_ld.get("aggregateRating") if json_ld else None
        if isinstance(aggregate, dict) and aggregate.get("ratingValue") is not None:
            try:
                value = float(aggregate["ratingValue"])
            except (TypeError, ValueError):
                return None
            best = aggregate.get("bestRating")
            try:
                best_value = float(best) if best is not None else 10.0
            except (TypeError, ValueError):
                best_value = 10.0
            if best_value > 0:
                return round(min(max(value / best_value * 10, 0.0), 10.0), 2)
        return None

    def extract_developer(
        self,
        soup: BeautifulSoup,
        json_ld: dict[str, Any] | None,
        custom: list[str],
    ) -> str | None:
        developer = self._first_text(soup, [*custom, *self.developer_selectors])
        if developer:
            return developer
        for key in ("author", "publisher", "creator"):
            value = json_ld.get(key) if json_ld else None
            if isinstance(value, list):
                value = value[0] if value else None
            if isinstance(value, dict):
                value = value.get("name")
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    # ---- helpers ----

    def _first_text(
        self,
        soup: BeautifulSoup,
        selectors: Iterable[str],
        *,
        min_length: int = 0,
    ) -> str | None:
        for selector in selectors:
            node = soup.select_one(selector)
            if node is None:
                continue
            text = self._node_text(node)
            if text and len(text) > min_length:
                return text
        return None

    def _all_texts(self, soup: BeautifulSoup, selectors: Iterable[str]) -> list[str]:
        texts: list[str] = []
        for selector in selectors:
            for node in soup.select(selector):
                text = self._node_text(node)
                if text:
                    texts.append(text)
        return texts

    @staticmethod
    def _node_text(node: Tag) -> str:
        if node.name == "meta":
            return str(node.get("content", "")).strip()
        return node.get_text(" ", strip=True)

    @staticmethod
    def _within(text: str, bounds: tuple[int, int] | None) -> bool:
        if bounds is None:
            return True
        lower, upper = bounds
        return lower < len(text) < upper

    @staticmethod
    def _image_source(node: Tag) -> str | None:
        if node.name == "meta":
            content = str(node.get("content", "")).strip()
            return content or None
        if node.name != "img":
            node = node.find("img") or node
        for attribute in _IMAGE_ATTRIBUTES:
            value = node.get(attribute)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return None

    @staticmethod
    def _extract_json_ld(soup: BeautifulSoup) -> dict[str, Any] | None:
        for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
            try:
                data = json.loads(script.string or script.get_text() or "")
            except (json.JSONDecodeError, TypeError):
                continue
            if isinstance(data, dict):
                candidates = data.get("@graph", [data])
            elif isinstance(data, list):
                candidates = data
            else:
                continue
            for candidate in candidates:
                if not isinstance(candidate, dict):
                    continue
                raw_type = candidate.get("@type")
                types = raw_type if isinstance(raw_type, list) else [raw_type]
                if any(str(item).lower() in _JSON_LD_TYPES for item in types):
                    return candidate
        return None

    @staticmethod
    def _json_ld_text(json_ld: dict[str, Any] | None, key: str) -> str | None:
        if not json_ld:
            return None
        value = json_ld.get(key)
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @staticmethod
    def _extract_links(soup: BeautifulSoup, page_url: str) -> list[str]:
        links: list[str] = []
        for anchor in soup.find_all("a", href=True):
            resolved = urljoin(page_url, str(anchor["href"]).strip())
            if urlparse(resolved).scheme in {"http", "https"}:
                links.append(resolved.split("#", 1)[0])
        return _dedupe(links)[:_MAX_LINKS]

    @classmethod
    def _extract_images(cls, soup: BeautifulSoup, page_url: str) -> list[str]:
        images: list[str] = []
        for image in soup.find_all("img"):
            source = cls._image_source(image)
            if source:
                images.append(urljoin(page_url, source))
        return _dedupe(images)[:_MAX_IMAGES]
