"""
Fallback parser for sites without a dedicated strategy.

Scores are scaled by 0.9 and confidence by a further 0.8 since nothing about
the page layout is known in advance.
"""

from __future__ import annotations

from app.scraping.parsing.base import WebsiteParser

_TITLE_SEPARATORS = (" - ", " | ", " :: ")
_IMAGE_HINTS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", "image", "img", "photo", "picture")


class GenericHtmlParser(WebsiteParser):
    name = "Generic"
    domains = ()

    title_selectors = (
        "h1",
        ".title",
        ".game-title",
        ".game-name",
        ".main-title",
        ".page-title",
        ".content-title",
        ".post-title",
        ".entry-title",
        ".header h1",
        ".header .title",
    )

    description_selectors = (
        'meta[name="description"]',
        'meta[property="og:description"]',
        'meta[name="twitter:description"]',
        ".description",
        ".game-description",
        ".summary",
        ".excerpt",
        ".intro",
        ".about",
        ".content p",
        ".main p",
        "p",
    )
    description_min_length = 20

    instruction_selectors = (
        ".instructions",
        ".how-to-play",
        ".controls",
        ".game-controls",
        ".gameplay",
        ".rules",
        ".guide",
        ".tutorial",
    )
    instruction_keywords = (
        "how to play",
        "instructions",
        "controls",
        "use arrow keys",
        "wasd",
        "mouse to",
        "click to",
        "press space",
        "use keyboard",
    )

    feature_selectors = (
        ".features li",
        ".game-features li",
        ".highlights li",
        ".specs li",
        ".feature-list li",
        ".benefits li",
        ".advantages li",
    )
    feature_min_length = 2
    inferred_features = (
        (("multiplayer", "multi player"), "Multiplayer"),
        (("single player",), "Single Player"),
        (("3d", "three dimensional"), "3D Graphics"),
        (("online", "browser"), "Browser Game"),
        (("free", "no cost"), "Free to Play"),
        (("mobile", "touch"), "Mobile Friendly"),
    )

    tag_selectors = (".tags a", ".tag", ".categories a", ".category", ".labels a", ".keywords a", ".genre a")
    tag_length_bounds = (1, 30)

    category_selectors = (
        ".category",
        ".genre",
        ".type",
        ".section",
        ".breadcrumb a",
        ".nav-category",
        ".main-category",
    )
    category_length_bounds = (2, 50)

    thumbnail_selectors = (
        'meta[property="og:image"]',
        'meta[name="twitter:image"]',
        ".thumbnail img",
        ".preview img",
        ".screenshot img",
        ".game-image img",
        ".featured-image img",
        ".main-image img",
        'img[alt*="game"]',
        'img[alt*="screenshot"]',
        ".content img",
    )

    rating_selectors = (".rating", ".score", ".stars", ".review-score", ".game-rating")

    title_weights = (8, 6, 6)
    score_factor = 0.9
    confidence_factor = 0.8

    def can_parse(self, url: str) -> bool:
        return True

    def clean_page_title(self, title: str) -> str:
        for separator in _TITLE_SEPARATORS:
            if separator in title:
                return title.split(separator, 1)[0].strip()
        return title.strip()

    def is_valid_image_url(self, url: str) -> bool:
        lowered = url.lower()
        return super().is_valid_image_url(url) and any(hint in lowered for hint in _IMAGE_HINTS)
