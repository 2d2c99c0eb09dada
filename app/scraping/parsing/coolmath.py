"""
Parser for coolmathgames.com game pages.
"""

from __future__ import annotations

import re

from app.scraping.parsing.base import WebsiteParser


class CoolMathGamesParser(WebsiteParser):
    name = "CoolMathGames"
    domains = ("coolmathgames.com", "www.coolmathgames.com")

    title_selectors = (
        "h1.game-title",
        ".game-header h1",
        'h1[data-testid="game-title"]',
        ".page-title h1",
        "h1",
        ".title",
        ".game-name",
        "[data-game-title]",
    )
    title_suffix = re.compile(r"\s*-\s*Cool Math Games\s*$", re.IGNORECASE)

    description_selectors = (
        ".game-description",
        ".description",
        'meta[name="description"]',
        ".game-info p",
        ".intro-text",
        ".game-summary",
        "[data-game-description]",
        ".content .description",
    )

    instruction_selectors = (
        ".game-instructions",
        ".how-to-play",
        ".controls",
        ".gameplay",
        ".instructions",
        ".game-controls",
        "[data-instructions]",
    )
    instruction_keywords = ("how to play", "instructions", "controls")

    feature_selectors = (
        ".features li",
        ".game-features li",
        ".highlights li",
        ".feature-list li",
        "[data-features] li",
    )
    feature_container_selectors = (".features", ".game-features", ".highlights")
    feature_split_pattern = re.compile(r"[.\n]")

    tag_selectors = (
        ".tags .tag",
        ".game-tags a",
        ".categories a",
        ".tag-list .tag",
        "[data-tags] .tag",
        ".keyword-tags a",
    )

    category_selectors = (
        ".category",
        ".game-category",
        ".breadcrumb .category",
        "[data-category]",
        ".nav-category.active",
        ".genre",
    )

    thumbnail_selectors = (
        ".game-thumbnail img",
        ".game-image img",
        ".screenshot img",
        'meta[property="og:image"]',
        'meta[name="twitter:image"]',
        ".preview-image img",
        "[data-game-image] img",
    )

    rating_selectors = (".rating", ".score", ".stars", ".game-rating", "[data-rating]")
