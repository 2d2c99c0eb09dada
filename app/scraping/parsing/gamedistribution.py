"""
Parser for gamedistribution.com catalogue pages.

GameDistribution pages usually embed a JSON-LD ``VideoGame`` object, which the
base cascade consults after the CSS selectors.
"""

from __future__ import annotations

import re

from app.scraping.parsing.base import WebsiteParser


class GameDistributionParser(WebsiteParser):
    name = "GameDistribution"
    domains = ("gamedistribution.com", "www.gamedistribution.com")

    title_selectors = (
        ".game-detail-title",
        ".game-title",
        ".game-name",
        "h1.title",
        ".detail-title h1",
        "h1[data-game-title]",
        ".page-header h1",
        "h1",
        ".content-title",
    )
    title_suffix = re.compile(r"\s*-\s*GameDistribution.*$", re.IGNORECASE)

    description_selectors = (
        ".game-description",
        ".game-detail-description",
        ".description",
        'meta[name="description"]',
        ".game-info .description",
        ".content-description",
        "[data-game-description]",
        ".game-details p",
        ".detail-content .description",
    )

    instruction_selectors = (
        ".game-instructions",
        ".how-to-play",
        ".instructions",
        ".game-controls",
        ".gameplay-instructions",
        ".control-instructions",
        "[data-instructions]",
        ".game-guide",
    )
    instruction_keywords = ("how to", "control", "instructions", "play")

    feature_selectors = (
        ".features li",
        ".game-features li",
        ".feature-list li",
        ".highlights li",
        ".game-highlights li",
        "[data-features] li",
        ".specs li",
        ".specifications li",
    )
    feature_container_selectors = (".features", ".game-features", ".highlights", ".game-highlights")
    feature_split_pattern = re.compile(r"[•\n,]")

    tag_selectors = (
        ".game-tags .tag",
        ".tags a",
        ".categories a",
        ".tag-list .tag",
        ".game-categories a",
        "[data-tags] .tag",
        ".keyword-tags a",
        ".genre-tags a",
    )

    category_selectors = (
        ".game-category",
        ".category",
        ".main-category",
        ".breadcrumb .category",
        "[data-category]",
        ".genre",
        ".game-genre",
    )

    thumbnail_selectors = (
        ".game-thumbnail img",
        ".game-image img",
        ".game-screenshot img",
        'meta[property="og:image"]',
        'meta[name="twitter:image"]',
        ".preview-image img",
        ".game-preview img",
        "[data-game-image] img",
        ".detail-image img",
    )

    rating_selectors = (".rating", ".score", ".game-rating", ".game-score", "[data-rating]", ".stars")
    developer_selectors = (".developer", ".game-developer", ".publisher", '[itemprop="author"]')
