"""
Parser for twoplayergames.org / 2playergames.org pages.
"""

from __future__ import annotations

import re

from app.scraping.parsing.base import WebsiteParser


class TwoPlayerGamesParser(WebsiteParser):
    name = "TwoPlayerGames"
    domains = (
        "2playergames.org",
        "www.2playergames.org",
        "twoplayergames.org",
        "www.twoplayergames.org",
    )

    title_selectors = (
        ".game-title h1",
        ".game-title",
        ".game-name",
        "h1.title",
        ".page-title h1",
        ".content-title h1",
        "h1",
        ".title",
        "[data-game-title]",
    )
    title_suffix = re.compile(r"\s*-\s*2 Player Games.*$", re.IGNORECASE)

    description_selectors = (
        ".game-description",
        ".description",
        'meta[name="description"]',
        ".game-info",
        ".game-summary",
        ".intro-text",
        ".content-description",
        "[data-game-description]",
        ".game-about",
    )
    paragraph_description_selector = ".content p, .game-content p, p"

    instruction_selectors = (
        ".game-instructions",
        ".instructions",
        ".how-to-play",
        ".controls",
        ".game-controls",
        ".player-controls",
        ".gameplay-instructions",
        "[data-instructions]",
        ".control-info",
    )
    instruction_keywords = ("player 1", "player 2", "controls", "use arrow keys", "wasd")

    feature_selectors = (
        ".features li",
        ".game-features li",
        ".feature-list li",
        ".highlights li",
        ".specs li",
        "[data-features] li",
    )
    inferred_features = (
        (("two player", "2 player", "multiplayer"), "Two Player Game"),
        (("single player", "1 player"), "Single Player Mode"),
        (("keyboard", "arrow keys", "wasd"), "Keyboard Controls"),
        (("online", "browser"), "Browser Based"),
        (("action", "fighting"), "Action Game"),
        (("puzzle", "strategy"), "Strategy Game"),
    )

    tag_selectors = (
        ".game-tags .tag",
        ".tags a",
        ".categories a",
        ".tag-list .tag",
        ".keyword-tags a",
        "[data-tags] .tag",
        ".game-categories a",
    )
    default_tags = ("2 Player", "Multiplayer", "Browser Game")

    category_selectors = (
        ".game-category",
        ".category",
        ".breadcrumb .category",
        "[data-category]",
        ".genre",
        ".game-genre",
        ".nav-category.active",
    )
    default_category = "2 Player Games"

    thumbnail_selectors = (
        ".game-thumbnail img",
        ".game-image img",
        ".game-screenshot img",
        'meta[property="og:image"]',
        'meta[name="twitter:image"]',
        ".preview-image img",
        ".game-preview img",
        "[data-game-image] img",
        ".game-icon img",
    )

    rating_selectors = (
        ".rating",
        ".score",
        ".game-rating",
        ".game-score",
        "[data-rating]",
        ".stars",
        ".user-rating",
    )
