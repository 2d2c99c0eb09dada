"""
Site parser exports.
"""

from app.scraping.parsing.base import WebsiteParser, clean_text, normalize_rating, score_content
from app.scraping.parsing.coolmath import CoolMathGamesParser
from app.scraping.parsing.gamedistribution import GameDistributionParser
from app.scraping.parsing.generic import GenericHtmlParser
from app.scraping.parsing.twoplayergames import TwoPlayerGamesParser

__all__ = [
    "CoolMathGamesParser",
    "GameDistributionParser",
    "GenericHtmlParser",
    "TwoPlayerGamesParser",
    "WebsiteParser",
    "clean_text",
    "normalize_rating",
    "score_content",
]
