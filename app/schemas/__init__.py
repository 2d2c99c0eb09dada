"""
app/schemas package marker.
"""

from app.schemas.content_parsing import ParseConfig, ParsedGameContent, ParseResult

__all__ = [
    "ParseConfig",
    "ParsedGameContent",
    "ParseResult",
]
