"""
Site parser registry supporting built-ins and dynamic import paths.
"""

from __future__ import annotations

import importlib
import threading
from collections.abc import Sequence

from app.scraping.parsing import (
    CoolMathGamesParser,
    GameDistributionParser,
    GenericHtmlParser,
    TwoPlayerGamesParser,
    WebsiteParser,
)


def default_parsers() -> list[WebsiteParser]:
    return [CoolMathGamesParser(), GameDistributionParser(), TwoPlayerGamesParser()]


class ParserRegistry:
    """
    Ordered site parsers plus the generic fallback.

    Resolution returns the first registered parser whose ``can_parse``
    accepts the URL; registration order decides ties.
    """

    def __init__(
        self,
        parsers: Sequence[WebsiteParser] | None = None,
        *,
        fallback: WebsiteParser | None = None,
    ) -> None:
        self._parsers = list(parsers) if parsers is not None else default_parsers()
        self._fallback = fallback or GenericHtmlParser()
        self._lock = threading.Lock()

    @property
    def parsers(self) -> tuple[WebsiteParser, ...]:
        with self._lock:
            return tuple(self._parsers)

    @property
    def fallback(self) -> WebsiteParser:
        return self._fallback

    def register(self, parser: WebsiteParser | str) -> WebsiteParser:
        """
        Add a parser instance or a ``module.path:ClassName`` import path.
        A parser with the same name is replaced in place.
        """

        if isinstance(parser, str):
            parser = self._load_dynamic_class(parser)()
        if not parser.name:
            raise ValueError(f"Parser {parser.__class__.__name__} must declare a name.")

        with self._lock:
            if parser.name == self._fallback.name:
                self._fallback = parser
                return parser
            for index, existing in enumerate(self._parsers):
                if existing.name == parser.name:
                    self._parsers[index] = parser
                    return parser
            self._parsers.append(parser)
        return parser

    def unregister(self, name: str) -> bool:
        with self._lock:
            for index, existing in enumerate(self._parsers):
                if existing.name == name:
                    del self._parsers[index]
                    return True
        return False

    def get(self, name: str) -> WebsiteParser | None:
        if name == self._fallback.name:
            return self._fallback
        for parser in self.parsers:
            if parser.name == name:
                return parser
        return None

    def resolve(self, url: str) -> WebsiteParser:
        for parser in self.parsers:
            if parser.can_parse(url):
                return parser
        return self._fallback

    @staticmethod
    def _load_dynamic_class(path: str) -> type[WebsiteParser]:
        if ":" not in path:
            raise ValueError(f"Invalid parser class '{path}'. Use 'module.path:ClassName'.")

        module_path, class_name = path.split(":", 1)
        module = importlib.import_module(module_path)
        loaded = getattr(module, class_name, None)
        if loaded is None:
            raise ValueError(f"Unable to resolve parser class '{path}'.")
        if not isinstance(loaded, type) or not issubclass(loaded, WebsiteParser):
            raise ValueError(f"Class '{path}' must inherit from WebsiteParser.")
        return loaded
