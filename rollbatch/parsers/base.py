"""
Text parser interface and first-success composition.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Sequence

from ..logger import get_logger

logger = get_logger(__name__)


class TextParser(ABC):
    """Turns raw page OCR text into raw record dicts."""

    name: str = "base"

    def accepts(self, text: str) -> bool:
        """Whether the text carries enough signal for this parser to run."""
        return True

    @abstractmethod
    def parse(self, text: str) -> List[dict[str, Any]]:
        """
        Parse page text.

        Args:
            text: Raw OCR text of one page

        Returns:
            Raw record dicts (possibly empty)
        """
        pass


class ParserChain(TextParser):
    """
    Runs parsers in order and returns the first non-empty result.

    A parser whose ``accepts`` rejects the text is skipped.
    """

    name = "chain"

    def __init__(self, parsers: Sequence[TextParser]):
        self.parsers = list(parsers)

    def parse(self, text: str) -> List[dict[str, Any]]:
        for parser in self.parsers:
            if not parser.accepts(text):
                continue
            records = parser.parse(text)
            if records:
                logger.debug(f"{parser.name} parser produced {len(records)} records")
                return records
        return []
