"""
Page parsers.

- StructuredParser: label blocks anchored on serial + EPIC lines
- PositionalFallbackParser: field occurrences zipped by position
- parse_page_text: the two composed, structured first
- parse_header_text: roll header fields from OCR text
- parse_page_payload: vision model JSON with malformed-output recovery
"""

from typing import Any, List

from .base import TextParser, ParserChain
from .structured import StructuredParser
from .positional import PositionalFallbackParser
from .header_text import parse_header_text
from .payload import extract_json, parse_page_payload

DEFAULT_CHAIN = ParserChain([StructuredParser(), PositionalFallbackParser()])


def parse_page_text(text: str) -> List[dict[str, Any]]:
    """Parse page OCR text with the structured parser, falling back to positional."""
    return DEFAULT_CHAIN.parse(text)


__all__ = [
    "TextParser",
    "ParserChain",
    "StructuredParser",
    "PositionalFallbackParser",
    "parse_page_text",
    "parse_header_text",
    "extract_json",
    "parse_page_payload",
]
