"""
Page extraction: one page image in, header + raw records out.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from ..config import Config
from ..exceptions import ConfigurationError, RollBatchError
from ..models import PageResult, RecognitionStats
from ..parsers import parse_header_text, parse_page_text
from ..utils.file_utils import page_number
from .base import BaseProcessor
from .recognition import Recognizer, TesseractRecognizer, VisionRecognizer


class PageExtractor(BaseProcessor):
    """
    Runs a recognizer over a page and routes its output.

    Structured output (vision model) is used as is; raw text (OCR) goes
    through the structured parser with positional fallback, and through
    the header text parser. Any recognition error empties the page
    instead of propagating.
    """

    name = "PageExtractor"

    def __init__(self, recognizer: Recognizer, config: Optional[Config] = None):
        super().__init__(config)
        self.recognizer = recognizer

    @property
    def stats(self) -> RecognitionStats:
        return self.recognizer.stats

    def extract_page(self, image_path: Path) -> PageResult:
        """
        Extract one page.

        Args:
            image_path: Rendered page image

        Returns:
            PageResult (empty on recognition failure)
        """
        number = page_number(image_path)
        try:
            recognition = self.recognizer.recognize(image_path)
        except RollBatchError as e:
            if e.scope == "job":
                raise
            self.stats.record_page(success=False)
            self.log_warning(f"Page {number} yielded no records", reason=e.message)
            return PageResult.empty(number)

        self.stats.record_page(success=True)
        if recognition.is_structured:
            return PageResult(
                page_number=number,
                header=recognition.header,
                records=recognition.records or [],
            )

        text = recognition.text or ""
        records = parse_page_text(text)
        if not records and text.strip():
            self.log_debug(f"No records parsed from page {number}", chars=len(text))
        return PageResult(
            page_number=number,
            header=parse_header_text(text),
            records=records,
        )


def build_page_extractor(config: Config) -> PageExtractor:
    """Create the page extractor for the configured strategy ("vision" or "ocr")."""
    strategy = config.pipeline.strategy
    if strategy == "vision":
        if not config.ai.api_key:
            raise ConfigurationError("AI_API_KEY not set. Please set in .env or environment variables.", "AI_API_KEY")
        return PageExtractor(VisionRecognizer(config), config)
    if strategy == "ocr":
        return PageExtractor(TesseractRecognizer(config), config)
    raise ConfigurationError(f"Unknown extraction strategy: {strategy}", "EXTRACTION_STRATEGY")
