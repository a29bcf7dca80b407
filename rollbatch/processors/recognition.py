"""
Page recognizers: turn one page image into text or structured data.

- VisionRecognizer: vision LLM (Groq or any OpenAI-compatible endpoint)
  returning header + voters as JSON, with retry and backoff
- TesseractRecognizer: local OCR returning raw text for the text parsers
"""

from __future__ import annotations

import base64
import random
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import groq
import openai
import pytesseract
from groq import Groq
from openai import OpenAI
from PIL import Image

from ..config import Config
from ..exceptions import ConfigurationError, OCRError, RecognitionError, TesseractNotFoundError
from ..models import HeaderInfo, RecognitionStats
from ..parsers import parse_page_payload
from ..utils.image_utils import load_image, preprocess_for_ocr
from .base import BaseProcessor


EXTRACTION_PROMPT = """You are extracting voter data from an Indian electoral roll page. Extract ALL voter entries visible on this page.

For EACH voter, extract:
- serial: Serial number (integer)
- epic: EPIC/voter ID number (like ABC1234567 or UP/xx/xxx/xxxxx)
- name: Voter's name exactly as written
- relationType: "Father" or "Husband" or "Mother" or "Other" (पिता/पति/माता/अन्य)
- relationName: Father/Husband/Mother name exactly as written
- house: House number (मकान संख्या)
- age: Age (integer, 18-120)
- gender: "M" for पुरुष/Male, "F" for महिला/Female, "O" for अन्य/Third gender

Also extract header/location info if visible on this page (the first page usually has it):
- acNoName: Assembly constituency number and name (विधानसभा निर्वाचन क्षेत्र)
- partNumber: Part number (भाग संख्या)
- sectionNumber: Section number
- sectionName: Section name
- psName: Polling station name (मतदान स्थल)
- gram: Village/town (ग्राम/कस्बा)
- thana: Police station (थाना)
- panchayat: Panchayat name
- block: Block name (ब्लॉक)
- tahsil: Tahsil name (तहसील)
- jilla: District name (जिला)
- pincode: PIN code

Return ONLY valid JSON (no markdown, no backticks):
{"header":{"acNoName":"","partNumber":"","sectionNumber":"","sectionName":"","psName":"","gram":"","thana":"","panchayat":"","block":"","tahsil":"","jilla":"","pincode":""},"voters":[{"serial":1,"epic":"ABC1234567","name":"","relationType":"Father","relationName":"","house":"123","age":45,"gender":"M"}]}

If no voters are found (cover page, map, blank page), return: {"voters":[]}
If header info is not on this page, omit the "header" field.
Extract ALL voters you can see. Do not skip any entries."""

TRANSIENT_STATUS_CODES = {408, 429, 500, 502, 503, 504}

TRANSIENT_ERROR_TYPES = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
    groq.RateLimitError,
    groq.APITimeoutError,
    groq.APIConnectionError,
    TimeoutError,
    ConnectionError,
)

_RATE_LIMIT_PATTERN = re.compile(r"\b(?:429|rate[ _-]?limit(?:ed)?|quota)\b", re.IGNORECASE)
_TRANSIENT_PATTERN = re.compile(
    r"\b(?:50[0234]|time[ ]?out|timed out|connection (?:error|reset|refused|aborted)|network)\b",
    re.IGNORECASE,
)


@dataclass
class Recognition:
    """Output of one recognizer call: either raw text or structured data."""
    text: Optional[str] = None
    header: Optional[HeaderInfo] = None
    records: Optional[List[dict[str, Any]]] = None

    @property
    def is_structured(self) -> bool:
        return self.records is not None


def is_rate_limit_error(error: Exception) -> bool:
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code == 429
    if isinstance(error, (openai.RateLimitError, groq.RateLimitError)):
        return True
    return bool(_RATE_LIMIT_PATTERN.search(str(error)))


def is_transient_error(error: Exception) -> bool:
    """
    Rate limits, 5xx, timeouts and connection failures are worth backing off for.

    An HTTP status code decides on its own; otherwise the SDK exception type,
    and only then whole words in the message.
    """
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code in TRANSIENT_STATUS_CODES
    if isinstance(error, TRANSIENT_ERROR_TYPES):
        return True
    message = str(error)
    return bool(_RATE_LIMIT_PATTERN.search(message) or _TRANSIENT_PATTERN.search(message))


class Recognizer(BaseProcessor, ABC):
    """Recognizes one page image."""

    name = "Recognizer"

    def __init__(self, config: Optional[Config] = None):
        super().__init__(config)
        self.stats = RecognitionStats(provider=self.name)

    @abstractmethod
    def recognize(self, image_path: Path) -> Recognition:
        """
        Recognize a page image.

        Raises:
            RollBatchError: On failure (confined to the page by the caller)
        """
        pass


class VisionRecognizer(Recognizer):
    """
    Structured extraction through a vision LLM.

    Each call is attempted up to ``ai.max_attempts`` times. Transient
    failures back off exponentially with random jitter; other failures and
    unparseable responses are retried after a short flat delay.
    """

    name = "VisionRecognizer"

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(config)
        ai = self.config.ai
        self.model = ai.model
        self.max_attempts = max(1, ai.max_attempts)
        self.retry_delay = ai.retry_delay_sec
        self.retry_jitter = ai.retry_jitter_sec
        self.stats.provider = ai.provider
        self.stats.model = ai.model
        self._client = client
        self._sleep = sleep

    @property
    def client(self):
        if self._client is None:
            self._client = self._create_client()
        return self._client

    def _create_client(self):
        ai = self.config.ai
        if not ai.api_key:
            raise ConfigurationError("AI_API_KEY not set. Please set in .env or environment variables.", "AI_API_KEY")
        if ai.provider.lower() == "groq":
            return Groq(api_key=ai.api_key, timeout=ai.timeout_sec)
        return OpenAI(
            api_key=ai.api_key,
            base_url=ai.get_normalized_base_url() or None,
            timeout=ai.timeout_sec,
        )

    def _encode_image(self, image_path: Path) -> str:
        with open(image_path, "rb") as image_file:
            b64_str = base64.b64encode(image_file.read()).decode("utf-8")
        return f"data:image/png;base64,{b64_str}"

    def _backoff_delay(self, attempt: int, transient: bool) -> float:
        if transient:
            return self.retry_delay * (2 ** (attempt + 1)) + random.uniform(0, self.retry_jitter)
        return self.retry_delay * 2

    def _complete(self, content: List[dict[str, Any]]) -> str:
        completion = self.client.chat.completions.create(
            messages=[{"role": "user", "content": content}],
            model=self.model,
            temperature=0.1,
            max_tokens=self.config.ai.max_tokens,
        )

        usage = getattr(completion, "usage", None)
        if usage is not None:
            input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
            output_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
            self.stats.record_call(input_tokens, output_tokens, self.config.ai.estimate_cost(input_tokens, output_tokens))
        else:
            self.stats.record_call()

        return completion.choices[0].message.content or ""

    def recognize(self, image_path: Path) -> Recognition:
        image_name = Path(image_path).name
        content = [
            {"type": "text", "text": EXTRACTION_PROMPT},
            {"type": "image_url", "image_url": {"url": self._encode_image(image_path)}},
        ]

        for attempt in range(self.max_attempts):
            is_last = attempt == self.max_attempts - 1

            try:
                response_text = self._complete(content)
            except ConfigurationError:
                raise
            except Exception as e:
                if is_last:
                    self.log_error(f"Vision call failed for {image_name} after {self.max_attempts} attempts", error=e)
                    raise RecognitionError(
                        f"Vision call failed after {self.max_attempts} attempts ({type(e).__name__})",
                        image_path=str(image_path),
                        ai_provider=self.config.ai.provider,
                    ) from e
                delay = self._backoff_delay(attempt, is_transient_error(e))
                reason = "Rate limited" if is_rate_limit_error(e) else "Vision call failed"
                self.log_warning(
                    f"{reason} for {image_name} (attempt {attempt + 1}/{self.max_attempts}), "
                    f"retrying in {delay:.1f}s",
                    error=type(e).__name__,
                )
                self.stats.record_retry()
                self._sleep(delay)
                continue

            try:
                header, records = parse_page_payload(response_text)
            except ValueError:
                if is_last:
                    self.log_error(f"Unparseable response for {image_name}: {response_text[:200]!r}")
                    raise RecognitionError(
                        "Unparseable model response",
                        image_path=str(image_path),
                        ai_provider=self.config.ai.provider,
                        response_text=response_text,
                    )
                self.log_warning(f"Unparseable response for {image_name} (attempt {attempt + 1}), retrying")
                self.stats.record_retry()
                continue

            self.log_debug(f"Parsed {len(records)} voters from {image_name}")
            return Recognition(header=header, records=records)

        # max_attempts >= 1, so the loop always returns or raises
        raise RecognitionError("No attempts made", image_path=str(image_path))


class TesseractRecognizer(Recognizer):
    """Raw page text through Tesseract OCR."""

    name = "TesseractRecognizer"

    def __init__(self, config: Optional[Config] = None):
        super().__init__(config)
        self.languages = self.config.ocr.languages
        self.psm = self.config.ocr.page_segmentation_mode
        if self.config.ocr.tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = self.config.ocr.tesseract_path

    def _read(self, image_path: Path) -> Tuple[Image.Image, str]:
        image = load_image(image_path)
        if image is None:
            raise OCRError("Unreadable page image", image_path=str(image_path))
        return Image.fromarray(preprocess_for_ocr(image)), Path(image_path).name

    def recognize(self, image_path: Path) -> Recognition:
        image, image_name = self._read(image_path)
        try:
            text = pytesseract.image_to_string(image, lang=self.languages, config=f"--psm {self.psm} --oem 1")
        except pytesseract.TesseractNotFoundError as e:
            raise TesseractNotFoundError(self.config.ocr.tesseract_path or None) from e
        except pytesseract.TesseractError as e:
            raise OCRError(f"Tesseract failed: {e.message}", image_path=str(image_path), languages=self.languages) from e

        self.log_debug(f"OCR {image_name}: {len(text)} chars")
        return Recognition(text=text)
