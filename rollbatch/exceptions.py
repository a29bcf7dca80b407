"""
Exception hierarchy.

Every error carries the level it is confined to (``scope``):

- ``page``: the page yields no records, the unit carries on
- ``unit``: the document is counted as failed, the batch carries on
- ``job``: the whole job fails

Only configuration and staging errors end a job.
"""

from __future__ import annotations

from typing import Any, Optional


class RollBatchError(Exception):
    """
    Base class for application errors.

    Keyword arguments become ``details``; None values are dropped.
    """

    scope = "job"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = {key: value for key, value in details.items() if value is not None}

    def __str__(self) -> str:
        if not self.details:
            return self.message
        context = ", ".join(f"{key}={value}" for key, value in self.details.items())
        return f"{self.message} [{context}]"


class ConfigurationError(RollBatchError):
    """Missing or invalid setting, e.g. no AI_API_KEY for the vision strategy."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        super().__init__(message, config_key=config_key)


class ArchiveExtractionError(RollBatchError):
    """The input could not be staged (missing, not a zip, corrupt member, timeout)."""

    def __init__(self, message: str, archive_path: Optional[str] = None):
        super().__init__(message, archive_path=archive_path)


class RasterizationError(RollBatchError):
    """A document could not be rendered into page images."""

    scope = "unit"

    def __init__(self, message: str, pdf_path: Optional[str] = None, page_number: Optional[int] = None):
        super().__init__(message, pdf_path=pdf_path, page_number=page_number)


class RecognitionError(RollBatchError):
    """The vision model gave no usable answer for a page after every attempt."""

    scope = "page"

    def __init__(
        self,
        message: str,
        image_path: Optional[str] = None,
        ai_provider: Optional[str] = None,
        response_text: Optional[str] = None,
    ):
        super().__init__(
            message,
            image_path=image_path,
            ai_provider=ai_provider,
            response_preview=response_text[:500] if response_text else None,
        )


class OCRError(RollBatchError):
    """Tesseract could not read a page image."""

    scope = "page"

    def __init__(self, message: str, image_path: Optional[str] = None, languages: Optional[str] = None):
        super().__init__(message, image_path=image_path, languages=languages)


class TesseractNotFoundError(OCRError):
    """The tesseract binary is missing; every page would fail the same way."""

    scope = "job"

    def __init__(self, tesseract_path: Optional[str] = None):
        super().__init__(
            "Tesseract OCR not found. Install it (apt install tesseract-ocr tesseract-ocr-hin) "
            "or set TESSERACT_PATH"
        )
        if tesseract_path:
            self.details["tesseract_path"] = tesseract_path


class DataPersistenceError(RollBatchError):
    """A job or record read/write failed in the store."""

    def __init__(self, message: str, job_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, job_id=job_id, operation=operation)


class JobNotFoundError(RollBatchError):
    """No job with the given id exists in the store."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}", job_id=job_id)


class ValidationError(RollBatchError):
    """A value was rejected before reaching the store."""

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        field_value: Optional[Any] = None,
        expected: Optional[str] = None,
    ):
        super().__init__(
            message,
            field_name=field_name,
            field_value=str(field_value)[:100] if field_value is not None else None,
            expected=expected,
        )
