"""
Document processors module.

Contains the processing components of the batch pipeline:
- ArchiveExtractor: Stage a zip archive or single PDF into a work directory
- Rasterizer: Render PDF pages to images (pdf2image or PyMuPDF)
- Recognizer: Vision model (structured JSON) or Tesseract (raw text)
- PageExtractor: Route a page through a recognizer and the text parsers
- UnitProcessor: One PDF in, classified records out
- BatchScheduler: Run every unit of a job with bounded concurrency
- JobGuard: Admission and cooperative cancellation of running jobs
"""

from .base import BaseProcessor
from .archive import ArchiveExtractor
from .rasterizer import Rasterizer, Pdf2ImageRasterizer, PyMuPDFRasterizer, build_rasterizer
from .recognition import Recognition, Recognizer, VisionRecognizer, TesseractRecognizer
from .page_extractor import PageExtractor, build_page_extractor
from .unit_processor import UnitProcessor
from .job_guard import JobGuard, get_job_guard
from .batch_scheduler import BatchScheduler, compute_progress

__all__ = [
    "BaseProcessor",
    "ArchiveExtractor",
    "Rasterizer",
    "Pdf2ImageRasterizer",
    "PyMuPDFRasterizer",
    "build_rasterizer",
    "Recognition",
    "Recognizer",
    "VisionRecognizer",
    "TesseractRecognizer",
    "PageExtractor",
    "build_page_extractor",
    "UnitProcessor",
    "JobGuard",
    "get_job_guard",
    "BatchScheduler",
    "compute_progress",
]
