"""
Rasterizers: render every page of a PDF into a PNG file.

Two backends are available:
- Pdf2ImageRasterizer: poppler via pdf2image (default)
- PyMuPDFRasterizer: in-process rendering via PyMuPDF

Both write grayscale pages into the given directory and return the file
paths in page order. Any failure (corrupt file, missing poppler,
timeout) is raised as RasterizationError.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

import fitz  # PyMuPDF
from pdf2image import convert_from_path

from ..config import Config
from ..exceptions import ConfigurationError, RasterizationError
from ..utils.file_utils import ensure_dir, page_number
from .base import BaseProcessor


class Rasterizer(BaseProcessor, ABC):
    """Renders a document into ordered page images."""

    name = "Rasterizer"

    def __init__(self, config: Optional[Config] = None, timeout_sec: Optional[int] = None):
        super().__init__(config)
        self.timeout_sec = timeout_sec or self.config.pipeline.rasterize_timeout_sec

    @abstractmethod
    def rasterize(self, doc_path: Path, dpi: int, out_dir: Path) -> List[Path]:
        """
        Render all pages of a document.

        Args:
            doc_path: PDF to render
            dpi: Render resolution
            out_dir: Directory the page images are written into

        Returns:
            Page image paths, in page order

        Raises:
            RasterizationError: If the document cannot be rendered in time
        """
        pass


class Pdf2ImageRasterizer(Rasterizer):
    """poppler (pdftoppm) through pdf2image, writing straight to disk."""

    name = "Pdf2ImageRasterizer"

    def rasterize(self, doc_path: Path, dpi: int, out_dir: Path) -> List[Path]:
        ensure_dir(out_dir)
        try:
            paths = convert_from_path(
                str(doc_path),
                dpi=dpi,
                fmt="png",
                grayscale=True,
                output_folder=str(out_dir),
                output_file="page",
                paths_only=True,
                timeout=self.timeout_sec,
            )
        except Exception as e:
            raise RasterizationError(
                f"Failed to rasterize {Path(doc_path).name} ({type(e).__name__})",
                pdf_path=str(doc_path),
            ) from e

        pages = sorted((Path(p) for p in paths), key=page_number)
        self.log_debug(f"Rendered {len(pages)} pages", pdf=Path(doc_path).name, dpi=dpi)
        return pages


class PyMuPDFRasterizer(Rasterizer):
    """PyMuPDF rendering; the timeout is checked between pages."""

    name = "PyMuPDFRasterizer"

    def rasterize(self, doc_path: Path, dpi: int, out_dir: Path) -> List[Path]:
        ensure_dir(out_dir)
        deadline = time.monotonic() + self.timeout_sec

        try:
            doc = fitz.open(doc_path)
        except Exception as e:
            raise RasterizationError(f"Failed to open PDF: {e}", pdf_path=str(doc_path)) from e

        pages: List[Path] = []
        # PDF points are 1/72 inch
        matrix = fitz.Matrix(dpi / 72, dpi / 72)
        try:
            for index in range(doc.page_count):
                if time.monotonic() > deadline:
                    raise RasterizationError(
                        f"Rasterization timed out after {self.timeout_sec}s",
                        pdf_path=str(doc_path),
                        page_number=index + 1,
                    )
                try:
                    pix = doc.load_page(index).get_pixmap(matrix=matrix, colorspace=fitz.csGRAY, alpha=False)
                    out_path = Path(out_dir) / f"page-{index + 1:03d}.png"
                    pix.save(str(out_path))
                except RuntimeError as e:
                    raise RasterizationError(
                        f"Failed to render page: {e}", pdf_path=str(doc_path), page_number=index + 1
                    ) from e
                pages.append(out_path)
        finally:
            doc.close()

        self.log_debug(f"Rendered {len(pages)} pages", pdf=Path(doc_path).name, dpi=dpi)
        return pages


def build_rasterizer(config: Config) -> Rasterizer:
    """Create the configured rasterizer ("pdf2image" or "pymupdf")."""
    backend = config.pipeline.rasterizer
    if backend == "pdf2image":
        return Pdf2ImageRasterizer(config)
    if backend in ("pymupdf", "fitz"):
        return PyMuPDFRasterizer(config)
    raise ConfigurationError(f"Unknown rasterizer: {backend}", "RASTERIZER")
