"""
Unit processor: one PDF in, classified voter records out.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import List, Optional

from ..config import Config
from ..exceptions import RasterizationError, RollBatchError
from ..models import HeaderInfo, PageResult, Record, UnitResult
from ..utils.concurrency import run_with_concurrency
from ..utils.file_utils import page_number, remove_dir, remove_file, unit_id_from_filename
from ..utils.timing import StageTimings
from .base import BaseProcessor
from .page_extractor import PageExtractor, build_page_extractor
from .rasterizer import Rasterizer, build_rasterizer


class UnitProcessor(BaseProcessor):
    """
    Processes a single document.

    Steps:
    1. Rasterize into a unit-local scratch directory
    2. Extract pages with a bounded inner pool, deleting each page image
       as soon as it is done
    3. Freeze the unit header from its first pages (or the job header)
    4. Build records with the resolved booth number
    """

    name = "UnitProcessor"

    def __init__(
        self,
        config: Optional[Config] = None,
        rasterizer: Optional[Rasterizer] = None,
        page_extractor: Optional[PageExtractor] = None,
    ):
        super().__init__(config)
        pipeline = self.config.pipeline
        self.rasterizer = rasterizer or build_rasterizer(self.config)
        self.page_extractor = page_extractor or build_page_extractor(self.config)
        self.dpi = pipeline.render_dpi
        self.page_concurrency = pipeline.page_concurrency
        self.header_pages = pipeline.header_pages
        self.unit_id_pattern = pipeline.unit_id_pattern
        self.default_state = pipeline.default_state

    def process_unit(
        self,
        unit_path: Path,
        job_id: str,
        shared_header: Optional[HeaderInfo] = None,
    ) -> UnitResult:
        """
        Process one unit.

        Args:
            unit_path: Staged PDF
            job_id: Owning job id
            shared_header: Snapshot of the job-level header, used when the
                unit's own first pages carry none

        Returns:
            UnitResult; empty (``is_empty``) when the unit could not be
            rasterized or has no pages
        """
        unit_path = Path(unit_path)
        scratch_root = self.config.get_job_work_dir(job_id)
        scratch_root.mkdir(parents=True, exist_ok=True)
        pages_dir = Path(tempfile.mkdtemp(prefix=f"{unit_path.stem}_", dir=scratch_root))
        timings = StageTimings()

        try:
            try:
                with timings.measure("rasterize"):
                    pages = self.rasterizer.rasterize(unit_path, self.dpi, pages_dir)
            except RasterizationError as e:
                self.log_warning(f"Skipping {unit_path.name}: {e.message}")
                return UnitResult.empty()

            if not pages:
                self.log_warning(f"Skipping {unit_path.name}: no pages rendered")
                return UnitResult.empty()

            with timings.measure("extract"):
                page_results = run_with_concurrency(
                    pages,
                    self.page_concurrency,
                    lambda _, path: self._extract_page(path),
                    thread_name_prefix="page",
                )
        finally:
            remove_dir(pages_dir)

        header = self._resolve_header(page_results, shared_header)
        booth = unit_id_from_filename(unit_path.name, self.unit_id_pattern) or header.part_number

        records: List[Record] = []
        for page in page_results:
            for raw in page.records:
                records.append(Record.from_raw(raw, job_id, booth, header))

        self.log_info(
            f"Processed {unit_path.name}",
            pages=len(pages),
            records=len(records),
            booth=booth or "-",
        )
        self.log_debug(f"Timings {unit_path.name}: {timings.summary()}")
        return UnitResult(records=records, pages_processed=len(pages), header=header)

    def _extract_page(self, image_path: Path) -> PageResult:
        try:
            return self.page_extractor.extract_page(image_path)
        except Exception as e:
            if isinstance(e, RollBatchError) and e.scope == "job":
                raise
            self.log_error(f"Page {Path(image_path).name} failed", error=e)
            return PageResult.empty(page_number(image_path))
        finally:
            remove_file(image_path)

    def _resolve_header(
        self,
        page_results: List[PageResult],
        shared_header: Optional[HeaderInfo],
    ) -> HeaderInfo:
        """First non-empty header of the leading pages, else the job header."""
        header = None
        for page in page_results[: self.header_pages]:
            if page.header is not None and not page.header.is_empty():
                header = page.header.copy()
                break

        if header is None:
            header = shared_header.copy() if shared_header is not None else HeaderInfo()
        if not header.state:
            header.state = self.default_state
        return header
