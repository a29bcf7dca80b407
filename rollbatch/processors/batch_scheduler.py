"""
Batch scheduler: runs every unit of a job through the unit processor with
bounded concurrency, persisting records and progress as units finish.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..config import Config
from ..exceptions import ArchiveExtractionError, DataPersistenceError, JobNotFoundError
from ..logger import log_timing
from ..models import HeaderInfo, Job, JobStatus, Record, Unit, UnitResult, merge_header
from ..models.job import utc_now
from ..persistence import JobRepository
from ..utils.concurrency import run_with_concurrency
from ..utils.file_utils import discover_units, remove_dir, sort_units
from .archive import ArchiveExtractor
from .base import BaseProcessor
from .job_guard import JobGuard, get_job_guard
from .unit_processor import UnitProcessor

NO_UNITS_MESSAGE = "No valid PDF files found in archive"
CANCELLED_MESSAGE = "Processing was cancelled. Resume to continue."

ProgressCallback = Callable[[Job], None]


def compute_progress(processed: int, eligible: int) -> int:
    """Percent done while running; capped at 99 until the job completes."""
    if eligible <= 0:
        return 0
    return min(processed * 100 // eligible, 99)


@dataclass
class _BatchState:
    """Counters shared by the unit workers of one run (guarded by ``lock``)."""
    processed: int
    extracted: int
    header: HeaderInfo
    session_units: int
    failed: List[str] = field(default_factory=list)
    session_processed: int = 0
    session_start: float = field(default_factory=time.perf_counter)
    lock: threading.Lock = field(default_factory=threading.Lock)

    def average_unit_time_ms(self) -> Optional[int]:
        if self.session_processed == 0:
            return None
        elapsed_ms = (time.perf_counter() - self.session_start) * 1000
        return int(elapsed_ms / self.session_processed)


class BatchScheduler(BaseProcessor):
    """
    Drives one job end to end.

    Order of a run:
    1. Admit the job (a second concurrent run of the same job is a no-op)
    2. Stage the input (zip extraction or single PDF copy)
    3. Discover, filter and sort units
    4. Resume from the stored counters or start fresh
    5. Process units with the outer pool, persisting as they finish
    6. Finalize the job; release the guard and the work directory
    """

    name = "BatchScheduler"

    def __init__(
        self,
        config: Optional[Config] = None,
        repository: Optional[JobRepository] = None,
        unit_processor: Optional[UnitProcessor] = None,
        guard: Optional[JobGuard] = None,
        archive_extractor: Optional[ArchiveExtractor] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        super().__init__(config)
        if repository is None:
            raise ValueError("BatchScheduler requires a job repository")
        pipeline = self.config.pipeline
        self.repository = repository
        self.unit_processor = unit_processor or UnitProcessor(self.config)
        self.guard = guard or get_job_guard()
        self.archive_extractor = archive_extractor or ArchiveExtractor(self.config)
        self.on_progress = on_progress
        self.doc_concurrency = pipeline.doc_concurrency
        self.min_unit_bytes = pipeline.min_unit_bytes
        self.insert_chunk_size = max(1, pipeline.insert_chunk_size)
        self.unit_id_pattern = pipeline.unit_id_pattern

    def run_batch(self, job_id: str, source_path: Path) -> Optional[Job]:
        """
        Process a job.

        Args:
            job_id: Existing job id
            source_path: Zip archive or single PDF

        Returns:
            The final job, or None if the job was already running

        Raises:
            JobNotFoundError: If the job does not exist
        """
        if not self.guard.admit(job_id):
            self.log_warning("Job is already being processed, skipping", job_id=job_id)
            return None

        work_dir = self.config.get_job_work_dir(job_id)
        start = time.perf_counter()
        try:
            job = self.repository.get_job(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return self._run(job, Path(source_path), work_dir)
        except JobNotFoundError:
            raise
        except Exception as e:
            self.logger.exception(f"Job {job_id} failed")
            return self._update(job_id, status=JobStatus.FAILED, error_message=f"Processing failed: {type(e).__name__}")
        finally:
            self.guard.release(job_id)
            if not self.config.keep_intermediate_files:
                remove_dir(work_dir)
            log_timing(self.logger, f"Job {job_id}", time.perf_counter() - start)

    def _run(self, job: Job, source_path: Path, work_dir: Path) -> Optional[Job]:
        self._update(job.id, status=JobStatus.PROCESSING)

        try:
            staged_dir = self.archive_extractor.stage(source_path, work_dir / "input")
        except ArchiveExtractionError as e:
            self.log_error(f"Staging failed for job {job.id}", error=e)
            return self._update(job.id, status=JobStatus.FAILED, error_message=f"Archive extraction failed: {e.message}")

        discovered = discover_units(staged_dir, self.unit_id_pattern)
        units = sort_units([u for u in discovered if u.size_bytes >= self.min_unit_bytes])
        skipped = len(discovered) - len(units)
        self.log_info(
            f"Discovered {len(discovered)} PDFs",
            job_id=job.id,
            eligible=len(units),
            skipped=skipped,
        )

        if not units:
            return self._update(
                job.id,
                status=JobStatus.FAILED,
                total_units=len(discovered),
                skipped_units=skipped,
                error_message=NO_UNITS_MESSAGE,
            )

        resume = 0 < job.processed_units < len(units)
        if resume:
            self.log_info(
                f"Resuming from unit {job.processed_units + 1}/{len(units)}",
                job_id=job.id,
                extracted=job.extracted_count,
            )
            state = _BatchState(
                processed=job.processed_units,
                extracted=job.extracted_count,
                header=job.header.copy(),
                session_units=len(units) - job.processed_units,
            )
            started_at = job.started_at or utc_now()
            pending = units[job.processed_units:]
        else:
            deleted = self.repository.delete_records_for_job(job.id)
            if deleted:
                self.log_info(f"Cleared {deleted} old records, starting fresh", job_id=job.id)
            state = _BatchState(processed=0, extracted=0, header=HeaderInfo(), session_units=len(units))
            started_at = utc_now()
            pending = units

        self._update(
            job.id,
            total_units=len(discovered),
            skipped_units=skipped,
            processed_units=state.processed,
            extracted_count=state.extracted,
            progress=compute_progress(state.processed, len(units)),
            started_at=started_at,
            header=state.header.copy(),
            error_message=None,
        )

        run_with_concurrency(
            pending,
            self.doc_concurrency,
            lambda _, unit: self._process_one(job.id, unit, state, len(units)),
            thread_name_prefix="unit",
        )

        return self._finalize(job.id, state, len(units), skipped)

    def _process_one(self, job_id: str, unit: Unit, state: _BatchState, eligible: int) -> None:
        if self.guard.is_cancelled(job_id):
            return

        with state.lock:
            shared_header = state.header.copy()

        result: Optional[UnitResult] = None
        try:
            result = self.unit_processor.process_unit(unit.path, job_id, shared_header)
        except Exception as e:
            self.log_error(f"Unit {unit.name} failed", error=e)

        failed = result is None or result.is_empty
        inserted = 0
        if not failed:
            with state.lock:
                merge_header(state.header, result.header)
            inserted = self._persist_records(job_id, result.records)

        with state.lock:
            state.processed += 1
            state.session_processed += 1
            state.extracted += inserted
            if failed:
                state.failed.append(unit.name)
            self._report_progress(job_id, unit, state, eligible)

        if state.processed <= 5 or state.processed % 10 == 0 or state.processed == eligible:
            self.log_info(
                f"Progress: {state.processed}/{eligible} PDFs",
                job_id=job_id,
                records=state.extracted,
                failed=len(state.failed),
            )

    def _report_progress(self, job_id: str, unit: Unit, state: _BatchState, eligible: int) -> None:
        """
        Write the running counters and notify the listener.

        A failed write is logged and left for the next unit (or the final
        write) to catch up; the counters in ``state`` stay authoritative.
        """
        try:
            job = self._update(
                job_id,
                processed_units=state.processed,
                extracted_count=state.extracted,
                progress=compute_progress(state.processed, eligible),
                average_unit_time_ms=state.average_unit_time_ms(),
                header=state.header.copy(),
            )
        except DataPersistenceError as e:
            self.log_error(f"Progress write failed after unit {unit.name}", error=e)
            return
        self._notify(job)

    def _notify(self, job: Optional[Job]) -> None:
        if job is None or self.on_progress is None:
            return
        try:
            self.on_progress(job)
        except Exception as e:
            self.log_error(f"Progress callback failed for job {job.id}", error=e)

    def _persist_records(self, job_id: str, records: Sequence[Record]) -> int:
        """Insert in chunks; a failed chunk is logged and skipped."""
        inserted = 0
        for offset in range(0, len(records), self.insert_chunk_size):
            chunk = records[offset:offset + self.insert_chunk_size]
            try:
                inserted += self.repository.insert_records_batch(chunk)
            except DataPersistenceError as e:
                self.log_error(f"Dropped {len(chunk)} records for job {job_id}", error=e)
        return inserted

    def _finalize(self, job_id: str, state: _BatchState, eligible: int, skipped: int) -> Optional[Job]:
        if self.guard.is_cancelled(job_id):
            self.log_warning(
                f"Job cancelled after {state.processed}/{eligible} PDFs",
                job_id=job_id,
            )
            return self._update(
                job_id,
                status=JobStatus.FAILED,
                error_message=CANCELLED_MESSAGE,
                processed_units=state.processed,
                extracted_count=state.extracted,
                progress=compute_progress(state.processed, eligible),
                header=state.header.copy(),
            )

        summary = None
        if state.failed:
            summary = (
                f"Processed {state.session_units - len(state.failed)}/{state.session_units} PDFs. "
                f"{len(state.failed)} failed. {skipped} empty files skipped."
            )
            self.log_warning(f"Failed PDFs ({len(state.failed)}): {', '.join(state.failed[:20])}")

        self.log_info(f"Job complete: {eligible} PDFs, {state.extracted} records", job_id=job_id)
        job = self._update(
            job_id,
            status=JobStatus.COMPLETED,
            progress=100,
            processed_units=eligible,
            extracted_count=state.extracted,
            average_unit_time_ms=state.average_unit_time_ms(),
            header=state.header.copy(),
            error_message=summary,
        )
        self._notify(job)
        return job

    def _update(self, job_id: str, **fields) -> Optional[Job]:
        return self.repository.update_job(job_id, **fields)
