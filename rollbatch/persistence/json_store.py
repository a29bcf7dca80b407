"""
JSON file-based storage implementation.

Stores jobs and records as plain files, for local runs without a
database:

- <base_dir>/jobs/<job_id>.json          (one job)
- <base_dir>/records/<job_id>.jsonl      (one record per line)
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Optional, List, Any, Sequence

from ..exceptions import DataPersistenceError, ValidationError
from ..models import Job, Record
from ..models.header import HeaderInfo
from ..models.job import utc_now
from .repository import JobRepository


class JSONJobStore(JobRepository):
    """
    File-backed job repository.

    A single lock serializes all reads and writes; job files are replaced
    atomically so a crash never leaves a half-written job behind.
    """

    def __init__(self, base_dir: Path):
        """
        Initialize JSON store.

        Args:
            base_dir: Base directory for job and record files
        """
        self.base_dir = Path(base_dir)
        self.jobs_dir = self.base_dir / "jobs"
        self.records_dir = self.base_dir / "records"
        self.jobs_dir.mkdir(parents=True, exist_ok=True)
        self.records_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _job_path(self, job_id: str) -> Path:
        return self.jobs_dir / f"{job_id}.json"

    def _records_path(self, job_id: str) -> Path:
        return self.records_dir / f"{job_id}.jsonl"

    def _write_job(self, job: Job) -> None:
        path = self._job_path(job.id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(
                json.dumps(job.to_dict(), ensure_ascii=False, indent=2),
                encoding="utf-8"
            )
            os.replace(tmp_path, path)
        except OSError as e:
            raise DataPersistenceError(
                f"Failed to write job file: {e.strerror}", job_id=job.id, operation="save"
            ) from e

    def _read_job(self, path: Path) -> Job:
        try:
            return Job.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            raise DataPersistenceError(
                f"Failed to read job file {path.name}", operation="load"
            ) from e

    def create_job(self, job: Job) -> Job:
        with self._lock:
            self._write_job(job)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            path = self._job_path(job_id)
            if not path.exists():
                return None
            return self._read_job(path)

    def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        with self._lock:
            job = self.get_job(job_id)
            if job is None:
                return None
            for key, value in fields.items():
                if key not in Job.__dataclass_fields__:
                    raise ValidationError("Unknown job field", field_name=key)
                if key == "header" and isinstance(value, dict):
                    value = HeaderInfo.from_dict(value)
                setattr(job, key, value)
            job.updated_at = utc_now()
            self._write_job(job)
            return job

    def list_jobs(self, status: Optional[str] = None) -> List[Job]:
        with self._lock:
            jobs = [self._read_job(path) for path in sorted(self.jobs_dir.glob("*.json"))]
        if status is not None:
            jobs = [job for job in jobs if job.status == status]
        return sorted(jobs, key=lambda job: job.created_at)

    def delete_records_for_job(self, job_id: str) -> int:
        with self._lock:
            path = self._records_path(job_id)
            if not path.exists():
                return 0
            count = sum(1 for line in path.read_text(encoding="utf-8").splitlines() if line.strip())
            path.unlink()
            return count

    def insert_records_batch(self, records: Sequence[Record]) -> int:
        if not records:
            return 0
        by_job: dict[str, List[str]] = {}
        for record in records:
            by_job.setdefault(record.job_id, []).append(
                json.dumps(record.to_dict(), ensure_ascii=False)
            )
        with self._lock:
            for job_id, lines in by_job.items():
                try:
                    with open(self._records_path(job_id), "a", encoding="utf-8") as f:
                        f.write("\n".join(lines) + "\n")
                except OSError as e:
                    raise DataPersistenceError(
                        f"Failed to append records: {e.strerror}", job_id=job_id, operation="insert"
                    ) from e
        return len(records)

    def get_records_for_job(self, job_id: str) -> List[Record]:
        with self._lock:
            path = self._records_path(job_id)
            if not path.exists():
                return []
            lines = path.read_text(encoding="utf-8").splitlines()
        return [Record.from_dict(json.loads(line)) for line in lines if line.strip()]
