"""
Batch job model.

A job is one submitted bundle of documents. Its counters are written by
the scheduler after every unit so that a live progress view (and ETA) can
be computed from the stored row alone.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Optional

from .header import HeaderInfo


class JobStatus:
    """Job lifecycle states."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)


def utc_now() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Job:
    """
    One batch of documents tracked end to end.

    ``total_units`` counts every discovered document, ``skipped_units`` the
    undersized ones among them; progress is measured against the remaining
    eligible units only.
    """
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    source: str = ""  # archive / pdf path or s3 url
    status: str = JobStatus.PENDING
    progress: int = 0

    total_units: int = 0
    skipped_units: int = 0
    processed_units: int = 0
    extracted_count: int = 0
    average_unit_time_ms: Optional[int] = None

    started_at: Optional[str] = None
    error_message: Optional[str] = None
    header: HeaderInfo = field(default_factory=HeaderInfo)

    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def eligible_units(self) -> int:
        return max(self.total_units - self.skipped_units, 0)

    @property
    def remaining_units(self) -> int:
        return max(self.eligible_units - self.processed_units, 0)

    @property
    def is_resumable(self) -> bool:
        return self.status == JobStatus.FAILED and self.processed_units > 0

    def eta_ms(self, concurrency: int) -> Optional[int]:
        """
        Estimate remaining time.

        Args:
            concurrency: Outer (document) concurrency the job runs with

        Returns:
            Milliseconds, or None until an average unit time is known
        """
        if not self.average_unit_time_ms:
            return None
        return int(self.remaining_units * self.average_unit_time_ms / max(concurrency, 1))

    def snapshot(self, concurrency: int) -> dict[str, Any]:
        """Progress view exposed to callers (CLI, API layer)."""
        return {
            "id": self.id,
            "status": self.status,
            "progress": self.progress,
            "total_units": self.total_units,
            "processed_units": self.processed_units,
            "skipped_units": self.skipped_units,
            "extracted_count": self.extracted_count,
            "average_unit_time_ms": self.average_unit_time_ms,
            "started_at": self.started_at,
            "eta_ms": self.eta_ms(concurrency),
            "error_message": self.error_message,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Create Job from dictionary."""
        values = {
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__
        }
        if isinstance(values.get("header"), dict) or values.get("header") is None:
            values["header"] = HeaderInfo.from_dict(values.get("header"))
        return cls(**values)
