"""
In-process registry of running jobs.

Admission guarantees that at most one scheduler run per job id is active
in this process. A job stays admitted until its run releases it, even after
it has been cancelled; cancellation is a separate flag the scheduler checks
before each unit, so a rerun is only admitted once the cancelled run is gone.
"""

from __future__ import annotations

import threading
from typing import List, Optional


class JobGuard:
    """Thread-safe set of admitted job ids plus the subset asked to stop."""

    def __init__(self):
        self._active: set[str] = set()
        self._cancelled: set[str] = set()
        self._lock = threading.Lock()

    def admit(self, job_id: str) -> bool:
        """
        Try to register a job run.

        Returns:
            True if admitted, False if a run of the job has not been released yet
        """
        with self._lock:
            if job_id in self._active:
                return False
            self._active.add(job_id)
            return True

    def release(self, job_id: str) -> None:
        """Unregister a job run. Releasing an unknown job is a no-op."""
        with self._lock:
            self._active.discard(job_id)
            self._cancelled.discard(job_id)

    def cancel(self, job_id: str) -> bool:
        """
        Ask a running job to stop after its in-flight units.

        The job stays admitted until its run releases it.

        Returns:
            True if the job was running and not already cancelled
        """
        with self._lock:
            if job_id not in self._active or job_id in self._cancelled:
                return False
            self._cancelled.add(job_id)
            return True

    def is_active(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._active

    def is_cancelled(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancelled

    def active_jobs(self) -> List[str]:
        with self._lock:
            return sorted(self._active)


_guard: Optional[JobGuard] = None
_guard_lock = threading.Lock()


def get_job_guard() -> JobGuard:
    """Get the process-wide job guard."""
    global _guard
    with _guard_lock:
        if _guard is None:
            _guard = JobGuard()
        return _guard
