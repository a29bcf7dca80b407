"""
Repository pattern for job and record persistence.

Defines the storage interface the scheduler writes through, so the JSON
file store and PostgreSQL can be swapped without touching the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, List, Any, Sequence

from ..logger import get_logger
from ..models import Job, JobStatus, Record

logger = get_logger(__name__)

INTERRUPTED_MESSAGE = "Processing was interrupted. Resume to continue."


class JobRepository(ABC):
    """
    Abstract store for jobs and their extracted records.

    Implementations must be safe to call from several worker threads.
    """

    @abstractmethod
    def create_job(self, job: Job) -> Job:
        """
        Persist a new job.

        Args:
            job: Job to save

        Returns:
            The saved job
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        """
        Retrieve a job by ID.

        Returns:
            Job if found, None otherwise
        """
        pass

    @abstractmethod
    def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        """
        Update selected job fields.

        Args:
            job_id: Job identifier
            **fields: Job attributes to overwrite

        Returns:
            Updated job, or None if the job does not exist

        Raises:
            ValidationError: If a field is not a job attribute
        """
        pass

    @abstractmethod
    def list_jobs(self, status: Optional[str] = None) -> List[Job]:
        """List jobs, optionally filtered by status."""
        pass

    @abstractmethod
    def delete_records_for_job(self, job_id: str) -> int:
        """
        Delete every record of a job.

        Returns:
            Number of records deleted
        """
        pass

    @abstractmethod
    def insert_records_batch(self, records: Sequence[Record]) -> int:
        """
        Insert a batch of records in one write.

        Returns:
            Number of records inserted

        Raises:
            DataPersistenceError: If the batch could not be written
        """
        pass

    @abstractmethod
    def get_records_for_job(self, job_id: str) -> List[Record]:
        """Retrieve all records of a job."""
        pass

    def recover_interrupted_jobs(self) -> List[str]:
        """
        Mark jobs left in ``processing`` by a previous process as failed.

        Counters are kept, so each recovered job resumes from its last
        completed unit when it is run again.

        Returns:
            IDs of recovered jobs
        """
        recovered = []
        for job in self.list_jobs(status=JobStatus.PROCESSING):
            self.update_job(
                job.id,
                status=JobStatus.FAILED,
                error_message=INTERRUPTED_MESSAGE,
            )
            logger.warning(
                f"Job {job.id} was interrupted at {job.processed_units}/{job.eligible_units} units; "
                f"marked failed (resumable)"
            )
            recovered.append(job.id)
        return recovered
