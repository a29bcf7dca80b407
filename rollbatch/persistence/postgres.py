"""
PostgreSQL job store.

One connection shared by all worker threads and serialized by a lock;
every operation runs in its own transaction.
"""
from __future__ import annotations

import threading
from dataclasses import fields as dataclass_fields
from typing import Optional, List, Any, Sequence

import psycopg2
import psycopg2.extras
from psycopg2.extras import Json, execute_values

from ..config import DBConfig
from ..exceptions import DataPersistenceError, ValidationError
from ..logger import get_logger
from ..models import Job, Record
from ..models.header import HeaderInfo
from ..models.job import utc_now
from .repository import JobRepository

logger = get_logger(__name__)

JOB_COLUMNS = [
    "id", "name", "source", "status", "progress",
    "total_units", "skipped_units", "processed_units", "extracted_count",
    "average_unit_time_ms", "started_at", "error_message", "header",
    "created_at", "updated_at",
]

RECORD_COLUMNS = [f.name for f in dataclass_fields(Record)]

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS extraction_jobs (
    id TEXT PRIMARY KEY,
    name TEXT,
    source TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    progress INTEGER NOT NULL DEFAULT 0,
    total_units INTEGER DEFAULT 0,
    skipped_units INTEGER DEFAULT 0,
    processed_units INTEGER DEFAULT 0,
    extracted_count INTEGER DEFAULT 0,
    average_unit_time_ms INTEGER,
    started_at TEXT,
    error_message TEXT,
    header JSONB DEFAULT '{}',
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS voter_records (
    id TEXT PRIMARY KEY,
    job_id TEXT REFERENCES extraction_jobs(id) ON DELETE CASCADE,
    serial_number INTEGER,
    epic_number TEXT,
    voter_name TEXT NOT NULL,
    voter_name_en TEXT,
    relation_type TEXT,
    relation_name TEXT,
    relation_name_en TEXT,
    gender TEXT,
    age INTEGER,
    house_no TEXT,
    address TEXT,
    booth_number TEXT,
    part_number TEXT,
    ac_no_name TEXT,
    constituency TEXT,
    section_number TEXT,
    section_name TEXT,
    ps_name TEXT,
    state TEXT,
    gram TEXT,
    thana TEXT,
    panchayat TEXT,
    block TEXT,
    tahsil TEXT,
    jilla TEXT,
    pincode TEXT,
    status TEXT NOT NULL DEFAULT 'incomplete',
    inserted_at TIMESTAMPTZ DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_voter_records_job_id ON voter_records(job_id);
CREATE INDEX IF NOT EXISTS idx_voter_records_epic ON voter_records(epic_number);
CREATE INDEX IF NOT EXISTS idx_extraction_jobs_status ON extraction_jobs(status);
"""


class PostgresJobStore(JobRepository):
    """Jobs and voter records in PostgreSQL (``--store postgres``)."""

    def __init__(self, config: DBConfig):
        self.db = config
        self._conn = None
        self._lock = threading.RLock()

    def _connection(self):
        if self._conn is not None and not self._conn.closed:
            return self._conn
        try:
            conn = psycopg2.connect(
                host=self.db.host,
                port=self.db.port,
                dbname=self.db.name,
                user=self.db.user,
                password=self.db.password,
                sslmode=self.db.ssl_mode,
                options=f"-c search_path={self.db.schema}",
            )
        except psycopg2.Error as e:
            logger.error(f"Cannot connect to {self.db.host}:{self.db.port}/{self.db.name}: {e}")
            raise DataPersistenceError("Failed to connect to PostgreSQL", operation="connect") from e
        conn.autocommit = False
        self._conn = conn
        return conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None and not self._conn.closed:
                self._conn.close()

    def init_db(self) -> None:
        """Create tables and indexes if missing."""
        self._execute("init_db", None, lambda cur: cur.execute(SCHEMA_SQL))
        logger.info(f"Schema ready in {self.db.name}.{self.db.schema}")

    def _row_to_job(self, row: dict[str, Any]) -> Job:
        data = dict(row)
        data["header"] = HeaderInfo.from_dict(data.get("header") or {})
        return Job.from_dict(data)

    def _job_values(self, job: Job) -> list:
        data = job.to_dict()
        return [Json(data[c]) if c == "header" else data[c] for c in JOB_COLUMNS]

    def _execute(self, operation: str, job_id: Optional[str], fn):
        """Run ``fn(cursor)`` in a transaction; commit on success, roll back on error."""
        with self._lock:
            conn = self._connection()
            try:
                with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                    result = fn(cur)
                conn.commit()
                return result
            except psycopg2.Error as e:
                conn.rollback()
                logger.error(f"PostgreSQL {operation} failed: {e}")
                raise DataPersistenceError(
                    f"PostgreSQL {operation} failed", job_id=job_id, operation=operation
                ) from e

    def create_job(self, job: Job) -> Job:
        placeholders = ", ".join(["%s"] * len(JOB_COLUMNS))
        query = f"INSERT INTO extraction_jobs ({', '.join(JOB_COLUMNS)}) VALUES ({placeholders})"
        self._execute("create_job", job.id, lambda cur: cur.execute(query, self._job_values(job)))
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        def fetch(cur):
            cur.execute("SELECT * FROM extraction_jobs WHERE id = %s", (job_id,))
            return cur.fetchone()

        row = self._execute("get_job", job_id, fetch)
        return self._row_to_job(row) if row else None

    def update_job(self, job_id: str, **fields: Any) -> Optional[Job]:
        unknown = [key for key in fields if key not in JOB_COLUMNS or key == "id"]
        if unknown:
            raise ValidationError("Unknown job fields", field_name=", ".join(unknown))

        fields["updated_at"] = utc_now()
        assignments = []
        values = []
        for key, value in fields.items():
            if key == "header":
                value = Json(value.to_dict() if isinstance(value, HeaderInfo) else value)
            assignments.append(f"{key} = %s")
            values.append(value)
        values.append(job_id)

        def update(cur):
            cur.execute(
                f"UPDATE extraction_jobs SET {', '.join(assignments)} WHERE id = %s RETURNING *",
                values,
            )
            return cur.fetchone()

        row = self._execute("update_job", job_id, update)
        return self._row_to_job(row) if row else None

    def list_jobs(self, status: Optional[str] = None) -> List[Job]:
        def fetch(cur):
            if status is None:
                cur.execute("SELECT * FROM extraction_jobs ORDER BY created_at")
            else:
                cur.execute("SELECT * FROM extraction_jobs WHERE status = %s ORDER BY created_at", (status,))
            return cur.fetchall()

        return [self._row_to_job(row) for row in self._execute("list_jobs", None, fetch)]

    def delete_records_for_job(self, job_id: str) -> int:
        def delete(cur):
            cur.execute("DELETE FROM voter_records WHERE job_id = %s", (job_id,))
            return cur.rowcount

        return self._execute("delete_records", job_id, delete)

    def insert_records_batch(self, records: Sequence[Record]) -> int:
        if not records:
            return 0
        query = f"INSERT INTO voter_records ({', '.join(RECORD_COLUMNS)}) VALUES %s"
        values = [tuple(getattr(r, c) for c in RECORD_COLUMNS) for r in records]

        self._execute(
            "insert_records",
            records[0].job_id,
            lambda cur: execute_values(cur, query, values, page_size=len(values)),
        )
        return len(records)

    def get_records_for_job(self, job_id: str) -> List[Record]:
        def fetch(cur):
            cur.execute(
                f"SELECT {', '.join(RECORD_COLUMNS)} FROM voter_records WHERE job_id = %s ORDER BY serial_number",
                (job_id,),
            )
            return cur.fetchall()

        return [Record.from_dict(dict(row)) for row in self._execute("get_records", job_id, fetch)]
