"""
Data models for the roll batch pipeline.

These models are plain dataclasses, serializable to JSON and mappable to
SQL table rows.
"""

from .header import HeaderInfo, merge_header
from .record import Record, RecordStatus, classify_record, normalize_gender, parse_age
from .job import Job, JobStatus
from .unit import Unit, PageResult, UnitResult
from .processing_stats import RecognitionStats

__all__ = [
    # Header
    "HeaderInfo",
    "merge_header",

    # Records
    "Record",
    "RecordStatus",
    "classify_record",
    "normalize_gender",
    "parse_age",

    # Jobs and units
    "Job",
    "JobStatus",
    "Unit",
    "PageResult",
    "UnitResult",

    # Usage stats
    "RecognitionStats",
]
