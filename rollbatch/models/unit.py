"""
Unit (single document) and page result models.

Units only live for the duration of one scheduler run; the job's
``processed_units`` counter is the only thing persisted about them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

from .header import HeaderInfo
from .record import Record


@dataclass
class Unit:
    """One document discovered in a job's input."""
    path: Path
    size_bytes: int = 0
    ordering_key: int = 0

    @property
    def name(self) -> str:
        return self.path.name


@dataclass
class PageResult:
    """What one page contributed: an optional header and raw records."""
    page_number: int = 0
    header: Optional[HeaderInfo] = None
    records: List[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def empty(cls, page_number: int = 0) -> "PageResult":
        return cls(page_number=page_number)


@dataclass
class UnitResult:
    """Records of one unit plus the header used to build them."""
    records: List[Record] = field(default_factory=list)
    pages_processed: int = 0
    header: Optional[HeaderInfo] = None

    @property
    def is_empty(self) -> bool:
        """True when the unit produced no pages (rasterization failed)."""
        return self.pages_processed == 0

    @classmethod
    def empty(cls) -> "UnitResult":
        return cls()
