"""
Voter record model and quality classification.

A raw record is the plain dict produced by a parser or the vision model
(keys: serial, epic, name, relation_type, relation_name, house, age,
gender). ``Record.from_raw`` turns it into the persisted shape, stamping
the job, booth and header location fields onto it.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, asdict
from typing import Optional, Any

from .header import HeaderInfo
from ..utils.transliterate import hindi_to_english

MIN_AGE = 18
MAX_AGE = 120

UNKNOWN_NAME = "Unknown"


class RecordStatus:
    """Data quality status of a record."""
    VERIFIED = "verified"
    FLAGGED = "flagged"
    INCOMPLETE = "incomplete"

    ALL = (VERIFIED, FLAGGED, INCOMPLETE)


_GENDER_LABELS = {
    "m": "Male", "male": "Male", "पुरुष": "Male", "पु": "Male",
    "f": "Female", "female": "Female", "महिला": "Female", "म": "Female", "स्त्री": "Female",
    "o": "Other", "other": "Other", "third": "Other", "third gender": "Other", "अन्य": "Other", "तृतीय लिंग": "Other",
}

_DIGITS = re.compile(r"\d+")


def classify_record(external_id: Optional[str], name: Optional[str], age: Optional[int]) -> str:
    """
    Classify a record by which identifying fields are present.

    - verified: id, name and an age within 18..120
    - flagged: id or name present
    - incomplete: neither

    Args:
        external_id: EPIC number as extracted
        name: Voter name as extracted (before any placeholder)
        age: Parsed age, or None

    Returns:
        One of RecordStatus.ALL
    """
    has_id = bool(external_id and external_id.strip())
    has_name = bool(name and name.strip())
    valid_age = isinstance(age, int) and MIN_AGE <= age <= MAX_AGE

    if has_id and has_name and valid_age:
        return RecordStatus.VERIFIED
    if has_id or has_name:
        return RecordStatus.FLAGGED
    return RecordStatus.INCOMPLETE


def parse_age(value: Any) -> Optional[int]:
    """Parse an age from an int or an OCR string such as "45" or "४५"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = _DIGITS.search(str(value))
    if not match:
        return None
    return int(match.group())


def normalize_gender(value: Any) -> str:
    """Map M/F/O codes and Hindi labels to Male/Female/Other; pass others through."""
    text = str(value or "").strip()
    if not text:
        return ""
    return _GENDER_LABELS.get(text.lower(), text)


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass
class Record:
    """One voter entry extracted from a roll page."""

    id: str = ""
    job_id: str = ""

    # Identity
    serial_number: int = 0
    epic_number: str = ""
    voter_name: str = ""
    voter_name_en: str = ""

    # Relation
    relation_type: str = ""  # Father, Husband, Mother, Other
    relation_name: str = ""
    relation_name_en: str = ""

    # Demographics
    gender: str = ""
    age: Optional[int] = None

    # Location
    house_no: str = ""
    address: str = ""
    booth_number: str = ""
    part_number: str = ""
    ac_no_name: str = ""
    constituency: str = ""
    section_number: str = ""
    section_name: str = ""
    ps_name: str = ""
    state: str = ""
    gram: str = ""
    thana: str = ""
    panchayat: str = ""
    block: str = ""
    tahsil: str = ""
    jilla: str = ""
    pincode: str = ""

    status: str = RecordStatus.INCOMPLETE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Record":
        """Create Record from dictionary."""
        return cls(**{
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__
        })

    @classmethod
    def from_raw(
        cls,
        raw: dict[str, Any],
        job_id: str,
        booth_number: str,
        header: HeaderInfo,
    ) -> "Record":
        """
        Build a persisted record from a raw parser/model record.

        Args:
            raw: Raw record dict
            job_id: Owning job
            booth_number: Part/booth identifier resolved for the unit
            header: Effective header of the unit

        Returns:
            Classified Record
        """
        epic = _text(raw.get("epic")).upper()
        name = _text(raw.get("name"))
        relation_name = _text(raw.get("relation_name"))
        house = _text(raw.get("house"))
        age = parse_age(raw.get("age"))

        serial = parse_age(raw.get("serial"))  # same digit parsing

        return cls(
            id=uuid.uuid4().hex,
            job_id=job_id,
            serial_number=serial or 0,
            epic_number=epic,
            voter_name=name or UNKNOWN_NAME,
            voter_name_en=hindi_to_english(name),
            relation_type=_text(raw.get("relation_type")),
            relation_name=relation_name,
            relation_name_en=hindi_to_english(relation_name),
            gender=normalize_gender(raw.get("gender")),
            age=age if age is not None and MIN_AGE <= age <= MAX_AGE else None,
            house_no=house,
            address=f"House No. {house}" if house else "",
            booth_number=booth_number,
            part_number=booth_number,
            ac_no_name=header.ac_no_name,
            constituency=header.ac_no_name,
            section_number=header.section_number,
            section_name=header.section_name,
            ps_name=header.ps_name,
            state=header.state,
            gram=hindi_to_english(header.gram),
            thana=hindi_to_english(header.thana),
            panchayat=hindi_to_english(header.panchayat),
            block=hindi_to_english(header.block),
            tahsil=hindi_to_english(header.tahsil),
            jilla=hindi_to_english(header.jilla),
            pincode=header.pincode,
            status=classify_record(epic, name, age),
        )
