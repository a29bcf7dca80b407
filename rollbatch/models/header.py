"""
Roll header (location/administrative metadata) model.

The header is printed on the first pages of each roll. Only some units
carry a readable header, so the job keeps one aggregated header that is
filled field by field from whichever unit supplies a value first.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, fields, replace
from typing import Any, Optional

# Payload keys used by the vision model prompt, mapped to model fields
PAYLOAD_KEYS = {
    "acNoName": "ac_no_name",
    "partNumber": "part_number",
    "sectionNumber": "section_number",
    "sectionName": "section_name",
    "psName": "ps_name",
    "state": "state",
    "gram": "gram",
    "thana": "thana",
    "panchayat": "panchayat",
    "block": "block",
    "tahsil": "tahsil",
    "jilla": "jilla",
    "pincode": "pincode",
}


@dataclass
class HeaderInfo:
    """Constituency, part, section and geographic subdivisions of a roll."""
    ac_no_name: str = ""
    part_number: str = ""
    section_number: str = ""
    section_name: str = ""
    ps_name: str = ""  # polling station
    state: str = ""
    gram: str = ""  # village / town
    thana: str = ""  # police station
    panchayat: str = ""
    block: str = ""
    tahsil: str = ""
    jilla: str = ""  # district
    pincode: str = ""

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            setattr(self, f.name, "" if value is None else str(value).strip())

    def is_empty(self) -> bool:
        """True when no field other than the state carries a value."""
        return not any(
            getattr(self, f.name) for f in fields(self) if f.name != "state"
        )

    def copy(self) -> "HeaderInfo":
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "HeaderInfo":
        """Create from a snake_case dict (store format); unknown keys are ignored."""
        if not data:
            return cls()
        return cls(**{
            k: v for k, v in data.items()
            if k in cls.__dataclass_fields__
        })

    @classmethod
    def from_payload(cls, data: Optional[dict[str, Any]]) -> Optional["HeaderInfo"]:
        """
        Create from the vision model's camelCase header object.

        Returns:
            HeaderInfo, or None if the payload carries no header values
        """
        if not isinstance(data, dict):
            return None
        kwargs = {}
        for key, value in data.items():
            name = PAYLOAD_KEYS.get(key)
            if name and value not in (None, ""):
                kwargs[name] = value
        header = cls(**kwargs)
        return None if header.is_empty() else header


def merge_header(target: HeaderInfo, incoming: Optional[HeaderInfo]) -> HeaderInfo:
    """
    Merge ``incoming`` into ``target`` with first-non-empty-wins semantics.

    A field of ``target`` is only ever written while it is still empty, so a
    value set by an earlier unit is never overwritten, not even by a later
    non-empty value.

    Args:
        target: Aggregated header (modified in place)
        incoming: Header contributed by one unit

    Returns:
        The same ``target`` instance
    """
    if incoming is None:
        return target
    for f in fields(target):
        if not getattr(target, f.name):
            value = getattr(incoming, f.name)
            if value:
                setattr(target, f.name, value)
    return target
