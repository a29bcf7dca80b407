"""
Fallback OCR text parser for degraded or multi-column pages.

When voter boxes are printed side by side, OCR reads them row-wise:

    Name : Ram Kumar          Name : Sita Devi          Name : Mohan
    Father Name : Shyam       Husband Name : Ram        Father Name : Hari
    House Number : 12         House Number : 12         House Number : 14
    Age : 34 Gender : Male    Age : 30 Gender : Female  Age : 51 Gender : Male

Every field type is collected independently in document order and the
lists are zipped by index. Age/gender pairs are the most reliably read
field, so their count decides how many records the page yields.
"""

from __future__ import annotations

from typing import Any, List

from .base import TextParser
from .labels import (
    find_age_gender_pairs,
    find_epics,
    find_houses,
    find_names,
    find_relations,
    has_age_label,
    has_name_label,
)


def _at(values: List[Any], index: int, default: Any = "") -> Any:
    return values[index] if index < len(values) else default


class PositionalFallbackParser(TextParser):
    """Zips independently located field occurrences by position."""

    name = "positional"

    def accepts(self, text: str) -> bool:
        return bool(text) and has_name_label(text) and has_age_label(text)

    def parse(self, text: str) -> List[dict[str, Any]]:
        pairs = find_age_gender_pairs(text)
        if not pairs:
            return []

        epics: List[str] = []
        names: List[str] = []
        relations: List[tuple] = []
        houses: List[str] = []

        for line in text.splitlines():
            epics.extend(find_epics(line))
            relations.extend((rel_type, value) for rel_type, value, _ in find_relations(line))
            names.extend(find_names(line))
            houses.extend(find_houses(line))

        records = []
        for i, (age, gender) in enumerate(pairs):
            rel_type, rel_name = _at(relations, i, ("", ""))
            records.append({
                "serial": 0,
                "epic": _at(epics, i),
                "name": _at(names, i),
                "relation_type": rel_type,
                "relation_name": rel_name,
                "house": _at(houses, i),
                "age": int(age),
                "gender": gender,
            })
        return records
