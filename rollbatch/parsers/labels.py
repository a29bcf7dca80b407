"""
Field label patterns shared by the OCR text parsers.

Rolls are printed in English or Hindi; OCR keeps the printed labels
("Name :", "पिता का नाम :", "Age : 45 Gender : Male"), so values are read
by label adjacency: a value runs from its label's separator to the next
known label or the end of the line.
"""

from __future__ import annotations

import re
from typing import List, Tuple

SEP = r"\s*[:=+]\s*"

# Relation labels are checked before the plain name label, since the
# Hindi relation labels contain "नाम" themselves.
RELATION_LABELS: List[Tuple[str, str]] = [
    ("Father", r"Father'?s?\s*Name|पिता\s*का\s*नाम|पिता"),
    ("Husband", r"Husband'?s?\s*Name|पति\s*का\s*नाम|पति"),
    ("Mother", r"Mother'?s?\s*Name|माता\s*का\s*नाम|माता"),
    ("Other", r"Other'?s?(?:\s*Name)?"),
]

NAME_LABEL = r"(?:Elector'?s\s*)?Name|निर्वाचक\s*का\s*नाम|नाम"
HOUSE_LABEL = r"House\s*(?:Number|No\.?)|मकान\s*(?:संख्या|सं\.|नं\.?)"
AGE_LABEL = r"\bAge|आयु|उम्र"
GENDER_LABEL = r"\bGender|\bSex|लिंग"

ANY_LABEL = "|".join(
    [label for _, label in RELATION_LABELS]
    + [HOUSE_LABEL, AGE_LABEL, GENDER_LABEL, NAME_LABEL]
)

VALUE_END = rf"(?=\s*(?:{ANY_LABEL}){SEP}|\s*$)"

EPIC_PATTERN = r"[A-Z]{2,4}[0-9]{6,8}|[A-Z]{2}/[0-9]{2}/[0-9]{3}/[0-9]{5,7}"

_FLAGS = re.IGNORECASE

RELATION_RES = [
    (rel_type, re.compile(rf"(?:{label}){SEP}(.*?){VALUE_END}", _FLAGS))
    for rel_type, label in RELATION_LABELS
]
NAME_RE = re.compile(rf"(?:{NAME_LABEL}){SEP}(.*?){VALUE_END}", _FLAGS)
HOUSE_RE = re.compile(rf"(?:{HOUSE_LABEL}){SEP}(.*?){VALUE_END}", _FLAGS)
AGE_RE = re.compile(rf"(?:{AGE_LABEL}){SEP}(\d{{1,3}})", _FLAGS)
GENDER_RE = re.compile(rf"(?:{GENDER_LABEL}){SEP}([^\s,|;:]+)", _FLAGS)
AGE_GENDER_RE = re.compile(
    rf"(?:{AGE_LABEL}){SEP}(\d{{1,3}})[\s,|;]*(?:{GENDER_LABEL}){SEP}([^\s,|;:]+)",
    _FLAGS,
)
EPIC_RE = re.compile(rf"\b(?:{EPIC_PATTERN})\b")

NAME_SIGNAL_RE = re.compile(rf"(?:{NAME_LABEL}){SEP}", _FLAGS)
AGE_SIGNAL_RE = re.compile(rf"(?:{AGE_LABEL}){SEP}", _FLAGS)


def clean_value(value: str) -> str:
    """Strip separator debris OCR leaves around values."""
    return value.strip(" \t-+=~|:;,")


def find_relations(line: str) -> List[Tuple[str, str, Tuple[int, int]]]:
    """
    All relation label/value pairs of a line, in line order.

    Returns:
        (relation_type, value, span) tuples
    """
    found = []
    taken: List[Tuple[int, int]] = []
    for rel_type, pattern in RELATION_RES:
        for match in pattern.finditer(line):
            span = match.span()
            # "पिता का नाम" and the bare "पिता" both match; keep the first
            if any(s < span[1] and span[0] < e for s, e in taken):
                continue
            taken.append(span)
            found.append((rel_type, clean_value(match.group(1)), span))
    found.sort(key=lambda item: item[2][0])
    return found


def mask_spans(line: str, spans: List[Tuple[int, int]]) -> str:
    """Blank out spans so later patterns cannot match inside them."""
    chars = list(line)
    for start, end in spans:
        for i in range(start, end):
            chars[i] = " "
    return "".join(chars)


def find_names(line: str) -> List[str]:
    """Voter names of a line, ignoring relation labels."""
    masked = mask_spans(line, [span for _, _, span in find_relations(line)])
    return [clean_value(v) for v in NAME_RE.findall(masked)]


def find_houses(line: str) -> List[str]:
    return [clean_value(v) for v in HOUSE_RE.findall(line)]


def find_ages(line: str) -> List[str]:
    return AGE_RE.findall(line)


def find_genders(line: str) -> List[str]:
    return [clean_value(v) for v in GENDER_RE.findall(line)]


def find_age_gender_pairs(text: str) -> List[Tuple[str, str]]:
    """Age/gender pairs in document order (the fallback parser's record anchor)."""
    return [(age, clean_value(gender)) for age, gender in AGE_GENDER_RE.findall(text)]


def find_epics(text: str) -> List[str]:
    return EPIC_RE.findall(text)


def has_name_label(text: str) -> bool:
    return bool(NAME_SIGNAL_RE.search(text))


def has_age_label(text: str) -> bool:
    return bool(AGE_SIGNAL_RE.search(text))
