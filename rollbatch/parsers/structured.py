"""
Primary OCR text parser: one labelled block per voter.

Expected shape (one voter box read top to bottom):

    12 ABC1234567
    Name : Ram Kumar
    Father's Name : Shyam Lal
    House Number : 45
    Age : 34 Gender : Male

A block starts at a line holding a serial number followed by an EPIC
number and runs until the next such line.
"""

from __future__ import annotations

import re
from typing import Any, List, Optional

from .base import TextParser
from .labels import (
    EPIC_PATTERN,
    EPIC_RE,
    find_ages,
    find_genders,
    find_houses,
    find_names,
    find_relations,
)

MIN_SERIAL = 1
MAX_SERIAL = 3000

ANCHOR_RE = re.compile(
    rf"^[ \t]*(?P<serial>[^\s|]+?)[.)]?[ \t|]+(?P<epic>{EPIC_PATTERN})\b",
    re.MULTILINE,
)


def _parse_serial(token: str) -> Optional[int]:
    if not token.isdigit():
        return None
    serial = int(token)
    if MIN_SERIAL <= serial <= MAX_SERIAL:
        return serial
    return None


class StructuredParser(TextParser):
    """Label-block parser anchored on serial + EPIC lines."""

    name = "structured"

    def parse(self, text: str) -> List[dict[str, Any]]:
        anchors = list(ANCHOR_RE.finditer(text or ""))
        if not anchors:
            return []

        # Several EPICs on one line means a multi-column page; blocks
        # would swallow the neighbouring columns, so leave it to the
        # positional parser.
        for line in text.splitlines():
            if len(EPIC_RE.findall(line)) > 1:
                return []

        records = []
        for i, anchor in enumerate(anchors):
            serial = _parse_serial(anchor.group("serial"))
            if serial is None:
                continue

            end = anchors[i + 1].start() if i + 1 < len(anchors) else len(text)
            block = text[anchor.end():end]
            records.append(self._parse_block(serial, anchor.group("epic"), block))

        return records

    def _parse_block(self, serial: int, epic: str, block: str) -> dict[str, Any]:
        record: dict[str, Any] = {
            "serial": serial,
            "epic": epic,
            "name": "",
            "relation_type": "",
            "relation_name": "",
            "house": "",
            "age": None,
            "gender": "",
        }

        for line in block.splitlines():
            line = line.strip()
            if not line:
                continue

            relations = find_relations(line)
            if relations and not record["relation_name"]:
                rel_type, value, _ = relations[0]
                record["relation_type"] = rel_type
                record["relation_name"] = value

            names = find_names(line)
            if names and not record["name"]:
                record["name"] = names[0]

            houses = find_houses(line)
            if houses and not record["house"]:
                record["house"] = houses[0]

            ages = find_ages(line)
            if ages and record["age"] is None:
                record["age"] = int(ages[0])

            genders = find_genders(line)
            if genders and not record["gender"]:
                record["gender"] = genders[0]

        return record
