"""
Reads roll header fields from OCR text of the first pages.
"""

from __future__ import annotations

import re
from typing import Optional

from ..models.header import HeaderInfo

_SEP = r"\s*[:=]\s*"
_UNTIL = r"(.+?)(?=\s{2,}|$)"

HEADER_PATTERNS = {
    "ac_no_name": re.compile(
        r"(?:Assembly\s+Constituency\s+No\.?\s*(?:and|&)\s*Name"
        r"|विधानसभा\s*निर्वाचन\s*क्षेत्र(?:\s*की)?(?:\s*संख्या\s*(?:एवं|व)\s*नाम)?)"
        rf"{_SEP}(.+?)(?=\s{{2,}}|\s*(?:Part\s*No|भाग\s*संख्या)|$)",
        re.IGNORECASE,
    ),
    "part_number": re.compile(r"(?:Part\s*No\.?|भाग\s*संख्या)\s*[:=]?\s*(\d+)", re.IGNORECASE),
    "section": re.compile(
        r"(?:Section\s+No\.?\s*(?:and|&)\s*Name|अनुभाग(?:\s*की)?(?:\s*संख्या\s*(?:एवं|व)\s*नाम)?)"
        rf"{_SEP}(\d+)\s*[-.]?\s*{_UNTIL}",
        re.IGNORECASE,
    ),
    "ps_name": re.compile(
        r"(?:Polling\s+Station\s+Name|मतदान\s*(?:केन्द्र|केंद्र|स्थल)(?:\s*का)?(?:\s*नाम)?)"
        rf"{_SEP}{_UNTIL}",
        re.IGNORECASE,
    ),
    "gram": re.compile(rf"(?:Main\s+Town\s+or\s+Village|Village|मुख्य\s*ग्राम|ग्राम|कस्बा){_SEP}{_UNTIL}", re.IGNORECASE),
    "thana": re.compile(rf"(?:Police\s+Station|थाना){_SEP}{_UNTIL}", re.IGNORECASE),
    "panchayat": re.compile(rf"(?:Panchayat|पंचायत){_SEP}{_UNTIL}", re.IGNORECASE),
    "block": re.compile(rf"(?:Block|ब्लॉक|विकास\s*खण्ड){_SEP}{_UNTIL}", re.IGNORECASE),
    "tahsil": re.compile(rf"(?:Tehsil|Tahsil|तहसील){_SEP}{_UNTIL}", re.IGNORECASE),
    "jilla": re.compile(rf"(?:District|जिला|जनपद){_SEP}{_UNTIL}", re.IGNORECASE),
    "pincode": re.compile(r"(?:Pin\s*Code|पिन\s*कोड)\s*[:=]?\s*(\d{6})", re.IGNORECASE),
}


def parse_header_text(text: str) -> Optional[HeaderInfo]:
    """
    Extract header fields from page text; first occurrence of each wins.

    Args:
        text: Raw OCR text of one page

    Returns:
        HeaderInfo, or None if no header field was found
    """
    if not text:
        return None

    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        for key, pattern in HEADER_PATTERNS.items():
            if key in values:
                continue
            match = pattern.search(line)
            if not match:
                continue
            if key == "section":
                values["section"] = match.group(1)
                values["section_number"] = match.group(1)
                values["section_name"] = match.group(2).strip(" -:")
            else:
                values[key] = match.group(1).strip(" -:")

    values.pop("section", None)
    header = HeaderInfo(**values)
    return None if header.is_empty() else header
