"""
Parsing of the vision model's structured page payload.

The model is asked for ``{"header": {...}, "voters": [...]}``. Responses
come back fenced, prefixed with prose, or cut off at the token limit, so
the JSON is recovered from the largest well-formed object embedded in
the text.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Optional, Tuple

from ..models.header import HeaderInfo

_FENCE_OPEN = re.compile(r"^```[a-zA-Z0-9_-]*\s*")
_FENCE_CLOSE = re.compile(r"\s*```$")

VOTER_KEYS = ("epic", "name", "serial", "age")


def _strip_fences(text: str) -> str:
    t = text.strip()
    if t.startswith("```"):
        t = _FENCE_OPEN.sub("", t)
        t = _FENCE_CLOSE.sub("", t).strip()
    return t


def _balanced_spans(t: str) -> List[Tuple[int, int]]:
    """Spans of balanced, outermost ``{...}``/``[...]`` candidates."""
    spans = []
    start_candidates = [i for i, ch in enumerate(t) if ch in "[{"]
    covered_until = -1

    for start in start_candidates:
        if start < covered_until:
            continue
        stack: List[str] = []
        in_str = False
        escape = False

        for i in range(start, len(t)):
            ch = t[i]

            if in_str:
                if escape:
                    escape = False
                elif ch == "\\":
                    escape = True
                elif ch == '"':
                    in_str = False
                continue

            if ch == '"':
                in_str = True
                continue

            if ch in "[{":
                stack.append(ch)
            elif ch in "]}":
                if not stack:
                    break
                opener = stack.pop()
                if (opener == "[" and ch != "]") or (opener == "{" and ch != "}"):
                    break
                if not stack:
                    try:
                        json.loads(t[start:i + 1])
                    except ValueError:
                        break
                    spans.append((start, i + 1))
                    covered_until = i + 1
                    break
    return spans


def extract_json(text: Optional[str]) -> Any:
    """
    Extract the largest well-formed JSON value from model output.

    Handles ```json fences, leading/trailing prose and truncated output.

    Raises:
        ValueError: If no JSON value can be recovered
    """
    if text is None or not text.strip():
        raise ValueError("Empty response")

    t = _strip_fences(text)

    # Fast path: full JSON
    try:
        return json.loads(t)
    except ValueError:
        pass

    spans = _balanced_spans(t)
    if not spans:
        raise ValueError("Could not parse JSON from model response")
    start, end = max(spans, key=lambda span: span[1] - span[0])
    return json.loads(t[start:end])


def _looks_like_voter(obj: Any) -> bool:
    return isinstance(obj, dict) and any(key in obj for key in VOTER_KEYS)


def _salvage_voters(text: str) -> List[dict[str, Any]]:
    """Recover individual voter objects from a truncated ``voters`` array."""
    t = _strip_fences(text)
    marker = t.find('"voters"')
    if marker < 0:
        return []
    bracket = t.find("[", marker)
    if bracket < 0:
        return []
    inner = t[bracket + 1:]
    voters = []
    for start, end in _balanced_spans(inner):
        obj = json.loads(inner[start:end])
        if _looks_like_voter(obj):
            voters.append(obj)
    return voters


def normalize_voter(obj: dict[str, Any]) -> dict[str, Any]:
    """Map the model's camelCase voter keys onto raw record keys."""
    return {
        "serial": obj.get("serial"),
        "epic": obj.get("epic") or "",
        "name": obj.get("name") or "",
        "relation_type": obj.get("relationType") or "",
        "relation_name": obj.get("relationName") or "",
        "house": obj.get("house") or "",
        "age": obj.get("age"),
        "gender": obj.get("gender") or "",
    }


def parse_page_payload(text: str) -> Tuple[Optional[HeaderInfo], List[dict[str, Any]]]:
    """
    Parse a model response into header and raw records.

    Args:
        text: Raw model response

    Returns:
        (header or None, raw record dicts)

    Raises:
        ValueError: If nothing usable can be recovered
    """
    try:
        data = extract_json(text)
    except ValueError:
        salvaged = _salvage_voters(text or "")
        if not salvaged:
            raise
        return None, [normalize_voter(v) for v in salvaged]

    if isinstance(data, list):
        return None, [normalize_voter(v) for v in data if _looks_like_voter(v)]

    if not isinstance(data, dict):
        raise ValueError(f"Unexpected JSON type: {type(data).__name__}")

    if "voters" not in data and "header" not in data:
        # The largest object was a single voter out of a truncated array
        salvaged = _salvage_voters(text)
        if salvaged:
            return None, [normalize_voter(v) for v in salvaged]
        if _looks_like_voter(data):
            return None, [normalize_voter(data)]
        raise ValueError("JSON has neither header nor voters")

    voters = data.get("voters")
    records = [normalize_voter(v) for v in voters if isinstance(v, dict)] if isinstance(voters, list) else []
    return HeaderInfo.from_payload(data.get("header")), records
