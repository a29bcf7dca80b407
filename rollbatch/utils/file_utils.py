"""
File and path utility functions.

Unit discovery and ordering for batch inputs, plus small filesystem
helpers used for scratch directories.
"""

from __future__ import annotations

import os
import re
import shutil
from pathlib import Path
from typing import List, Optional

from ..models.unit import Unit

PDF_EXTENSION = ".pdf"
SYSTEM_DIRS = {"__MACOSX"}

_FIRST_NUMBER = re.compile(r"(\d+)")
_TRAILING_NUMBER = re.compile(r"(\d+)(?!.*\d)")


def ensure_dir(path: Path) -> Path:
    """
    Ensure directory exists, creating if necessary.

    Returns:
        The same path (for chaining)
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_dir(path: Optional[Path]) -> None:
    """Remove a directory tree if it exists; errors are ignored."""
    if path is not None:
        shutil.rmtree(path, ignore_errors=True)


def remove_file(path: Optional[Path]) -> None:
    """Remove a file if it exists."""
    if path is None:
        return
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def is_hidden_entry(name: str) -> bool:
    """Dot-files, AppleDouble ``._`` files and macOS archive metadata dirs."""
    return name.startswith(".") or name in SYSTEM_DIRS


def unit_id_from_filename(filename: str, pattern: str) -> Optional[str]:
    """
    Extract the part/booth number embedded in a roll filename.

    Example:
        "2025-EROLLGEN-S24-281-FinalRoll-HIN-117-WI.pdf" -> "117"

    Args:
        filename: File name (not path)
        pattern: Regex with one capturing group

    Returns:
        The identifier, or None if the pattern does not match
    """
    match = re.search(pattern, filename, flags=re.IGNORECASE)
    return match.group(1) if match else None


def unit_ordering_key(filename: str, pattern: str) -> int:
    """
    Sort key for a unit: embedded part number, else first number, else 0.
    """
    unit_id = unit_id_from_filename(filename, pattern)
    if unit_id is not None:
        return int(unit_id)
    match = _FIRST_NUMBER.search(filename)
    return int(match.group(1)) if match else 0


def discover_units(root: Path, pattern: str) -> List[Unit]:
    """
    Recursively find PDF documents under ``root``.

    Hidden and system entries are skipped. Directories are walked in
    sorted order so the discovery order (the tie-breaker of the stable
    sort by ordering key) is the same on every run.

    Args:
        root: Directory the archive was extracted into
        pattern: Unit id regex used for the ordering key

    Returns:
        Units in discovery order
    """
    units = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not is_hidden_entry(d))
        for filename in sorted(filenames):
            if is_hidden_entry(filename):
                continue
            if not filename.lower().endswith(PDF_EXTENSION):
                continue
            path = Path(dirpath) / filename
            units.append(Unit(
                path=path,
                size_bytes=path.stat().st_size,
                ordering_key=unit_ordering_key(filename, pattern),
            ))
    return units


def sort_units(units: List[Unit]) -> List[Unit]:
    """Stable sort by ordering key."""
    return sorted(units, key=lambda unit: unit.ordering_key)


def page_number(path: Path) -> int:
    """Page number from a rendered page filename (``page-007.png`` -> 7)."""
    match = _TRAILING_NUMBER.search(Path(path).stem)
    return int(match.group(1)) if match else 0
