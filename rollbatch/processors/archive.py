"""
Input staging: unpack a zip archive (or copy a single PDF) into a job's
work directory.
"""

from __future__ import annotations

import shutil
import time
import zipfile
from pathlib import Path
from typing import Optional

from ..config import Config
from ..exceptions import ArchiveExtractionError
from ..utils.file_utils import ensure_dir
from .base import BaseProcessor


class ArchiveExtractor(BaseProcessor):
    """
    Stages job input on local disk.

    Zip archives are integrity-checked before extraction and extracted
    member by member under a wall-clock deadline. Members that would land
    outside the destination directory are rejected.
    """

    name = "ArchiveExtractor"

    def __init__(self, config: Optional[Config] = None, timeout_sec: Optional[int] = None):
        super().__init__(config)
        self.timeout_sec = timeout_sec or self.config.pipeline.archive_timeout_sec

    def stage(self, source_path: Path, dest_dir: Path) -> Path:
        """
        Stage a job input.

        Args:
            source_path: Zip archive or single PDF
            dest_dir: Directory to stage into

        Returns:
            The directory holding the staged documents

        Raises:
            ArchiveExtractionError: If the input is missing or unreadable
        """
        source_path = Path(source_path)
        if not source_path.exists():
            raise ArchiveExtractionError("Input file not found", archive_path=str(source_path))

        ensure_dir(dest_dir)
        if source_path.suffix.lower() == ".pdf":
            shutil.copy2(source_path, Path(dest_dir) / source_path.name)
            return Path(dest_dir)
        return self.extract(source_path, dest_dir)

    def extract(self, archive_path: Path, dest_dir: Path) -> Path:
        """
        Extract a zip archive.

        Raises:
            ArchiveExtractionError: Not a zip, corrupt member, unsafe member
                path, or the deadline passed
        """
        archive_path = Path(archive_path)
        dest_dir = ensure_dir(dest_dir).resolve()
        deadline = time.monotonic() + self.timeout_sec

        if not zipfile.is_zipfile(archive_path):
            raise ArchiveExtractionError("Input is not a valid zip archive", archive_path=str(archive_path))

        try:
            with zipfile.ZipFile(archive_path) as zf:
                bad_member = zf.testzip()
                if bad_member is not None:
                    raise ArchiveExtractionError(
                        f"Corrupt archive member: {bad_member}", archive_path=str(archive_path)
                    )

                members = zf.infolist()
                for member in members:
                    if time.monotonic() > deadline:
                        raise ArchiveExtractionError(
                            f"Archive extraction timed out after {self.timeout_sec}s",
                            archive_path=str(archive_path),
                        )
                    target = (dest_dir / member.filename).resolve()
                    if target != dest_dir and dest_dir not in target.parents:
                        raise ArchiveExtractionError(
                            f"Unsafe path in archive: {member.filename}", archive_path=str(archive_path)
                        )
                    zf.extract(member, dest_dir)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, EOFError) as e:
            raise ArchiveExtractionError(
                f"Failed to extract archive ({type(e).__name__})", archive_path=str(archive_path)
            ) from e

        self.log_info(f"Extracted {len(members)} entries", archive=archive_path.name)
        return dest_dir
