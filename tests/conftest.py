import os
import tempfile
import zipfile
from pathlib import Path

import pytest

# Keep the global config (used by the loggers) out of the repository tree
_SCRATCH = tempfile.mkdtemp(prefix="rollbatch-tests-")
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("WORK_DIR", os.path.join(_SCRATCH, "work"))
os.environ.setdefault("DATA_DIR", os.path.join(_SCRATCH, "data"))
os.environ.setdefault("LOG_DIR", os.path.join(_SCRATCH, "logs"))

from rollbatch.config import Config  # noqa: E402
from rollbatch.persistence import JSONJobStore  # noqa: E402


@pytest.fixture
def config(tmp_path):
    cfg = Config(
        base_dir=tmp_path,
        work_dir=tmp_path / "work",
        data_dir=tmp_path / "data",
        logs_dir=tmp_path / "logs",
    )
    cfg.log_to_file = False
    cfg.pipeline.doc_concurrency = 3
    cfg.pipeline.page_concurrency = 5
    cfg.pipeline.min_unit_bytes = 500
    cfg.pipeline.insert_chunk_size = 200
    cfg.pipeline.header_pages = 2
    cfg.pipeline.unit_id_pattern = r"(?:HIN|ENG|TAM)-(\d+)"
    cfg.pipeline.default_state = "Uttar Pradesh"
    return cfg


@pytest.fixture
def store(tmp_path):
    return JSONJobStore(tmp_path / "store")


@pytest.fixture
def make_zip(tmp_path):
    """Build a zip archive from {member_name: size_in_bytes}."""

    def _make(members, name="rolls.zip"):
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            for member, size in members.items():
                zf.writestr(member, b"%" + b"x" * (size - 1))
        return path

    return _make


def write_pdf(path: Path, size: int = 1024) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"%PDF" + b"0" * (size - 4))
    return path
