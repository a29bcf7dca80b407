"""
Runtime configuration.

Every setting has a default and can be overridden through the environment
or a ``.env`` file at the project root (real environment variables win).

Usage:
    from rollbatch.config import get_config
    config = get_config()
    config.pipeline.doc_concurrency   # DOC_CONCURRENCY, default 3
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env", override=False)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def read_env(key: str, default: Any, cast: Optional[Callable[[str], Any]] = None) -> Any:
    """
    Read one environment variable.

    ``cast`` defaults to the type of ``default``. Blank or malformed values
    fall back to ``default``.
    """
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    cast = cast or type(default)
    if cast is bool:
        lowered = raw.lower()
        return True if lowered in _TRUTHY else False if lowered in _FALSY else default
    try:
        return cast(raw)
    except ValueError:
        return default


def env_field(key: str, default: Any, cast: Optional[Callable[[str], Any]] = None):
    """Dataclass field whose default is read from ``key`` at construction time."""
    return field(default_factory=lambda: read_env(key, default, cast))


GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


@dataclass
class AIConfig:
    """Vision model used by the "vision" strategy."""
    provider: str = env_field("AI_PROVIDER", "Groq")
    api_key: str = env_field("AI_API_KEY", "")
    model: str = env_field("AI_MODEL", "meta-llama/llama-4-maverick-17b-128e-instruct")
    base_url: str = env_field("AI_BASE_URL", "")
    timeout_sec: int = env_field("AI_TIMEOUT_SEC", 120)
    max_tokens: int = env_field("AI_MAX_TOKENS", 16384)

    max_attempts: int = env_field("AI_MAX_ATTEMPTS", 3)
    retry_delay_sec: float = env_field("AI_RETRY_DELAY_SEC", 1.0)
    retry_jitter_sec: float = env_field("AI_RETRY_JITTER_SEC", 1.0)

    # USD per million tokens; unset means cost is not tracked
    input_price: Optional[float] = env_field("AI_INPUT_COST_PER_1M_USD", None, float)
    output_price: Optional[float] = env_field("AI_OUTPUT_COST_PER_1M_USD", None, float)

    def get_normalized_base_url(self) -> str:
        """
        Base URL for the OpenAI SDK, or "" for the SDK default.

        A full ``.../chat/completions`` endpoint is cut back to its base.
        """
        url = self.base_url.strip().rstrip("/")
        if not url:
            return GEMINI_OPENAI_BASE_URL if self.provider.lower() == "gemini" else ""
        url = url[: -len("/chat/completions")] if url.endswith("/chat/completions") else url
        return url.rstrip("/") + "/"

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> Optional[float]:
        if self.input_price is None and self.output_price is None:
            return None
        return (
            input_tokens * (self.input_price or 0.0) + output_tokens * (self.output_price or 0.0)
        ) / 1_000_000


@dataclass
class S3Config:
    """Credentials and client tuning for ``--s3-input``."""
    access_key_id: str = env_field("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = env_field("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = env_field("AWS_SESSION_TOKEN", "")
    region: str = env_field("AWS_REGION", "ap-south-1")
    connect_timeout: int = env_field("S3_CONNECT_TIMEOUT", 10)
    read_timeout: int = env_field("S3_READ_TIMEOUT", 60)
    max_retries: int = env_field("S3_MAX_RETRIES", 3)

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


@dataclass
class OCRConfig:
    """Tesseract settings for the "ocr" strategy."""
    languages: str = env_field("OCR_LANGUAGES", "hin+eng")
    tesseract_path: str = env_field("TESSERACT_PATH", "")
    page_segmentation_mode: int = env_field("OCR_PSM", 6)


@dataclass
class PipelineConfig:
    """Concurrency bounds, thresholds and timeouts of the batch pipeline."""
    # Outer pool over documents, inner pool over pages of one document
    doc_concurrency: int = env_field("DOC_CONCURRENCY", 3)
    page_concurrency: int = env_field("PAGE_CONCURRENCY", 5)

    render_dpi: int = env_field("RENDER_DPI", 150)
    rasterizer: str = env_field("RASTERIZER", "pdf2image", str.lower)
    rasterize_timeout_sec: int = env_field("RASTERIZE_TIMEOUT_SEC", 300)
    archive_timeout_sec: int = env_field("ARCHIVE_TIMEOUT_SEC", 600)

    # "vision" or "ocr"
    strategy: str = env_field("EXTRACTION_STRATEGY", "vision", str.lower)

    min_unit_bytes: int = env_field("MIN_UNIT_BYTES", 500)
    insert_chunk_size: int = env_field("INSERT_CHUNK_SIZE", 200)
    header_pages: int = env_field("HEADER_PAGES", 2)

    unit_id_pattern: str = env_field("UNIT_ID_PATTERN", r"(?:HIN|ENG|TAM)-(\d+)")
    default_state: str = env_field("DEFAULT_STATE", "Uttar Pradesh")


@dataclass
class DBConfig:
    """PostgreSQL connection for ``--store postgres``."""
    host: str = env_field("DB_HOST", "")
    port: int = env_field("DB_PORT", 5432)
    name: str = env_field("DB_NAME", "")
    user: str = env_field("DB_USER", "")
    password: str = env_field("DB_PASSWORD", "")
    schema: str = env_field("DB_SCHEMA", "public")
    ssl_mode: str = env_field("DB_SSL_MODE", "prefer")

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.name and self.user)


@dataclass
class Config:
    """
    Application configuration.

    Directories default to ``WORK_DIR``, ``DATA_DIR`` and ``LOG_DIR``
    resolved against ``base_dir`` (absolute values are used as is).
    Set DEBUG=1 for debug logging.
    """
    base_dir: Path = field(default_factory=lambda: Path(__file__).resolve().parent.parent)

    work_dir: Optional[Path] = None
    data_dir: Optional[Path] = None
    logs_dir: Optional[Path] = None

    debug: bool = env_field("DEBUG", False)
    log_to_file: bool = env_field("LOG_TO_FILE", True)
    keep_intermediate: bool = env_field("KEEP_INTERMEDIATE", False)

    ai: AIConfig = field(default_factory=AIConfig)
    s3: S3Config = field(default_factory=S3Config)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    db: DBConfig = field(default_factory=DBConfig)

    def __post_init__(self):
        self.work_dir = self.work_dir or self.base_dir / read_env("WORK_DIR", "work")
        self.data_dir = self.data_dir or self.base_dir / read_env("DATA_DIR", "data")
        self.logs_dir = self.logs_dir or self.base_dir / read_env("LOG_DIR", "logs")
        for directory in (self.work_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def keep_intermediate_files(self) -> bool:
        """Job work directories survive the run only in debug mode with KEEP_INTERMEDIATE=1."""
        return self.debug and self.keep_intermediate

    def get_job_work_dir(self, job_id: str) -> Path:
        return self.work_dir / f"job_{job_id}"


_config: Optional[Config] = None


def get_config() -> Config:
    """Process-wide configuration, created on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config

