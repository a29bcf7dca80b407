"""
Fetching input archives from S3.

Accepted locations: ``s3://bucket/key``, virtual-hosted
``https://bucket.s3.<region>.amazonaws.com/key`` and path-style
``https://s3.<region>.amazonaws.com/bucket/key``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple
from urllib.parse import unquote

import boto3
from botocore.config import Config as BotoConfig

from ..exceptions import ArchiveExtractionError, ConfigurationError
from ..logger import get_logger

if TYPE_CHECKING:
    from ..config import S3Config

logger = get_logger(__name__)

SUPPORTED_SUFFIXES = (".zip", ".pdf")

_LOCATION_PATTERNS = (
    # s3://bucket/key
    re.compile(r"^s3://(?P<bucket>[^/]+)/(?P<key>.+)$", re.IGNORECASE),
    # https://bucket.s3.region.amazonaws.com/key
    re.compile(r"^https?://(?P<bucket>[^./]+)\.s3[.-](?:[^/]+\.)?amazonaws\.com/(?P<key>.+)$", re.IGNORECASE),
    # https://s3.region.amazonaws.com/bucket/key
    re.compile(r"^https?://s3[.-](?:[^/]+\.)?amazonaws\.com/(?P<bucket>[^/]+)/(?P<key>.+)$", re.IGNORECASE),
)


class S3Location(NamedTuple):
    bucket: str
    key: str

    @property
    def filename(self) -> str:
        return Path(self.key).name

    def __str__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


def parse_s3_url(url: str) -> S3Location:
    """
    Split an S3 URL into bucket and key.

    Raises:
        ConfigurationError: If the URL is not a recognised S3 location
    """
    for pattern in _LOCATION_PATTERNS:
        match = pattern.match(url.strip())
        if match:
            return S3Location(match.group("bucket"), unquote(match.group("key")))
    raise ConfigurationError(f"Not an S3 URL: {url}", config_key="s3_input")


def create_s3_client(s3_config: S3Config):
    """boto3 client; falls back to boto3's default credential chain when no keys are configured."""
    options = dict(
        region_name=s3_config.region,
        config=BotoConfig(
            connect_timeout=s3_config.connect_timeout,
            read_timeout=s3_config.read_timeout,
            retries={"max_attempts": s3_config.max_retries},
        ),
    )
    if s3_config.has_credentials:
        options.update(
            aws_access_key_id=s3_config.access_key_id,
            aws_secret_access_key=s3_config.secret_access_key,
        )
        if s3_config.session_token:
            options["aws_session_token"] = s3_config.session_token
    return boto3.client("s3", **options)


def download_from_s3(url: str, s3_config: S3Config, download_dir: Path, client=None) -> Path:
    """
    Download an input archive (zip or single PDF) from S3.

    Args:
        url: S3 URL of the input
        s3_config: Region, credentials and timeouts
        download_dir: Local directory for the download
        client: Pre-built S3 client (tests)

    Returns:
        Local path of the downloaded file

    Raises:
        ConfigurationError: Unparseable URL or unsupported file type
        ArchiveExtractionError: The download itself failed
    """
    location = parse_s3_url(url)
    if not location.filename.lower().endswith(SUPPORTED_SUFFIXES):
        raise ConfigurationError(
            f"S3 input must be a .zip or .pdf file: {location.filename}",
            config_key="s3_input",
        )

    download_dir.mkdir(parents=True, exist_ok=True)
    target = download_dir / location.filename

    client = client or create_s3_client(s3_config)
    logger.info(f"Downloading {location}")
    try:
        client.download_file(location.bucket, location.key, str(target))
    except Exception as e:
        target.unlink(missing_ok=True)
        raise ArchiveExtractionError(f"S3 download failed: {type(e).__name__}", archive_path=str(location)) from e

    logger.info(f"Downloaded {target.stat().st_size} bytes to {target}")
    return target
