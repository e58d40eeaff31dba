from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from direct_upload.multipart.parts import MIN_PART_SIZE_BYTES, effective_part_size
from direct_upload.storage.compatibility import (
    resolve_bucket,
    resolve_force_path_style,
    resolve_request_checksum_calculation,
    resolve_response_checksum_validation,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE_BYTES = 8 * 1024 * 1024
DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_URL_EXPIRY_SECONDS = 3600
MAX_LIST_PARTS_PAGE_SIZE = 1000


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _warn_fallback(name: str, provided: str, applied: object) -> None:
    logger.warning(
        "Invalid %s value provided, falling back to default: %s",
        name,
        {"provided_value": provided, "applied_value": applied},
    )


@dataclass(frozen=True)
class UploaderConfig:
    storage_endpoint_url: str
    storage_public_endpoint_url: str
    storage_region: str
    storage_bucket: str
    storage_access_key: str
    storage_secret_key: str
    part_size_bytes: int = DEFAULT_PART_SIZE_BYTES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    url_expiry_seconds: int = DEFAULT_URL_EXPIRY_SECONDS
    list_parts_page_size: int = MAX_LIST_PARTS_PAGE_SIZE
    force_path_style: bool = True
    request_checksum_calculation: str = "WHEN_REQUIRED"
    response_checksum_validation: str = "WHEN_REQUIRED"
    log_level: str = "INFO"

    @property
    def effective_part_size_bytes(self) -> int:
        return effective_part_size(self.part_size_bytes)


def load_config() -> UploaderConfig:
    bucket = resolve_bucket()
    if not bucket:
        raise ValueError(
            "Environment variable UPLOADER_STORAGE_BUCKET (or S3_BUCKET) is required"
        )

    max_concurrency = _env_int("UPLOADER_MAX_CONCURRENCY", DEFAULT_MAX_CONCURRENCY)
    if max_concurrency < 1:
        raise ValueError("Environment variable UPLOADER_MAX_CONCURRENCY must be >= 1")

    part_size = _env_int("UPLOADER_PART_SIZE_BYTES", DEFAULT_PART_SIZE_BYTES)
    if part_size < MIN_PART_SIZE_BYTES:
        logger.warning(
            "UPLOADER_PART_SIZE_BYTES=%s is below the store minimum; using %s",
            part_size,
            MIN_PART_SIZE_BYTES,
        )

    page_size = min(
        max(_env_int("UPLOADER_LIST_PARTS_PAGE_SIZE", MAX_LIST_PARTS_PAGE_SIZE), 1),
        MAX_LIST_PARTS_PAGE_SIZE,
    )

    path_style = resolve_force_path_style(os.getenv("UPLOADER_FORCE_PATH_STYLE"))
    if path_style.invalid_value is not None:
        _warn_fallback("UPLOADER_FORCE_PATH_STYLE", path_style.invalid_value, path_style.value)
    request_checksum = resolve_request_checksum_calculation(
        os.getenv("UPLOADER_REQUEST_CHECKSUM_CALCULATION")
    )
    if request_checksum.invalid_value is not None:
        _warn_fallback(
            "UPLOADER_REQUEST_CHECKSUM_CALCULATION",
            request_checksum.invalid_value,
            request_checksum.value,
        )
    response_checksum = resolve_response_checksum_validation(
        os.getenv("UPLOADER_RESPONSE_CHECKSUM_VALIDATION")
    )
    if response_checksum.invalid_value is not None:
        _warn_fallback(
            "UPLOADER_RESPONSE_CHECKSUM_VALIDATION",
            response_checksum.invalid_value,
            response_checksum.value,
        )

    endpoint = _require_env("UPLOADER_STORAGE_ENDPOINT_URL")
    return UploaderConfig(
        storage_endpoint_url=endpoint,
        storage_public_endpoint_url=os.getenv(
            "UPLOADER_STORAGE_PUBLIC_ENDPOINT_URL", endpoint
        ),
        storage_region=_require_env("UPLOADER_STORAGE_REGION"),
        storage_bucket=bucket,
        storage_access_key=_require_env("UPLOADER_STORAGE_ACCESS_KEY"),
        storage_secret_key=_require_env("UPLOADER_STORAGE_SECRET_KEY"),
        part_size_bytes=part_size,
        max_concurrency=max_concurrency,
        url_expiry_seconds=_env_int(
            "UPLOADER_URL_EXPIRY_SECONDS", DEFAULT_URL_EXPIRY_SECONDS
        ),
        list_parts_page_size=page_size,
        force_path_style=path_style.value,
        request_checksum_calculation=request_checksum.value,
        response_checksum_validation=response_checksum.value,
        log_level=os.getenv("UPLOADER_LOG_LEVEL", "INFO").upper(),
    )
