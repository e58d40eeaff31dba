"""Storage client compatibility checks and client setting resolvers.

Some S3-compatible vendors reject the request checksums that newer botocore
releases send by default. Only large multipart uploads are affected, so the
server refuses to start instead of failing on the uploads that cost the most
to retry.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Generic, Mapping, Optional, TypeVar
from urllib.parse import urlparse

from packaging.version import InvalidVersion, Version

logger = logging.getLogger(__name__)

HETZNER_ENDPOINT_SUFFIX = ".your-objectstorage.com"
HETZNER_MIN_INCOMPATIBLE_VERSION = "1.36.0"
HETZNER_MAX_COMPATIBLE_VERSION = "1.35.99"
HETZNER_DOCUMENTATION = (
    "https://docs.hetzner.com/storage/object-storage/troubleshooting/"
    "s3-compatible-clients/#aws-cli-and-aws-sdks"
)

DEFAULT_REQUEST_CHECKSUM_CALCULATION = "WHEN_REQUIRED"
DEFAULT_RESPONSE_CHECKSUM_VALIDATION = "WHEN_REQUIRED"

REQUEST_CHECKSUM_VALUES = frozenset({"WHEN_SUPPORTED", "WHEN_REQUIRED"})
RESPONSE_CHECKSUM_VALUES = frozenset({"WHEN_SUPPORTED", "WHEN_REQUIRED"})
_TRUE_WORDS = frozenset({"true", "1", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "0", "no", "off"})

_BUCKET_ENV_CANDIDATES = (
    "UPLOADER_STORAGE_BUCKET",
    "S3_BUCKET",
    "S3_BUCKET_NAME",
    "BUCKET",
    "BUCKET_NAME",
)

T = TypeVar("T")


class IncompatibleStorageClientError(RuntimeError):
    def __init__(self, report: "CompatibilityReport") -> None:
        self.report = report
        super().__init__(
            f"Storage client botocore {report.client_version} is incompatible with "
            f"{report.endpoint_host}; use botocore <= {HETZNER_MAX_COMPATIBLE_VERSION}"
        )


@dataclass(frozen=True)
class CompatibilityReport:
    client_version: str
    endpoint_host: Optional[str]
    is_restricted_vendor: bool
    compatible: bool


@dataclass(frozen=True)
class ResolvedSetting(Generic[T]):
    value: T
    invalid_value: Optional[str] = None


def get_endpoint_host(endpoint: Optional[str]) -> Optional[str]:
    if not isinstance(endpoint, str) or not endpoint.strip():
        return None
    try:
        host = urlparse(endpoint.strip()).hostname
    except ValueError:
        return None
    return host or None


def is_restricted_endpoint(endpoint: Optional[str]) -> bool:
    host = get_endpoint_host(endpoint)
    return host is not None and host.endswith(HETZNER_ENDPOINT_SUFFIX)


def get_storage_client_version() -> str:
    import botocore

    return botocore.__version__


def is_incompatible(endpoint: Optional[str], client_version: str) -> bool:
    """True when this client version is known to break on this endpoint.

    An unparsable version is treated as incompatible only for the
    restricted vendor.
    """
    if not is_restricted_endpoint(endpoint):
        return False
    try:
        return Version(client_version) >= Version(HETZNER_MIN_INCOMPATIBLE_VERSION)
    except InvalidVersion:
        return True


def check_compatibility(
    endpoint: Optional[str], client_version: Optional[str] = None
) -> CompatibilityReport:
    version = client_version or get_storage_client_version()
    return CompatibilityReport(
        client_version=version,
        endpoint_host=get_endpoint_host(endpoint),
        is_restricted_vendor=is_restricted_endpoint(endpoint),
        compatible=not is_incompatible(endpoint, version),
    )


def ensure_compatible_storage_client(
    endpoint: Optional[str], client_version: Optional[str] = None
) -> CompatibilityReport:
    """Raise IncompatibleStorageClientError for a known-bad pairing.

    Callers decide whether to exit; this only logs and raises.
    """
    report = check_compatibility(endpoint, client_version)
    if not report.compatible:
        logger.error(
            "Incompatible botocore version detected for Hetzner Object Storage: %s",
            {
                "endpoint_host": report.endpoint_host,
                "botocore_version": report.client_version,
                "max_supported_version": HETZNER_MAX_COMPATIBLE_VERSION,
                "documentation": HETZNER_DOCUMENTATION,
            },
        )
        raise IncompatibleStorageClientError(report)
    return report


def supports_checksum_settings(client_version: Optional[str] = None) -> bool:
    version = client_version or get_storage_client_version()
    try:
        return Version(version) >= Version(HETZNER_MIN_INCOMPATIBLE_VERSION)
    except InvalidVersion:
        return False


def resolve_bucket(env: Optional[Mapping[str, str]] = None) -> str:
    source = os.environ if env is None else env
    for name in _BUCKET_ENV_CANDIDATES:
        value = source.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _resolve_choice(
    value: Optional[str], allowed: frozenset, default: str
) -> ResolvedSetting[str]:
    if not isinstance(value, str):
        return ResolvedSetting(default)
    normalized = value.strip().upper()
    if normalized in allowed:
        return ResolvedSetting(normalized)
    return ResolvedSetting(default, invalid_value=value)


def resolve_request_checksum_calculation(value: Optional[str]) -> ResolvedSetting[str]:
    return _resolve_choice(
        value, REQUEST_CHECKSUM_VALUES, DEFAULT_REQUEST_CHECKSUM_CALCULATION
    )


def resolve_response_checksum_validation(value: Optional[str]) -> ResolvedSetting[str]:
    return _resolve_choice(
        value, RESPONSE_CHECKSUM_VALUES, DEFAULT_RESPONSE_CHECKSUM_VALIDATION
    )


def resolve_force_path_style(
    value: Optional[str], default: bool = True
) -> ResolvedSetting[bool]:
    if not isinstance(value, str):
        return ResolvedSetting(default)
    normalized = value.strip().lower()
    if normalized in _TRUE_WORDS:
        return ResolvedSetting(True)
    if normalized in _FALSE_WORDS:
        return ResolvedSetting(False)
    return ResolvedSetting(default, invalid_value=value)
