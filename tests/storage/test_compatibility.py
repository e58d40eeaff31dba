import pytest

from direct_upload.storage.compatibility import (
    IncompatibleStorageClientError,
    ensure_compatible_storage_client,
    get_endpoint_host,
    is_incompatible,
    resolve_bucket,
    resolve_force_path_style,
    resolve_request_checksum_calculation,
    resolve_response_checksum_validation,
)

HETZNER = "https://fsn1.your-objectstorage.com"


@pytest.mark.parametrize(
    "endpoint, version, expected",
    [
        (HETZNER, "1.36.0", True),
        (HETZNER, "1.37.12", True),
        (HETZNER, "1.35.99", False),
        (HETZNER, "1.34.0", False),
        ("https://s3.eu-central-1.amazonaws.com", "1.37.12", False),
        ("http://minio:9000", "1.40.0", False),
        (None, "1.40.0", False),
        ("not a url", "1.40.0", False),
    ],
)
def test_is_incompatible(endpoint, version, expected):
    assert is_incompatible(endpoint, version) is expected


def test_unparsable_version_is_incompatible_only_for_restricted_vendor():
    assert is_incompatible(HETZNER, "banana") is True
    assert is_incompatible("http://minio:9000", "banana") is False


def test_ensure_raises_for_incompatible_pairing():
    with pytest.raises(IncompatibleStorageClientError) as excinfo:
        ensure_compatible_storage_client(HETZNER, "1.36.5")

    assert excinfo.value.report.endpoint_host == "fsn1.your-objectstorage.com"


def test_ensure_passes_for_older_client():
    report = ensure_compatible_storage_client(HETZNER, "1.35.0")

    assert report.compatible
    assert report.is_restricted_vendor


def test_get_endpoint_host():
    assert get_endpoint_host("https://nbg1.your-objectstorage.com/path") == (
        "nbg1.your-objectstorage.com"
    )
    assert get_endpoint_host("") is None


def test_resolve_bucket_uses_first_non_empty_candidate():
    assert resolve_bucket({"S3_BUCKET": " ", "BUCKET": "media", "BUCKET_NAME": "x"}) == (
        "media"
    )
    assert resolve_bucket({}) == ""


def test_checksum_resolvers():
    assert resolve_request_checksum_calculation(" when_supported ").value == "WHEN_SUPPORTED"
    assert resolve_request_checksum_calculation(None).value == "WHEN_REQUIRED"
    bad = resolve_request_checksum_calculation("NEVER")
    assert (bad.value, bad.invalid_value) == ("WHEN_REQUIRED", "NEVER")
    assert resolve_response_checksum_validation("when_supported").value == "WHEN_SUPPORTED"
    never = resolve_response_checksum_validation("NEVER")
    assert (never.value, never.invalid_value) == ("WHEN_REQUIRED", "NEVER")


def test_force_path_style_resolver():
    assert resolve_force_path_style("off").value is False
    assert resolve_force_path_style("YES").value is True
    invalid = resolve_force_path_style("maybe")
    assert invalid.value is True
    assert invalid.invalid_value == "maybe"
