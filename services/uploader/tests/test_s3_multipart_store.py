from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from direct_upload.storage.compatibility import (
    REQUEST_CHECKSUM_VALUES,
    RESPONSE_CHECKSUM_VALUES,
    resolve_response_checksum_validation,
)
from services.uploader.application.errors import StorageRequestError
from services.uploader.infrastructure.s3_multipart import S3MultipartStore


def _client_error(code: str, status: int, operation: str = "Op") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} happened"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def _store(client: MagicMock) -> S3MultipartStore:
    return S3MultipartStore(
        endpoint_url="http://minio:9000",
        region_name="us-east-1",
        bucket_name="uploads",
        access_key="AK",
        secret_key="SK",
        client=client,
    )


def test_initiate_passes_content_type_and_metadata():
    client = MagicMock()
    client.create_multipart_upload.return_value = {"UploadId": "abc"}

    upload_id = _store(client).initiate_upload(
        key="a.bin", content_type="video/mp4", metadata={"owner": "me"}
    )

    assert upload_id == "abc"
    client.create_multipart_upload.assert_called_once_with(
        Bucket="uploads", Key="a.bin", ContentType="video/mp4", Metadata={"owner": "me"}
    )


def test_generate_part_url_signs_upload_part():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://signed"

    url = _store(client).generate_part_url(
        key="a.bin", upload_id="abc", part_number=3, expires_in_seconds=3600
    )

    assert url == "https://signed"
    client.generate_presigned_url.assert_called_once_with(
        ClientMethod="upload_part",
        Params={"Bucket": "uploads", "Key": "a.bin", "UploadId": "abc", "PartNumber": 3},
        ExpiresIn=3600,
    )


def test_iter_part_pages_follows_continuation_marker():
    client = MagicMock()
    client.list_parts.side_effect = [
        {
            "Parts": [{"PartNumber": 1, "ETag": '"e1"', "Size": 5}],
            "IsTruncated": True,
            "NextPartNumberMarker": 1,
        },
        {
            "Parts": [{"PartNumber": 2, "ETag": '"e2"', "Size": 3}],
            "IsTruncated": False,
        },
    ]

    pages = list(_store(client).iter_part_pages(key="a.bin", upload_id="abc", page_size=1))

    assert [[(p.part_number, p.token) for p in page] for page in pages] == [
        [(1, '"e1"')],
        [(2, '"e2"')],
    ]
    second_call = client.list_parts.call_args_list[1]
    assert second_call.kwargs["PartNumberMarker"] == 1
    assert second_call.kwargs["MaxParts"] == 1


def test_complete_sends_parts_in_given_order():
    client = MagicMock()
    client.complete_multipart_upload.return_value = {
        "Location": "https://loc",
        "Bucket": "uploads",
        "Key": "a.bin",
        "ETag": '"final"',
    }

    result = _store(client).complete_upload(
        key="a.bin", upload_id="abc", parts=[(1, "e1"), (2, "e2")]
    )

    assert result == {
        "location": "https://loc",
        "bucket": "uploads",
        "key": "a.bin",
        "token": '"final"',
    }
    kwargs = client.complete_multipart_upload.call_args.kwargs
    assert kwargs["MultipartUpload"] == {
        "Parts": [{"ETag": "e1", "PartNumber": 1}, {"ETag": "e2", "PartNumber": 2}]
    }


def test_abort_of_missing_upload_is_a_no_op():
    client = MagicMock()
    client.abort_multipart_upload.side_effect = _client_error("NoSuchUpload", 404)

    _store(client).abort_upload(key="a.bin", upload_id="abc")


def test_store_errors_carry_status_code():
    client = MagicMock()
    client.create_multipart_upload.side_effect = _client_error("AccessDenied", 403)

    with pytest.raises(StorageRequestError) as excinfo:
        _store(client).initiate_upload(key="a.bin")

    assert excinfo.value.status_code == 403
    assert excinfo.value.error_code == "AccessDenied"


@pytest.mark.parametrize("request_checksum", sorted(REQUEST_CHECKSUM_VALUES))
@pytest.mark.parametrize("response_checksum", sorted(RESPONSE_CHECKSUM_VALUES))
def test_real_client_accepts_every_checksum_setting(request_checksum, response_checksum):
    store = S3MultipartStore(
        endpoint_url="http://minio:9000",
        region_name="us-east-1",
        bucket_name="uploads",
        access_key="AK",
        secret_key="SK",
        request_checksum_calculation=request_checksum,
        response_checksum_validation=response_checksum,
    )

    assert store.client.meta.endpoint_url == "http://minio:9000"


def test_unsupported_response_checksum_falls_back_to_a_buildable_client():
    resolved = resolve_response_checksum_validation("NEVER")

    S3MultipartStore(
        endpoint_url="http://minio:9000",
        region_name="us-east-1",
        bucket_name="uploads",
        access_key="AK",
        secret_key="SK",
        response_checksum_validation=resolved.value,
    )

    assert resolved.invalid_value == "NEVER"


def _unreachable() -> EndpointConnectionError:
    return EndpointConnectionError(endpoint_url="http://minio:9000")


@pytest.mark.parametrize(
    "method, call",
    [
        ("create_multipart_upload", lambda s: s.initiate_upload(key="a.bin")),
        (
            "list_parts",
            lambda s: list(s.iter_part_pages(key="a.bin", upload_id="abc", page_size=10)),
        ),
        (
            "complete_multipart_upload",
            lambda s: s.complete_upload(key="a.bin", upload_id="abc", parts=[(1, "e1")]),
        ),
        ("abort_multipart_upload", lambda s: s.abort_upload(key="a.bin", upload_id="abc")),
    ],
)
def test_connection_failures_become_storage_errors(method, call):
    client = MagicMock()
    getattr(client, method).side_effect = _unreachable()

    with pytest.raises(StorageRequestError) as excinfo:
        call(_store(client))

    assert excinfo.value.status_code is None
    assert "minio" in str(excinfo.value)


def test_read_timeout_while_listing_is_a_storage_error():
    client = MagicMock()
    client.list_parts.side_effect = ReadTimeoutError(endpoint_url="http://minio:9000")

    with pytest.raises(StorageRequestError) as excinfo:
        next(_store(client).iter_part_pages(key="a.bin", upload_id="abc", page_size=10))

    assert excinfo.value.operation == "list-parts"
