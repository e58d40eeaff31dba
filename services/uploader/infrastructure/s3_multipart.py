from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from direct_upload.multipart.reconcile import StoredPart
from direct_upload.storage.compatibility import supports_checksum_settings

from ..application.errors import StorageRequestError

logger = logging.getLogger(__name__)


def _storage_error(
    operation: str, exc: Union[ClientError, BotoCoreError]
) -> StorageRequestError:
    if not isinstance(exc, ClientError):
        return StorageRequestError(operation, str(exc))
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return StorageRequestError(
        operation,
        error.get("Message") or str(exc),
        status_code=status,
        error_code=error.get("Code"),
    )


def build_boto_config(
    *,
    force_path_style: bool,
    request_checksum_calculation: str,
    response_checksum_validation: str,
) -> BotoConfig:
    options: Dict[str, Any] = {
        "signature_version": "s3v4",
        "s3": {"addressing_style": "path" if force_path_style else "virtual"},
    }
    # Only botocore releases that send default checksums know these options.
    if supports_checksum_settings():
        options["request_checksum_calculation"] = request_checksum_calculation.lower()
        options["response_checksum_validation"] = response_checksum_validation.lower()
    return BotoConfig(**options)


class S3MultipartStore:
    def __init__(
        self,
        *,
        endpoint_url: str,
        public_endpoint_url: Optional[str] = None,
        region_name: str,
        bucket_name: str,
        access_key: str,
        secret_key: str,
        force_path_style: bool = True,
        request_checksum_calculation: str = "WHEN_REQUIRED",
        response_checksum_validation: str = "WHEN_REQUIRED",
        client: Any = None,
    ) -> None:
        self._bucket_name = bucket_name
        if client is None:
            config = build_boto_config(
                force_path_style=force_path_style,
                request_checksum_calculation=request_checksum_calculation,
                response_checksum_validation=response_checksum_validation,
            )
            # Use public endpoint for signature generation if provided
            client = boto3.client(
                "s3",
                endpoint_url=public_endpoint_url or endpoint_url,
                region_name=region_name,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                config=config,
            )
        self._client = client

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @property
    def client(self) -> Any:
        return self._client

    def initiate_upload(
        self,
        *,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str:
        params: Dict[str, Any] = {"Bucket": self._bucket_name, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = dict(metadata)
        try:
            response = self._client.create_multipart_upload(**params)
        except (ClientError, BotoCoreError) as exc:
            logger.error("create_multipart_upload failed for %s: %s", key, exc)
            raise _storage_error("initiate", exc) from exc
        return response["UploadId"]

    def generate_part_url(
        self,
        *,
        key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str:
        expires = max(expires_in_seconds, 60)
        try:
            return self._client.generate_presigned_url(
                ClientMethod="upload_part",
                Params={
                    "Bucket": self._bucket_name,
                    "Key": key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=expires,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "Signing part %s of %s (%s) failed: %s", part_number, key, upload_id, exc
            )
            raise _storage_error("sign-part", exc) from exc

    def iter_part_pages(
        self, *, key: str, upload_id: str, page_size: int
    ) -> Iterator[List[StoredPart]]:
        """Yield the store's recorded parts one page at a time."""
        marker: Optional[int] = None
        while True:
            params: Dict[str, Any] = {
                "Bucket": self._bucket_name,
                "Key": key,
                "UploadId": upload_id,
                "MaxParts": page_size,
            }
            if marker is not None:
                params["PartNumberMarker"] = marker
            try:
                response = self._client.list_parts(**params)
            except (ClientError, BotoCoreError) as exc:
                logger.error("list_parts failed for %s (%s): %s", key, upload_id, exc)
                raise _storage_error("list-parts", exc) from exc
            yield [
                StoredPart(
                    part_number=int(part["PartNumber"]),
                    token=part["ETag"],
                    size=int(part.get("Size", 0)),
                )
                for part in response.get("Parts", [])
            ]
            next_marker = response.get("NextPartNumberMarker")
            if not response.get("IsTruncated") or next_marker in (None, marker):
                return
            marker = int(next_marker)

    def complete_upload(
        self, *, key: str, upload_id: str, parts: List[Tuple[int, str]]
    ) -> Dict[str, Optional[str]]:
        try:
            response = self._client.complete_multipart_upload(
                Bucket=self._bucket_name,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [
                        {"ETag": token, "PartNumber": part_number}
                        for part_number, token in parts
                    ]
                },
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "complete_multipart_upload failed for %s (%s): %s", key, upload_id, exc
            )
            raise _storage_error("complete", exc) from exc
        return {
            "location": response.get("Location"),
            "bucket": response.get("Bucket") or self._bucket_name,
            "key": response.get("Key") or key,
            "token": response.get("ETag"),
        }

    def abort_upload(self, *, key: str, upload_id: str) -> None:
        try:
            self._client.abort_multipart_upload(
                Bucket=self._bucket_name, Key=key, UploadId=upload_id
            )
        except (ClientError, BotoCoreError) as exc:
            code = (
                exc.response.get("Error", {}).get("Code")
                if isinstance(exc, ClientError)
                else None
            )
            if code == "NoSuchUpload":
                logger.info("Upload %s for %s already gone; abort is a no-op", upload_id, key)
                return
            logger.error(
                "abort_multipart_upload failed for %s (%s): %s", key, upload_id, exc
            )
            raise _storage_error("abort", exc) from exc
