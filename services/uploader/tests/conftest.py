from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import pytest

from direct_upload.multipart.reconcile import StoredPart

from services.uploader.application.errors import StorageRequestError
from services.uploader.config import UploaderConfig


class FakeMultipartStore:
    """In-memory stand-in for the object store's multipart API."""

    def __init__(self, bucket_name: str = "uploads") -> None:
        self.bucket_name = bucket_name
        self.uploads: Dict[str, Dict[str, object]] = {}
        self.completed: List[Tuple[str, str, List[Tuple[int, str]]]] = []
        self.aborted: List[Tuple[str, str]] = []
        self.calls: List[str] = []
        self.list_calls = 0
        self._counter = 0

    def initiate_upload(
        self,
        *,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str:
        self.calls.append("initiate")
        self._counter += 1
        upload_id = f"upload-{self._counter}"
        self.uploads[upload_id] = {"key": key, "parts": {}, "content_type": content_type}
        return upload_id

    def generate_part_url(
        self,
        *,
        key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str:
        self.calls.append("sign")
        return (
            f"https://store.test/{self.bucket_name}/{key}"
            f"?uploadId={upload_id}&partNumber={part_number}&X-Amz-Expires={expires_in_seconds}"
        )

    def put_part(self, upload_id: str, part_number: int, token: str) -> None:
        self.uploads[upload_id]["parts"][part_number] = token  # type: ignore[index]

    def iter_part_pages(
        self, *, key: str, upload_id: str, page_size: int
    ) -> Iterator[List[StoredPart]]:
        self.calls.append("list")
        if upload_id not in self.uploads:
            raise StorageRequestError(
                "list-parts", "upload not found", status_code=404, error_code="NoSuchUpload"
            )
        parts = sorted(self.uploads[upload_id]["parts"].items())  # type: ignore[union-attr]
        for start in range(0, len(parts), page_size):
            self.list_calls += 1
            yield [
                StoredPart(part_number=number, token=token)
                for number, token in parts[start : start + page_size]
            ]

    def complete_upload(
        self, *, key: str, upload_id: str, parts: List[Tuple[int, str]]
    ) -> Dict[str, Optional[str]]:
        self.calls.append("complete")
        self.completed.append((key, upload_id, list(parts)))
        return {
            "location": f"https://store.test/{self.bucket_name}/{key}",
            "bucket": self.bucket_name,
            "key": key,
            "token": '"final-etag-2"',
        }

    def abort_upload(self, *, key: str, upload_id: str) -> None:
        self.calls.append("abort")
        self.aborted.append((key, upload_id))
        self.uploads.pop(upload_id, None)


@pytest.fixture
def store() -> FakeMultipartStore:
    return FakeMultipartStore()


@pytest.fixture
def uploader_config() -> UploaderConfig:
    return UploaderConfig(
        storage_endpoint_url="http://minio:9000",
        storage_public_endpoint_url="http://localhost:9000",
        storage_region="us-east-1",
        storage_bucket="uploads",
        storage_access_key="AK",
        storage_secret_key="SK",
        part_size_bytes=1024,
        max_concurrency=3,
        list_parts_page_size=2,
    )
