from __future__ import annotations

from typing import Iterator, List, Mapping, Optional, Protocol, Tuple

from direct_upload.multipart.reconcile import StoredPart


class MultipartStore(Protocol):
    @property
    def bucket_name(self) -> str: ...

    def initiate_upload(
        self,
        *,
        key: str,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> str: ...

    def generate_part_url(
        self,
        *,
        key: str,
        upload_id: str,
        part_number: int,
        expires_in_seconds: int,
    ) -> str: ...

    def iter_part_pages(
        self, *, key: str, upload_id: str, page_size: int
    ) -> Iterator[List[StoredPart]]: ...

    def complete_upload(
        self, *, key: str, upload_id: str, parts: List[Tuple[int, str]]
    ) -> Mapping[str, Optional[str]]: ...

    def abort_upload(self, *, key: str, upload_id: str) -> None: ...
