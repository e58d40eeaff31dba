from __future__ import annotations

import logging

from direct_upload.multipart.reconcile import (
    RequestedPart,
    reconcile_parts,
    split_known,
)

from ..domain.upload import CompletedUpload, CompletionPart
from .dto import CompleteUploadCommand
from .errors import InvalidUploadRequest, UnresolvedPartsError
from .interfaces import MultipartStore
from .validation import require_key, require_part_number, require_upload_id

logger = logging.getLogger(__name__)


class CompleteMultipartUploadUseCase:
    """Finalize an upload, recovering tokens the client lost.

    Parts reported without a token are looked up in the store's own part
    listing. Any part that still has no token fails the request, and the
    upload stays open for a retry with the same parts or an abort.
    """

    def __init__(self, *, store: MultipartStore, list_page_size: int = 1000) -> None:
        self._store = store
        self._list_page_size = list_page_size

    def execute(self, command: CompleteUploadCommand) -> CompletedUpload:
        key = require_key(command.key)
        upload_id = require_upload_id(command.upload_id)
        requested = [
            RequestedPart(
                part_number=require_part_number(part.part_number), token=part.token
            )
            for part in command.parts
        ]

        _, missing = split_known(requested)
        if missing:
            logger.info(
                "Reconciling %s part token(s) for %s (%s) from the store listing",
                len(missing),
                key,
                upload_id,
            )
        pages = self._store.iter_part_pages(
            key=key, upload_id=upload_id, page_size=self._list_page_size
        )
        try:
            resolved = reconcile_parts(requested, pages)
        except UnresolvedPartsError:
            logger.warning(
                "Cannot complete %s (%s): unresolved part tokens", key, upload_id
            )
            raise
        except ValueError as exc:
            raise InvalidUploadRequest(str(exc)) from exc

        result = self._store.complete_upload(
            key=key,
            upload_id=upload_id,
            parts=[(part.part_number, part.token) for part in resolved],
        )
        logger.info(
            "Completed multipart upload %s for %s with %s parts",
            upload_id,
            key,
            len(resolved),
        )
        return CompletedUpload(
            bucket=result.get("bucket") or self._store.bucket_name,
            key=result.get("key") or key,
            upload_id=upload_id,
            location=result.get("location"),
            token=result.get("token"),
            parts=[CompletionPart(p.part_number, p.token) for p in resolved],
        )
