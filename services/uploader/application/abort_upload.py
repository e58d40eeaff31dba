from __future__ import annotations

import logging

from ..domain.upload import AbortedUpload
from .dto import AbortUploadCommand
from .interfaces import MultipartStore
from .validation import require_key, require_upload_id

logger = logging.getLogger(__name__)


class AbortUploadUseCase:
    def __init__(self, *, store: MultipartStore) -> None:
        self._store = store

    def execute(self, command: AbortUploadCommand) -> AbortedUpload:
        key = require_key(command.key)
        upload_id = require_upload_id(command.upload_id)
        self._store.abort_upload(key=key, upload_id=upload_id)
        logger.info("Aborted multipart upload %s for %s", upload_id, key)
        return AbortedUpload(key=key, upload_id=upload_id)
