from __future__ import annotations

import logging

from ..domain.upload import InitiatedUpload
from .dto import InitiateUploadCommand
from .interfaces import MultipartStore
from .validation import require_key

logger = logging.getLogger(__name__)


class InitiateUploadUseCase:
    def __init__(self, *, store: MultipartStore) -> None:
        self._store = store

    def execute(self, command: InitiateUploadCommand) -> InitiatedUpload:
        key = require_key(command.key)
        upload_id = self._store.initiate_upload(
            key=key,
            content_type=command.content_type,
            metadata=dict(command.metadata or {}),
        )
        logger.info("Initiated multipart upload %s for %s", upload_id, key)
        return InitiatedUpload(upload_id=upload_id, key=key)
