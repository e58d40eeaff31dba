from __future__ import annotations

from ..domain.upload import SignedPartUrl
from .dto import SignPartCommand
from .interfaces import MultipartStore
from .validation import require_key, require_part_number, require_upload_id


class SignUploadPartUseCase:
    def __init__(self, *, store: MultipartStore, url_ttl_seconds: int) -> None:
        self._store = store
        self._url_ttl_seconds = max(int(url_ttl_seconds), 60)

    def execute(self, command: SignPartCommand) -> SignedPartUrl:
        key = require_key(command.key)
        upload_id = require_upload_id(command.upload_id)
        part_number = require_part_number(command.part_number)
        url = self._store.generate_part_url(
            key=key,
            upload_id=upload_id,
            part_number=part_number,
            expires_in_seconds=self._url_ttl_seconds,
        )
        return SignedPartUrl(
            key=key,
            upload_id=upload_id,
            part_number=part_number,
            url=url,
            expires_in=self._url_ttl_seconds,
        )
