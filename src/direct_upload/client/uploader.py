from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Union

import httpx

from direct_upload.client.api import (
    CompletedUpload,
    UploadApiClient,
    UploadApiError,
    UploadSettings,
)
from direct_upload.client.scheduler import (
    DEFAULT_MAX_RETRIES,
    PartScheduler,
    ProgressCallback,
    UploadFailedError,
)
from direct_upload.client.store import SessionStore, file_fingerprint
from direct_upload.multipart.keys import validate_object_key
from direct_upload.multipart.parts import count_parts, effective_part_size
from direct_upload.multipart.session import SessionStatus, UploadSession

logger = logging.getLogger(__name__)


class ResumableUploader:
    def __init__(
        self,
        api: UploadApiClient,
        *,
        store: Optional[SessionStore] = None,
        transfer_client: Optional[httpx.Client] = None,
        settings: Optional[UploadSettings] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_seconds: float = 0.5,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._api = api
        self._store = store or SessionStore()
        self._transfer_client = transfer_client
        self._settings = settings
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_seconds
        self._on_progress = on_progress

    def settings(self) -> UploadSettings:
        if self._settings is None:
            self._settings = self._api.get_settings()
        return self._settings

    def upload(
        self,
        source: Union[str, Path],
        key: str,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> CompletedUpload:
        path = Path(source)
        key = validate_object_key(key)
        fingerprint = file_fingerprint(path, key)
        session = self._store.load(fingerprint)
        if session is None:
            session = self._start(path, key, content_type, metadata)
            self._store.save(fingerprint, session)
        else:
            logger.info(
                "Resuming upload %s for %s: %s/%s parts already recorded",
                session.upload_id,
                session.key,
                len(session.parts),
                session.total_parts,
            )
            if session.status == SessionStatus.FAILED and not session.is_complete():
                session.transition(SessionStatus.INITIATED)

        scheduler = PartScheduler(
            self._api,
            transfer_client=self._transfer_client,
            max_concurrency=self.settings().max_concurrency,
            max_retries=self._max_retries,
            retry_backoff_seconds=self._retry_backoff,
            on_progress=self._on_progress,
            on_part_recorded=lambda s: self._store.save(fingerprint, s),
        )
        try:
            scheduler.run(path, session)
        finally:
            self._store.save(fingerprint, session)
            scheduler.close()

        if not session.is_complete():
            raise UploadFailedError(session.upload_id, session.missing_parts())
        return self._finalize(fingerprint, session)

    def abort(self, source: Union[str, Path], key: str) -> bool:
        """Abort the persisted session for this file, if there is one."""
        key = validate_object_key(key)
        fingerprint = file_fingerprint(Path(source), key)
        session = self._store.load(fingerprint)
        if session is None:
            return False
        self._api.abort(session.key, session.upload_id)
        session.transition(SessionStatus.ABORTED)
        self._store.discard(fingerprint)
        logger.info("Aborted upload %s for %s", session.upload_id, session.key)
        return True

    def _start(
        self,
        path: Path,
        key: str,
        content_type: Optional[str],
        metadata: Optional[Mapping[str, str]],
    ) -> UploadSession:
        file_size = path.stat().st_size
        part_size = effective_part_size(self.settings().part_size_bytes)
        total_parts = count_parts(file_size, part_size)
        initiated = self._api.initiate(key, content_type=content_type, metadata=metadata)
        logger.info(
            "Initiated upload %s for %s (%s bytes, %s parts)",
            initiated.upload_id,
            initiated.key,
            file_size,
            total_parts,
        )
        return UploadSession(
            upload_id=initiated.upload_id,
            key=initiated.key,
            part_size=part_size,
            total_parts=total_parts,
            file_size=file_size,
        )

    def _finalize(self, fingerprint: str, session: UploadSession) -> CompletedUpload:
        session.transition(SessionStatus.COMPLETING)
        self._store.save(fingerprint, session)
        try:
            completed = self._api.complete(
                session.key, session.upload_id, session.snapshot()
            )
        except UploadApiError:
            # Never resubmitted with a different part set; retry as-is or abort.
            session.transition(SessionStatus.FAILED)
            self._store.save(fingerprint, session)
            raise
        session.transition(SessionStatus.COMMITTED)
        self._store.discard(fingerprint)
        logger.info("Committed upload %s as %s", session.upload_id, completed.key)
        return completed
