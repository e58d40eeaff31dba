from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from direct_upload.multipart.session import UploadSession

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL = timedelta(hours=24)


def default_store_dir() -> Path:
    return Path(os.getenv("DIRECT_UPLOAD_STATE_DIR", Path.home() / ".direct-upload"))


def file_fingerprint(source: Path, key: str) -> str:
    """Identify one file headed for one key, so a rerun finds its session."""
    stat = source.stat()
    raw = f"{source.resolve()}|{stat.st_size}|{stat.st_mtime_ns}|{key}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class SessionStore:
    """Durable JSON files holding upload sessions, one per fingerprint.

    Sessions older than ``ttl`` are dropped on load without telling the
    server; the store's own lifecycle rules reclaim the abandoned parts.
    """

    def __init__(
        self, directory: Optional[Path] = None, *, ttl: timedelta = DEFAULT_SESSION_TTL
    ) -> None:
        self._directory = Path(directory) if directory else default_store_dir()
        self._ttl = ttl

    @property
    def directory(self) -> Path:
        return self._directory

    def load(self, fingerprint: str) -> Optional[UploadSession]:
        path = self._path(fingerprint)
        if not path.exists():
            return None
        try:
            session = UploadSession.from_dict(json.loads(path.read_text("utf-8")))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable upload session %s: %s", path, exc)
            self.discard(fingerprint)
            return None
        if datetime.now(timezone.utc) - session.created_at > self._ttl:
            logger.info(
                "Discarding expired upload session %s for %s",
                session.upload_id,
                session.key,
            )
            self.discard(fingerprint)
            return None
        if session.is_terminal:
            self.discard(fingerprint)
            return None
        return session

    def save(self, fingerprint: str, session: UploadSession) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(session.to_dict(), handle, indent=2)
            os.replace(tmp_name, self._path(fingerprint))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def discard(self, fingerprint: str) -> None:
        self._path(fingerprint).unlink(missing_ok=True)

    def _path(self, fingerprint: str) -> Path:
        return self._directory / f"{fingerprint}.json"
