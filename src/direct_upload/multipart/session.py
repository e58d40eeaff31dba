from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from direct_upload.multipart.keys import validate_object_key
from direct_upload.multipart.parts import validate_part_number

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    INITIATED = "initiated"
    COMPLETING = "completing"
    COMMITTED = "committed"
    FAILED = "failed"
    ABORTED = "aborted"


_TERMINAL = {SessionStatus.COMMITTED, SessionStatus.ABORTED}

_TRANSITIONS = {
    SessionStatus.INITIATED: {SessionStatus.COMPLETING, SessionStatus.ABORTED},
    SessionStatus.COMPLETING: {
        SessionStatus.COMMITTED,
        SessionStatus.FAILED,
        SessionStatus.ABORTED,
    },
    # A failed finalize leaves the upload resumable or abortable.
    SessionStatus.FAILED: {
        SessionStatus.INITIATED,
        SessionStatus.COMPLETING,
        SessionStatus.ABORTED,
    },
    SessionStatus.COMMITTED: set(),
    SessionStatus.ABORTED: set(),
}


class SessionStateError(ValueError):
    pass


@dataclass(frozen=True)
class PartToken:
    part_number: int
    token: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"partNumber": self.part_number}
        if self.token:
            payload["token"] = self.token
        return payload


@dataclass
class UploadSession:
    """Client-side record of one in-progress multipart upload.

    This is the only progress record outside the store itself, so it is a
    plain value object that serializes to JSON and back without loss.
    """

    upload_id: str
    key: str
    part_size: int
    total_parts: int
    file_size: int = 0
    status: SessionStatus = SessionStatus.INITIATED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    parts: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.key = validate_object_key(self.key)
        if not self.upload_id:
            raise ValueError("Upload id is required")
        if self.part_size <= 0:
            raise ValueError("Part size must be positive")
        if self.total_parts < 1:
            raise ValueError("An upload has at least one part")

    def record(self, part_number: int, token: str) -> None:
        self._ensure_mutable()
        number = self._check_part_number(part_number)
        if not token:
            raise ValueError("Completion token must not be empty")
        previous = self.parts.get(number)
        if previous == token:
            return
        if previous is not None:
            logger.info(
                "Re-opened part %s of %s (%s): token replaced",
                number,
                self.key,
                self.upload_id,
            )
        self.parts[number] = token

    def reopen(self, part_number: int) -> None:
        """Forget a part's token so it must be transferred and recorded again."""
        self._ensure_mutable()
        number = self._check_part_number(part_number)
        if self.parts.pop(number, None) is not None and self.status in (
            SessionStatus.COMPLETING,
            SessionStatus.FAILED,
        ):
            self.status = SessionStatus.INITIATED

    def token_for(self, part_number: int) -> Optional[str]:
        return self.parts.get(part_number)

    def missing_parts(self) -> List[int]:
        return [n for n in range(1, self.total_parts + 1) if n not in self.parts]

    def is_complete(self) -> bool:
        return all(n in self.parts for n in range(1, self.total_parts + 1))

    def snapshot(self, include_missing: bool = False) -> List[PartToken]:
        if include_missing:
            return [
                PartToken(part_number=n, token=self.parts.get(n))
                for n in range(1, self.total_parts + 1)
            ]
        return [PartToken(part_number=n, token=self.parts[n]) for n in sorted(self.parts)]

    def transition(self, target: SessionStatus) -> None:
        if target == self.status:
            return
        if target not in _TRANSITIONS[self.status]:
            raise SessionStateError(
                f"Cannot move upload {self.upload_id} from {self.status.value} "
                f"to {target.value}"
            )
        self.status = target

    @property
    def is_terminal(self) -> bool:
        return self.status in _TERMINAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uploadId": self.upload_id,
            "key": self.key,
            "partSize": self.part_size,
            "totalParts": self.total_parts,
            "fileSize": self.file_size,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat().replace("+00:00", "Z"),
            "parts": {str(n): token for n, token in sorted(self.parts.items())},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "UploadSession":
        created_raw = payload.get("createdAt")
        created_at = (
            datetime.fromisoformat(str(created_raw).replace("Z", "+00:00"))
            if created_raw
            else datetime.now(timezone.utc)
        )
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        session = cls(
            upload_id=str(payload["uploadId"]),
            key=str(payload["key"]),
            part_size=int(payload["partSize"]),
            total_parts=int(payload["totalParts"]),
            file_size=int(payload.get("fileSize", 0)),
            status=SessionStatus(payload.get("status", SessionStatus.INITIATED.value)),
            created_at=created_at,
        )
        for raw_number, token in dict(payload.get("parts") or {}).items():
            number = session._check_part_number(int(raw_number))
            session.parts[number] = str(token)
        return session

    def _check_part_number(self, part_number: int) -> int:
        number = validate_part_number(part_number)
        if number > self.total_parts:
            raise ValueError(
                f"Part {number} is outside this upload's {self.total_parts} parts"
            )
        return number

    def _ensure_mutable(self) -> None:
        if self.is_terminal:
            raise SessionStateError(
                f"Upload {self.upload_id} is {self.status.value} and can no longer change"
            )
