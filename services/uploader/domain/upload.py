from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


class UploadState(str, Enum):
    """Server-observed states; parts uploading causes no server change."""

    INITIATED = "initiated"
    COMPLETING = "completing"
    COMMITTED = "committed"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class InitiatedUpload:
    upload_id: str
    key: str
    state: UploadState = UploadState.INITIATED


@dataclass(frozen=True)
class SignedPartUrl:
    key: str
    upload_id: str
    part_number: int
    url: str
    expires_in: int


@dataclass(frozen=True)
class CompletionPart:
    part_number: int
    token: str


@dataclass(frozen=True)
class CompletedUpload:
    bucket: str
    key: str
    upload_id: str
    location: Optional[str]
    token: Optional[str]
    parts: List[CompletionPart]
    state: UploadState = UploadState.COMMITTED


@dataclass(frozen=True)
class AbortedUpload:
    key: str
    upload_id: str
    state: UploadState = UploadState.ABORTED
