from dataclasses import dataclass, field
from typing import List, Mapping, Optional


@dataclass(frozen=True)
class InitiateUploadCommand:
    key: str
    content_type: Optional[str] = None
    metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SignPartCommand:
    key: str
    upload_id: str
    part_number: int


@dataclass(frozen=True)
class ReportedPart:
    part_number: int
    token: Optional[str] = None


@dataclass(frozen=True)
class CompleteUploadCommand:
    key: str
    upload_id: str
    parts: List[ReportedPart]


@dataclass(frozen=True)
class AbortUploadCommand:
    key: str
    upload_id: str
