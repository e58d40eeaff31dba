from __future__ import annotations

from direct_upload.multipart.keys import InvalidObjectKey, validate_object_key
from direct_upload.multipart.parts import InvalidPartNumber, validate_part_number

from .errors import InvalidUploadRequest


def require_key(key: object) -> str:
    try:
        return validate_object_key(key)
    except InvalidObjectKey as exc:
        raise InvalidUploadRequest(str(exc)) from exc


def require_upload_id(upload_id: object) -> str:
    if not isinstance(upload_id, str) or not upload_id.strip():
        raise InvalidUploadRequest("Upload id is required and must be a string")
    return upload_id.strip()


def require_part_number(part_number: object) -> int:
    try:
        return validate_part_number(part_number)
    except InvalidPartNumber as exc:
        raise InvalidUploadRequest(str(exc)) from exc
