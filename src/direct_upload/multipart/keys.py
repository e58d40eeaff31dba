from __future__ import annotations

import re

MAX_KEY_BYTES = 1024

_SEGMENT_SPLIT = re.compile(r"[/\\]")


class InvalidObjectKey(ValueError):
    pass


def validate_object_key(key: object) -> str:
    """Return the trimmed key or raise InvalidObjectKey.

    Keys must be relative: no leading path-root marker and no ``..``
    segments, with either separator style.
    """
    if not isinstance(key, str):
        raise InvalidObjectKey("Key is required and must be a string")
    normalized = key.strip()
    if not normalized:
        raise InvalidObjectKey("Key is required and must be a string")
    if normalized.startswith(("/", "\\")):
        raise InvalidObjectKey("Key must not start with a path separator")
    if any(segment == ".." for segment in _SEGMENT_SPLIT.split(normalized)):
        raise InvalidObjectKey("Key must not contain parent directory segments")
    if len(normalized.encode("utf-8")) > MAX_KEY_BYTES:
        raise InvalidObjectKey(f"Key must be at most {MAX_KEY_BYTES} bytes")
    return normalized
