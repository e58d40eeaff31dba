from __future__ import annotations

from typing import Optional

from direct_upload.multipart.reconcile import UnresolvedPartsError

__all__ = ["InvalidUploadRequest", "StorageRequestError", "UnresolvedPartsError"]


class InvalidUploadRequest(ValueError):
    """Rejected before any store call."""


class StorageRequestError(RuntimeError):
    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code
        self.error_code = error_code
