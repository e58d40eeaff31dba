from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from direct_upload.multipart.session import PartToken

logger = logging.getLogger(__name__)

UPLOADS_PREFIX = "/v1/uploads"


class UploadApiError(RuntimeError):
    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def transient(self) -> bool:
        """Network failures, throttling and 5xx are worth retrying."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500


@dataclass(frozen=True)
class UploadSettings:
    part_size_bytes: int
    max_concurrency: int
    url_expiry_seconds: int = 3600


@dataclass(frozen=True)
class InitiatedUpload:
    upload_id: str
    key: str


@dataclass(frozen=True)
class CompletedUpload:
    location: Optional[str]
    bucket: str
    key: str
    token: Optional[str]


class UploadApiClient:
    """Talks to the signer service. Never carries file bytes."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=dict(headers or {}),
        )

    def __enter__(self) -> "UploadApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._http.close()

    def get_settings(self) -> UploadSettings:
        data = self._request("GET", "/config")
        return UploadSettings(
            part_size_bytes=int(_field(data, "partSizeBytes")),
            max_concurrency=int(_field(data, "maxConcurrency")),
            url_expiry_seconds=int(data.get("urlExpirySeconds", 3600)),
        )

    def initiate(
        self,
        key: str,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
    ) -> InitiatedUpload:
        payload: Dict[str, Any] = {"key": key}
        if content_type:
            payload["contentType"] = content_type
        if metadata:
            payload["metadata"] = dict(metadata)
        data = self._request("POST", "/multipart", json=payload)
        return InitiatedUpload(
            upload_id=_field(data, "uploadId"), key=_field(data, "key")
        )

    def sign_part(self, key: str, upload_id: str, part_number: int) -> str:
        data = self._request(
            "POST",
            "/multipart/sign-part",
            json={"key": key, "uploadId": upload_id, "partNumber": part_number},
        )
        return _field(data, "url")

    def complete(
        self, key: str, upload_id: str, parts: Sequence[PartToken]
    ) -> CompletedUpload:
        data = self._request(
            "POST",
            "/multipart/complete",
            json={
                "key": key,
                "uploadId": upload_id,
                "parts": [part.to_payload() for part in parts],
            },
        )
        return CompletedUpload(
            location=data.get("location"),
            bucket=_field(data, "bucket"),
            key=_field(data, "key"),
            token=data.get("token"),
        )

    def abort(self, key: str, upload_id: str) -> None:
        self._request(
            "POST", "/multipart/abort", json={"key": key, "uploadId": upload_id}
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self._http.request(method, f"{UPLOADS_PREFIX}{path}", **kwargs)
        except httpx.TransportError as exc:
            raise UploadApiError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise UploadApiError(
                f"{method} {path} returned {response.status_code}: "
                f"{_error_detail(response)}",
                status_code=response.status_code,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise UploadApiError(
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise UploadApiError(
                f"{method} {path} returned an unexpected body: {data!r}",
                status_code=response.status_code,
            )
        return data


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "detail" in body:
        return str(body["detail"])
    return str(body)


def _field(data: Dict[str, Any], name: str) -> Any:
    try:
        return data[name]
    except KeyError:
        raise UploadApiError(f"Response is missing {name!r}") from None
