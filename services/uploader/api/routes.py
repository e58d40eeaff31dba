from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..application.abort_upload import AbortUploadUseCase
from ..application.complete_multipart_upload import CompleteMultipartUploadUseCase
from ..application.dto import (
    AbortUploadCommand,
    CompleteUploadCommand,
    InitiateUploadCommand,
    ReportedPart,
    SignPartCommand,
)
from ..application.errors import (
    InvalidUploadRequest,
    StorageRequestError,
    UnresolvedPartsError,
)
from ..application.initiate_upload import InitiateUploadUseCase
from ..application.sign_upload_part import SignUploadPartUseCase
from ..config import UploaderConfig
from ..domain.upload import CompletedUpload

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UploadConfigResponse(CamelModel):
    part_size_bytes: int
    max_concurrency: int
    url_expiry_seconds: int


class InitiateUploadRequest(CamelModel):
    key: str
    content_type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)


class InitiateUploadResponse(CamelModel):
    upload_id: str
    key: str


class SignPartRequest(CamelModel):
    key: str
    upload_id: str
    part_number: int


class SignPartResponse(CamelModel):
    url: str
    expires_in: int


class CompletionPartPayload(CamelModel):
    part_number: int
    token: Optional[str] = None


class CompleteUploadRequest(CamelModel):
    key: str
    upload_id: str
    parts: List[CompletionPartPayload]


class CompleteUploadResponse(CamelModel):
    location: Optional[str]
    bucket: str
    key: str
    token: Optional[str]

    @classmethod
    def from_domain(cls, completed: CompletedUpload) -> "CompleteUploadResponse":
        return cls(
            location=completed.location,
            bucket=completed.bucket,
            key=completed.key,
            token=completed.token,
        )


class AbortUploadRequest(CamelModel):
    key: str
    upload_id: str


class AbortUploadResponse(CamelModel):
    status: str
    key: str
    upload_id: str


def _storage_http_error(exc: StorageRequestError) -> HTTPException:
    code = exc.status_code if exc.status_code and exc.status_code >= 400 else 502
    return HTTPException(
        status_code=code,
        detail={"message": str(exc), "code": exc.error_code},
    )


def create_router(
    config: UploaderConfig,
    initiate_use_case: InitiateUploadUseCase,
    sign_part_use_case: SignUploadPartUseCase,
    complete_use_case: CompleteMultipartUploadUseCase,
    abort_use_case: AbortUploadUseCase,
) -> APIRouter:
    router = APIRouter()
    uploads_router = APIRouter(prefix="/v1/uploads", tags=["uploads"])

    @uploads_router.get("/config", response_model=UploadConfigResponse)
    async def upload_config_endpoint():
        return UploadConfigResponse(
            part_size_bytes=config.effective_part_size_bytes,
            max_concurrency=config.max_concurrency,
            url_expiry_seconds=config.url_expiry_seconds,
        )

    @uploads_router.post(
        "/multipart", response_model=InitiateUploadResponse, status_code=201
    )
    def initiate_upload_endpoint(payload: InitiateUploadRequest):
        command = InitiateUploadCommand(
            key=payload.key,
            content_type=payload.content_type,
            metadata=payload.metadata,
        )
        try:
            initiated = initiate_use_case.execute(command)
        except InvalidUploadRequest as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageRequestError as exc:
            raise _storage_http_error(exc) from exc
        return InitiateUploadResponse(upload_id=initiated.upload_id, key=initiated.key)

    @uploads_router.post("/multipart/sign-part", response_model=SignPartResponse)
    def sign_part_endpoint(payload: SignPartRequest, response: Response):
        command = SignPartCommand(
            key=payload.key,
            upload_id=payload.upload_id,
            part_number=payload.part_number,
        )
        try:
            signed = sign_part_use_case.execute(command)
        except InvalidUploadRequest as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageRequestError as exc:
            raise _storage_http_error(exc) from exc
        response.headers.update(NO_CACHE_HEADERS)
        return SignPartResponse(url=signed.url, expires_in=signed.expires_in)

    @uploads_router.post(
        "/multipart/complete", response_model=CompleteUploadResponse, status_code=200
    )
    def complete_upload_endpoint(payload: CompleteUploadRequest):
        command = CompleteUploadCommand(
            key=payload.key,
            upload_id=payload.upload_id,
            parts=[
                ReportedPart(part_number=part.part_number, token=part.token)
                for part in payload.parts
            ],
        )
        try:
            completed = complete_use_case.execute(command)
        except UnresolvedPartsError as exc:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": str(exc), "unresolvedParts": exc.part_numbers},
            ) from exc
        except InvalidUploadRequest as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageRequestError as exc:
            raise _storage_http_error(exc) from exc
        return CompleteUploadResponse.from_domain(completed)

    @uploads_router.post("/multipart/abort", response_model=AbortUploadResponse)
    def abort_upload_endpoint(payload: AbortUploadRequest):
        command = AbortUploadCommand(key=payload.key, upload_id=payload.upload_id)
        try:
            aborted = abort_use_case.execute(command)
        except InvalidUploadRequest as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except StorageRequestError as exc:
            raise _storage_http_error(exc) from exc
        return AbortUploadResponse(
            status=aborted.state.value, key=aborted.key, upload_id=aborted.upload_id
        )

    router.include_router(uploads_router)
    return router
