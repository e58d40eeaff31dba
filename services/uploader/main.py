from __future__ import annotations

import logging
import sys

from fastapi import FastAPI

from direct_upload.storage.compatibility import (
    CompatibilityReport,
    IncompatibleStorageClientError,
    ensure_compatible_storage_client,
)

from .api.routes import create_router
from .application.abort_upload import AbortUploadUseCase
from .application.complete_multipart_upload import CompleteMultipartUploadUseCase
from .application.initiate_upload import InitiateUploadUseCase
from .application.interfaces import MultipartStore
from .application.sign_upload_part import SignUploadPartUseCase
from .config import UploaderConfig, load_config
from .infrastructure.s3_multipart import S3MultipartStore

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def check_storage_compatibility(cfg: UploaderConfig) -> CompatibilityReport:
    """Refuse to start against a backend this storage client is known to break."""
    try:
        report = ensure_compatible_storage_client(cfg.storage_endpoint_url)
    except IncompatibleStorageClientError:
        sys.exit(1)
    logger.info(
        "Storage client botocore %s, endpoint host %s",
        report.client_version,
        report.endpoint_host or "default",
    )
    return report


def create_store(cfg: UploaderConfig) -> S3MultipartStore:
    return S3MultipartStore(
        endpoint_url=cfg.storage_endpoint_url,
        public_endpoint_url=cfg.storage_public_endpoint_url,
        region_name=cfg.storage_region,
        bucket_name=cfg.storage_bucket,
        access_key=cfg.storage_access_key,
        secret_key=cfg.storage_secret_key,
        force_path_style=cfg.force_path_style,
        request_checksum_calculation=cfg.request_checksum_calculation,
        response_checksum_validation=cfg.response_checksum_validation,
    )


def build_app(
    config: UploaderConfig | None = None, store: MultipartStore | None = None
) -> FastAPI:
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    check_storage_compatibility(cfg)
    app = FastAPI()

    @app.get("/ping")
    async def ping():
        return {"message": "pong"}

    multipart_store = store or create_store(cfg)

    app.include_router(
        create_router(
            cfg,
            InitiateUploadUseCase(store=multipart_store),
            SignUploadPartUseCase(
                store=multipart_store, url_ttl_seconds=cfg.url_expiry_seconds
            ),
            CompleteMultipartUploadUseCase(
                store=multipart_store, list_page_size=cfg.list_parts_page_size
            ),
            AbortUploadUseCase(store=multipart_store),
        )
    )

    logger.info(
        "Uploader ready: bucket=%s part_size=%s max_concurrency=%s",
        cfg.storage_bucket,
        cfg.effective_part_size_bytes,
        cfg.max_concurrency,
    )
    return app


def create_app() -> FastAPI:
    """Factory for ``uvicorn --factory services.uploader.main:create_app``."""
    return build_app()
