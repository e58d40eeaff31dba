"""Round-trip a small multipart upload against the configured store.

Uploads two random 5 MiB parts through the same store adapter the service
uses, finalizes with part tokens recovered from the store listing, and then
deletes the object again. Exits non-zero on any failure.
"""

from __future__ import annotations

import logging
import os
import secrets
import sys
from datetime import datetime, timezone

import httpx
from botocore.exceptions import BotoCoreError, ClientError

from direct_upload.multipart.parts import MIN_PART_SIZE_BYTES, plan_parts
from direct_upload.multipart.reconcile import RequestedPart, reconcile_parts
from direct_upload.storage.compatibility import resolve_bucket

from .application.errors import StorageRequestError
from .config import load_config
from .infrastructure.s3_multipart import S3MultipartStore
from .main import check_storage_compatibility, configure_logging, create_store

logger = logging.getLogger(__name__)

REQUIRED_ENV = (
    "UPLOADER_STORAGE_ENDPOINT_URL",
    "UPLOADER_STORAGE_REGION",
    "UPLOADER_STORAGE_ACCESS_KEY",
    "UPLOADER_STORAGE_SECRET_KEY",
)
PART_SIZE_BYTES = MIN_PART_SIZE_BYTES
TOTAL_SIZE_BYTES = PART_SIZE_BYTES * 2


def missing_environment() -> list[str]:
    missing = [name for name in REQUIRED_ENV if not os.getenv(name, "").strip()]
    if not resolve_bucket():
        missing.append("UPLOADER_STORAGE_BUCKET")
    return missing


def diagnostic_key() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    return f"diagnostics/multipart-upload-{stamp}-{secrets.randbelow(10**6)}.bin"


def run_diagnostic(
    store: S3MultipartStore,
    *,
    key: str,
    payload: bytes,
    transfer: httpx.Client,
    page_size: int = 1000,
) -> dict:
    upload_id = store.initiate_upload(key=key, content_type="application/octet-stream")
    logger.info("Started multipart diagnostic upload: %s", {"key": key, "upload_id": upload_id})
    try:
        for part in plan_parts(len(payload), PART_SIZE_BYTES):
            url = store.generate_part_url(
                key=key,
                upload_id=upload_id,
                part_number=part.part_number,
                expires_in_seconds=600,
            )
            response = transfer.put(url, content=payload[part.offset : part.end])
            response.raise_for_status()
            logger.info(
                "Multipart progress: %s",
                {"part": part.part_number, "loaded": part.end, "total": len(payload)},
            )
        # Tokens are deliberately dropped so completion goes through the listing.
        parts = reconcile_parts(
            [RequestedPart(part_number=1), RequestedPart(part_number=2)],
            store.iter_part_pages(key=key, upload_id=upload_id, page_size=page_size),
        )
        result = store.complete_upload(
            key=key,
            upload_id=upload_id,
            parts=[(p.part_number, p.token) for p in parts],
        )
    except (StorageRequestError, httpx.HTTPError, ValueError):
        store.abort_upload(key=key, upload_id=upload_id)
        raise
    logger.info("Multipart upload completed successfully: %s", result)
    return result


def cleanup(store: S3MultipartStore, key: str) -> None:
    try:
        store.client.delete_object(Bucket=store.bucket_name, Key=key)
    except (ClientError, BotoCoreError) as exc:
        logger.warning(
            "Failed to delete diagnostic object after upload: %s",
            {"key": key, "error": repr(exc)},
        )
        return
    logger.info("Cleaned up diagnostic object: %s", {"key": key})


def transfer_client() -> httpx.Client:
    return httpx.Client(timeout=120.0)


def main() -> int:
    configure_logging()
    missing = missing_environment()
    if missing:
        logger.error(
            "Missing required environment variables for multipart diagnostic: %s",
            missing,
        )
        return 1

    cfg = load_config()
    check_storage_compatibility(cfg)
    store = create_store(cfg)
    key = diagnostic_key()
    try:
        with transfer_client() as transfer:
            run_diagnostic(
                store,
                key=key,
                payload=secrets.token_bytes(TOTAL_SIZE_BYTES),
                transfer=transfer,
                page_size=cfg.list_parts_page_size,
            )
    except (StorageRequestError, httpx.HTTPError, ValueError) as exc:
        logger.error("Multipart diagnostic upload failed: %s", {"key": key, "error": repr(exc)})
        return 1
    cleanup(store, key)
    return 0


if __name__ == "__main__":
    sys.exit(main())
