from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple

import httpx

from direct_upload.client.api import UploadApiError
from direct_upload.multipart.parts import PartRange, plan_parts
from direct_upload.multipart.session import UploadSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4
DEFAULT_MAX_RETRIES = 3


class PartSigner(Protocol):
    def sign_part(self, key: str, upload_id: str, part_number: int) -> str: ...


class PartTransferError(RuntimeError):
    def __init__(
        self, part_number: int, message: str, *, status_code: Optional[int] = None
    ) -> None:
        super().__init__(f"Part {part_number}: {message}")
        self.part_number = part_number
        self.status_code = status_code


class UploadFailedError(RuntimeError):
    def __init__(self, upload_id: str, part_numbers: List[int]) -> None:
        self.upload_id = upload_id
        self.part_numbers = sorted(part_numbers)
        super().__init__(
            f"Upload {upload_id} failed; parts not transferred: "
            + ", ".join(str(n) for n in self.part_numbers)
        )


class UploadCancelledError(RuntimeError):
    pass


@dataclass(frozen=True)
class ProgressEvent:
    part_number: int
    part_bytes: int
    bytes_transferred: int
    total_bytes: int
    parts_completed: int
    total_parts: int

    @property
    def fraction(self) -> float:
        if self.total_bytes <= 0:
            return 1.0 if self.parts_completed >= self.total_parts else 0.0
        return self.bytes_transferred / self.total_bytes


ProgressCallback = Callable[[ProgressEvent], None]
RecordedCallback = Callable[[UploadSession], None]


class PartScheduler:
    """Transfers a file's parts straight to the store with bounded concurrency.

    Workers sign, read and PUT their own part; only the calling thread
    touches the session, so recordings never race. A part that keeps
    failing after ``max_retries`` retries fails the whole run, but every
    part that did land stays recorded for a later resume.
    """

    def __init__(
        self,
        signer: PartSigner,
        *,
        transfer_client: Optional[httpx.Client] = None,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_seconds: float = 0.5,
        on_progress: Optional[ProgressCallback] = None,
        on_part_recorded: Optional[RecordedCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self._signer = signer
        self._owns_transfer_client = transfer_client is None
        self._transfer = transfer_client or httpx.Client(timeout=300.0)
        self._max_concurrency = max_concurrency
        self._max_retries = max_retries
        self._retry_backoff = retry_backoff_seconds
        self._on_progress = on_progress
        self._on_part_recorded = on_part_recorded
        self._sleep = sleep
        self._stop = threading.Event()

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    def cancel(self) -> None:
        """Stop starting new parts; transfers already in flight still finish."""
        self._stop.set()

    def close(self) -> None:
        if self._owns_transfer_client:
            self._transfer.close()

    def run(self, source: Path, session: UploadSession) -> UploadSession:
        ranges = plan_parts(session.file_size, session.part_size)
        if len(ranges) != session.total_parts:
            raise ValueError(
                f"Session expects {session.total_parts} parts but the file "
                f"splits into {len(ranges)}"
            )
        pending = [r for r in ranges if session.token_for(r.part_number) is None]
        done_bytes = sum(
            r.size for r in ranges if session.token_for(r.part_number) is not None
        )
        if not pending:
            return session

        self._stop.clear()
        failed: List[int] = []
        logger.info(
            "Transferring %s of %s parts for %s (%s) with %s workers",
            len(pending),
            session.total_parts,
            session.key,
            session.upload_id,
            self._max_concurrency,
        )

        executor = ThreadPoolExecutor(
            max_workers=self._max_concurrency, thread_name_prefix="part-transfer"
        )
        try:
            queue = list(pending)
            in_flight: Dict[Future, PartRange] = {}
            while queue or in_flight:
                while queue and len(in_flight) < self._max_concurrency:
                    if self._stop.is_set():
                        queue.clear()
                        break
                    part = queue.pop(0)
                    in_flight[executor.submit(self._transfer_part, source, session, part)] = part
                if not in_flight:
                    break
                finished, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in finished:
                    part = in_flight.pop(future)
                    try:
                        part_number, token = future.result()
                    except (PartTransferError, UploadCancelledError) as exc:
                        logger.error("Part %s of %s failed: %s", part.part_number, session.key, exc)
                        failed.append(part.part_number)
                        self._stop.set()
                        continue
                    except Exception:
                        logger.exception(
                            "Part %s of %s failed unexpectedly", part.part_number, session.key
                        )
                        failed.append(part.part_number)
                        self._stop.set()
                        continue
                    session.record(part_number, token)
                    done_bytes += part.size
                    self._notify(session, part, done_bytes)
        finally:
            executor.shutdown(wait=True)

        unfinished = set(failed) | _unrecorded(session, pending)
        if unfinished:
            raise UploadFailedError(session.upload_id, sorted(unfinished))
        return session

    def _notify(self, session: UploadSession, part: PartRange, done_bytes: int) -> None:
        if self._on_part_recorded is not None:
            self._on_part_recorded(session)
        if self._on_progress is not None:
            self._on_progress(
                ProgressEvent(
                    part_number=part.part_number,
                    part_bytes=part.size,
                    bytes_transferred=done_bytes,
                    total_bytes=session.file_size,
                    parts_completed=len(session.parts),
                    total_parts=session.total_parts,
                )
            )

    def _transfer_part(
        self, source: Path, session: UploadSession, part: PartRange
    ) -> Tuple[int, str]:
        try:
            payload = _read_range(source, part)
        except OSError as exc:
            raise PartTransferError(part.part_number, f"cannot read source: {exc}") from exc
        attempts = self._max_retries + 1
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            if self._stop.is_set():
                raise UploadCancelledError(f"Part {part.part_number} was not started")
            if attempt > 1:
                self._sleep(self._retry_backoff * 2 ** (attempt - 2))
            # An expired URL is never reused; each attempt signs afresh.
            try:
                url = self._signer.sign_part(
                    session.key, session.upload_id, part.part_number
                )
            except UploadApiError as exc:
                if not exc.transient:
                    raise PartTransferError(
                        part.part_number,
                        f"signing rejected: {exc}",
                        status_code=exc.status_code,
                    ) from exc
                last_error = exc
                logger.warning(
                    "Signing part %s failed (attempt %s/%s): %s",
                    part.part_number,
                    attempt,
                    attempts,
                    exc,
                )
                continue
            try:
                return part.part_number, self._put(part.part_number, url, payload)
            except PartTransferError as exc:
                last_error = exc
                logger.warning(
                    "Transfer of part %s failed (attempt %s/%s): %s",
                    part.part_number,
                    attempt,
                    attempts,
                    exc,
                )
        raise PartTransferError(
            part.part_number,
            f"gave up after {attempts} attempts: {last_error}",
            status_code=getattr(last_error, "status_code", None),
        ) from last_error

    def _put(self, part_number: int, url: str, payload: bytes) -> str:
        try:
            response = self._transfer.put(url, content=payload)
        except httpx.TransportError as exc:
            raise PartTransferError(part_number, f"network error: {exc}") from exc
        if response.is_error:
            raise PartTransferError(
                part_number,
                f"store returned {response.status_code}",
                status_code=response.status_code,
            )
        token = response.headers.get("ETag")
        if not token:
            # Browsers only see ETag when the bucket CORS policy exposes it.
            raise PartTransferError(part_number, "store response carried no ETag")
        return token


def _read_range(source: Path, part: PartRange) -> bytes:
    with open(source, "rb") as handle:
        handle.seek(part.offset)
        data = handle.read(part.size)
    if len(data) != part.size:
        raise PartTransferError(
            part.part_number,
            f"expected {part.size} bytes at offset {part.offset}, read {len(data)}",
        )
    return data


def _unrecorded(session: UploadSession, pending: List[PartRange]) -> Set[int]:
    return {r.part_number for r in pending if session.token_for(r.part_number) is None}
