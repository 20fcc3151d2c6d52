"""
Multipart Upload Engine
=======================

Turns a byte stream of unknown length into either one PUT or a
multipart upload with all-or-nothing commit.

State Machine:
--------------
    BUFFERING -> DIRECT_PUT -------> COMMITTED
             \\-> MULTIPART_ACTIVE -> COMMITTED
                                 \\-> ABORTED

- BUFFERING: chunks accumulate while the buffer stays at or below
  the threshold.
- MULTIPART_ACTIVE: entered the first time the buffer exceeds the
  threshold. The upload is started and the buffer flushed as part 1;
  every later crossing flushes the next part number. Parts upload
  concurrently, bounded by a semaphore.
- End of input: the remainder becomes the last part (no minimum), parts
  are sorted by number and the upload is completed. If the threshold was
  never crossed the buffer is sent as a single ordinary put instead.
- Any failure while MULTIPART_ACTIVE cancels the session token, cancels
  outstanding parts, aborts the upload and re-raises the original error;
  if the abort fails too, AggregateUploadError carries both.

An instance is single-use. Part numbers come from a counter in flush
order, never from completion order.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import AsyncIterable, Optional, Set

from s3lite.core import constants as C
from s3lite.core.cancellation import CancellationToken, child_token
from s3lite.core.errors import AggregateUploadError, ProtocolError
from s3lite.core.types import unquote_etag
from s3lite.observability.logging import log_context
from s3lite.storage.models import UploadedPart, UploadSession
from s3lite.storage.s3_store import S3ObjectStore, write_conditions
from s3lite.storage.xml import completion_manifest, parse_xml, require_text

logger = logging.getLogger(__name__)


class UploadState(Enum):
    """Multipart engine state."""
    BUFFERING = auto()
    DIRECT_PUT = auto()
    MULTIPART_ACTIVE = auto()
    COMMITTED = auto()
    ABORTED = auto()


class MultipartUpload:
    """
    One streamed upload of one key.

    Example:
        >>> upload = MultipartUpload(store, "logs/big.bin")
        >>> etag = await upload.run(chunks())
        >>> upload.state
        <UploadState.COMMITTED: 4>
    """

    __slots__ = (
        "_store",
        "_key",
        "_content_type",
        "_expected_etag",
        "_threshold",
        "_max_concurrency",
        "_cancel",
        "_state",
        "_failure",
        "_parts_uploaded",
    )

    def __init__(
        self,
        store: S3ObjectStore,
        key: str,
        *,
        content_type: Optional[str] = None,
        expected_etag: Optional[str] = None,
        min_chunk_size: Optional[int] = None,
        max_concurrency: Optional[int] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """
        Args:
            store: Object store issuing the requests.
            key: Target object key.
            content_type: Type of the final object (default binary).
            expected_etag: Same precondition semantics as S3ObjectStore.put.
            min_chunk_size: Threshold and part size; defaults to the config.
            max_concurrency: Parts in flight; defaults to the config.
            cancel: Parent token; defaults to the store token.
        """
        config = store.config
        self._store = store
        self._key = key
        self._content_type = content_type or C.BINARY_CONTENT_TYPE
        self._expected_etag = expected_etag
        self._threshold = min_chunk_size or config.min_chunk_size
        self._max_concurrency = max_concurrency or config.max_concurrent_parts
        self._cancel = cancel if cancel is not None else store.cancel_token
        self._state = UploadState.BUFFERING
        self._failure: Optional[BaseException] = None
        self._parts_uploaded = 0

    @property
    def state(self) -> UploadState:
        return self._state

    @property
    def parts_uploaded(self) -> int:
        return self._parts_uploaded

    async def run(self, chunks: AsyncIterable[bytes]) -> str:
        """
        Consume `chunks` and return the ETag of the stored object.

        Raises:
            RuntimeError: The instance has already run.
            TransportError / ProtocolError / AbortedError: the original
                failure, after the upload was aborted.
            AggregateUploadError: the upload failed and so did the abort.
        """
        if self._state is not UploadState.BUFFERING:
            raise RuntimeError(f"MultipartUpload already used (state={self._state.name})")

        token = child_token(self._cancel)
        try:
            with log_context(key=self._key):
                return await self._run(chunks, token)
        finally:
            token.release()

    # -------------------------------------------------------------------------
    # DRIVER
    # -------------------------------------------------------------------------

    async def _run(self, chunks: AsyncIterable[bytes], token: CancellationToken) -> str:
        buffer = bytearray()
        session: Optional[UploadSession] = None
        pending: Set[asyncio.Task] = set()
        limiter = asyncio.Semaphore(self._max_concurrency)
        next_part = 1

        try:
            async for chunk in chunks:
                token.raise_if_cancelled()
                buffer += chunk
                if len(buffer) <= self._threshold:
                    continue
                if session is None:
                    session = await self._start(token)
                await self._dispatch(session, next_part, bytes(buffer), limiter, pending, token)
                next_part += 1
                buffer.clear()

            token.raise_if_cancelled()

            if session is None:
                self._state = UploadState.DIRECT_PUT
                etag = await self._store.put_buffer(
                    self._key,
                    bytes(buffer),
                    content_type=self._content_type,
                    expected_etag=self._expected_etag,
                    cancel=token,
                )
                self._state = UploadState.COMMITTED
                return etag

            if buffer:
                await self._dispatch(session, next_part, bytes(buffer), limiter, pending, token)
                buffer.clear()

            await self._drain(pending, token)
            with log_context(upload_id=session.upload_id):
                etag = await self._complete(session, token)
            self._state = UploadState.COMMITTED
            return etag

        except (Exception, asyncio.CancelledError) as error:
            if session is None:
                self._state = UploadState.ABORTED
                raise
            with log_context(upload_id=session.upload_id):
                await self._abort(session, pending, token, error)
            raise  # _abort always raises

    async def _dispatch(
        self,
        session: UploadSession,
        number: int,
        data: bytes,
        limiter: asyncio.Semaphore,
        pending: Set[asyncio.Task],
        token: CancellationToken,
    ) -> None:
        """Start the upload of one part once a concurrency slot is free."""
        await limiter.acquire()
        if token.is_cancelled():
            limiter.release()
            token.raise_if_cancelled()

        with log_context(upload_id=session.upload_id):
            task = asyncio.create_task(self._upload_part(session, number, data, token))
        pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            pending.discard(finished)
            limiter.release()
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None and self._failure is None:
                self._failure = error
                token.cancel(f"part {number} failed")

        task.add_done_callback(_done)

    async def _drain(self, pending: Set[asyncio.Task], token: CancellationToken) -> None:
        """Wait for every dispatched part, surfacing the first failure."""
        while pending:
            await asyncio.wait(set(pending))
        if self._failure is not None:
            raise self._failure
        token.raise_if_cancelled()

    # -------------------------------------------------------------------------
    # PROTOCOL CALLS
    # -------------------------------------------------------------------------

    async def _start(self, token: CancellationToken) -> UploadSession:
        request = self._store.build_request(
            "POST",
            self._key,
            params=[("uploads", "")],
            headers={"Content-Type": self._content_type},
        )
        response = await self._store.send(request, cancel=token)
        root = parse_xml(response.content, "InitiateMultipartUpload")
        upload_id = require_text(root, "UploadId", "InitiateMultipartUpload")

        self._state = UploadState.MULTIPART_ACTIVE
        self._store.metrics.multipart_count += 1
        logger.info(f"multipart upload {upload_id} started for {self._key}")
        return UploadSession(upload_id=upload_id, key=self._key)

    async def _upload_part(
        self,
        session: UploadSession,
        number: int,
        data: bytes,
        token: CancellationToken,
    ) -> UploadedPart:
        request = self._store.build_request(
            "PUT",
            session.key,
            params=[("partNumber", str(number)), ("uploadId", session.upload_id)],
            body=data,
        )
        response = await self._store.send(request, cancel=token)
        etag = unquote_etag(response.headers.get("ETag"))
        if not etag:
            raise ProtocolError.missing_field("UploadPart", "ETag")

        part = UploadedPart(number=number, etag=etag)
        session.add_part(part)
        self._parts_uploaded += 1
        self._store.metrics.bytes_uploaded += len(data)
        logger.debug(f"part {number} of {session.upload_id} uploaded ({len(data)} bytes)")
        return part

    async def _complete(self, session: UploadSession, token: CancellationToken) -> str:
        parts = session.manifest()
        headers = {"Content-Type": C.XML_CONTENT_TYPE, **write_conditions(self._expected_etag)}

        request = self._store.build_request(
            "POST",
            session.key,
            params=[("uploadId", session.upload_id)],
            headers=headers,
            body=completion_manifest(parts),
        )
        response = await self._store.send(request, cancel=token)
        root = parse_xml(response.content, "CompleteMultipartUpload")
        etag = unquote_etag(require_text(root, "ETag", "CompleteMultipartUpload"))

        logger.info(
            f"multipart upload {session.upload_id} committed with {len(parts)} parts"
        )
        return etag  # type: ignore[return-value]

    async def _abort(
        self,
        session: UploadSession,
        pending: Set[asyncio.Task],
        token: CancellationToken,
        error: BaseException,
    ) -> None:
        """
        Cancel outstanding parts, abort the upload, raise the original error.

        Cancellation of the running task itself always propagates as
        CancelledError, even when the abort fails.
        """
        self._state = UploadState.ABORTED
        token.cancel("multipart upload aborted")
        for task in list(pending):
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        original = self._failure or error
        logger.warning(f"multipart upload {session.upload_id} failed: {original!r}")

        request = self._store.build_request(
            "DELETE",
            session.key,
            params=[("uploadId", session.upload_id)],
        )
        try:
            await self._store.send(request, cancellable=False)
        except Exception as abort_error:
            logger.error(
                f"abort of multipart upload {session.upload_id} failed: {abort_error}"
            )
            if isinstance(error, asyncio.CancelledError):
                raise error
            raise AggregateUploadError.from_failures(
                session.upload_id, original, abort_error
            ) from original

        logger.info(f"multipart upload {session.upload_id} aborted")
        if isinstance(error, asyncio.CancelledError):
            raise error
        raise original


__all__ = ["MultipartUpload", "UploadState"]
