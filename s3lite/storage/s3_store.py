"""
S3-Compatible Object Store
==========================

Object operations over the signed HTTP transport: HEAD, GET (buffered
and streamed), PUT, DELETE, server-side COPY and paginated LIST.

Design Principles:
------------------
1. **Optimistic concurrency**: writes are conditional by default.
   Without an expected ETag a put is create-only (If-None-Match: *);
   with one it overwrites only that version (If-Match).
2. **Streaming**: downloads can be consumed chunk by chunk, uploads of
   unknown length go through the multipart engine.
3. **No retries**: a failed call surfaces to the caller unchanged.
4. **Stateless**: nothing is kept between calls except counters.

Algorithmic Complexity:
-----------------------
| Operation | Time | Space    | Notes                         |
|-----------|------|----------|-------------------------------|
| put       | O(n) | O(n)     | n = object size               |
| put_stream| O(n) | O(chunk) | bounded by part concurrency   |
| get       | O(n) | O(n)     | full download to memory       |
| stream    | O(n) | O(chunk) |                               |
| head      | O(1) | O(1)     | metadata only                 |
| list      | O(k) | O(page)  | k = result count              |
| delete    | O(1) | O(1)     |                               |
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import AsyncIterable
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Tuple, Union

import httpx

from s3lite.auth.signer import RequestSigner
from s3lite.core import constants as C
from s3lite.core.cancellation import CancellationToken
from s3lite.core.config import ClientConfig, PreconditionPolicy
from s3lite.core.errors import ProtocolError, TransportError
from s3lite.core.types import quote_etag, unquote_etag
from s3lite.storage.models import ObjectMetadata
from s3lite.storage.xml import child_text, children, parse_xml, require_text
from s3lite.transport.http import Clock, HttpTransport
from s3lite.transport.request import S3Request, S3Response

logger = logging.getLogger(__name__)

_REPEATED_SLASHES = re.compile(r"/+")

Content = Union[bytes, bytearray, memoryview, str, AsyncIterable, Any]


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

@dataclass(slots=True)
class S3Metrics:
    """
    Operation and byte counters for one store instance.
    """
    put_count: int = 0
    get_count: int = 0
    head_count: int = 0
    delete_count: int = 0
    list_count: int = 0
    copy_count: int = 0
    multipart_count: int = 0

    bytes_uploaded: int = 0
    bytes_downloaded: int = 0

    put_latency_sum_ns: int = 0
    get_latency_sum_ns: int = 0

    def record_upload(self, size_bytes: int, latency_ns: int) -> None:
        """Record upload operation."""
        self.put_count += 1
        self.bytes_uploaded += size_bytes
        self.put_latency_sum_ns += latency_ns

    def record_download(self, size_bytes: int, latency_ns: int) -> None:
        """Record download operation."""
        self.get_count += 1
        self.bytes_downloaded += size_bytes
        self.get_latency_sum_ns += latency_ns


# =============================================================================
# HELPERS
# =============================================================================

def encode_content(content: Any, content_type: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Turn a put payload into bytes plus a content type.

    bytes-like values are sent as-is (application/octet-stream), text is
    UTF-8 encoded (text/plain), anything else is JSON encoded
    (application/json). An explicit content type always wins.
    """
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content), content_type or C.BINARY_CONTENT_TYPE
    if isinstance(content, str):
        return content.encode("utf-8"), content_type or C.TEXT_CONTENT_TYPE
    return json.dumps(content).encode("utf-8"), content_type or C.JSON_CONTENT_TYPE


def write_conditions(expected_etag: Optional[str]) -> Dict[str, str]:
    """If-Match for a known version, otherwise create-only."""
    if expected_etag:
        return {"If-Match": quote_etag(expected_etag)}
    return {"If-None-Match": "*"}


def normalize_prefix(prefix: Optional[str]) -> str:
    """Collapse repeated slashes, drop leading ones, end with one."""
    if not prefix:
        return ""
    prefix = _REPEATED_SLASHES.sub("/", prefix).lstrip("/")
    if prefix and not prefix.endswith("/"):
        prefix += "/"
    return prefix


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def _parse_iso_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


# =============================================================================
# S3 OBJECT STORE
# =============================================================================

class S3ObjectStore:
    """
    S3-compatible object store client for one bucket.

    Example:
        >>> async with S3ObjectStore(config) as store:
        ...     etag = await store.put("notes/today.txt", "hello")
        ...     text = await store.get("notes/today.txt")
        ...     async for entry in store.list("notes"):
        ...         print(entry.name, entry.size)
    """

    __slots__ = (
        "_config",
        "_transport",
        "_cancel",
        "_metrics",
    )

    def __init__(
        self,
        config: ClientConfig,
        *,
        cancel: Optional[CancellationToken] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Args:
            config: Credentials, endpoint and tuning.
            cancel: Token that aborts every call made by this store.
            http_client: Injected HTTP client (tests, shared pools).
            clock: UTC clock for the Date header.
        """
        self._config = config
        self._cancel = cancel
        self._transport = HttpTransport(
            config.endpoint,
            RequestSigner(config.credentials),
            client=http_client,
            timeout_seconds=config.timeout_seconds,
            clock=clock,
        )
        self._metrics = S3Metrics()

    # -------------------------------------------------------------------------
    # LIFECYCLE
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> S3ObjectStore:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP client. Safe to call multiple times."""
        await self._transport.aclose()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def cancel_token(self) -> Optional[CancellationToken]:
        return self._cancel

    @property
    def metrics(self) -> S3Metrics:
        """Get current metrics snapshot."""
        return self._metrics

    # -------------------------------------------------------------------------
    # REQUESTS
    # -------------------------------------------------------------------------

    def build_request(
        self,
        method: str,
        key: str,
        *,
        params: Optional[List[Tuple[str, str]]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Optional[bytes] = None,
    ) -> S3Request:
        """Fresh request for `key` (the empty key addresses the bucket)."""
        return S3Request(
            method=method,
            path=self._config.endpoint.object_path(key),
            params=list(params or []),
            headers=httpx.Headers(dict(headers or {})),
            body=body,
        )

    async def send(
        self,
        request: S3Request,
        *,
        cancel: Optional[CancellationToken] = None,
        cancellable: bool = True,
    ) -> S3Response:
        """
        Send through the transport.

        `cancel` overrides the store token; `cancellable=False` sends
        without any token, which cleanup calls rely on.
        """
        token = (cancel or self._cancel) if cancellable else None
        return await self._transport.send(request, cancel=token)

    def _precondition_satisfied(
        self,
        error: TransportError,
        expected_etag: Optional[str],
    ) -> bool:
        return (
            error.is_precondition_failed
            and bool(expected_etag)
            and self._config.precondition_policy is PreconditionPolicy.RETURN_EXPECTED
        )

    # -------------------------------------------------------------------------
    # READ OPERATIONS
    # -------------------------------------------------------------------------

    async def head(self, key: str) -> ObjectMetadata:
        """
        Object metadata without the body.

        Raises:
            TransportError: 404 when the object does not exist.
        """
        response = await self.send(self.build_request("HEAD", key))
        self._metrics.head_count += 1
        headers = response.headers
        return ObjectMetadata(
            name=key,
            size=int(headers.get("Content-Length", "0")),
            etag=unquote_etag(headers.get("ETag")),
            last_modified=_parse_http_date(headers.get("Last-Modified")),
            content_type=headers.get("Content-Type"),
        )

    async def exists(self, key: str) -> bool:
        """HEAD mapped to a boolean; only a 404 means absent."""
        try:
            await self.head(key)
        except TransportError as e:
            if e.is_not_found:
                return False
            raise
        return True

    async def get(self, key: str, if_none_match: Optional[str] = None) -> Optional[bytes]:
        """
        Download the whole object.

        With `if_none_match`, a version that still matches yields None
        (HTTP 304). An empty object also yields None.
        """
        headers = {"If-None-Match": quote_etag(if_none_match)} if if_none_match else {}
        start_ns = time.perf_counter_ns()
        try:
            response = await self.send(self.build_request("GET", key, headers=headers))
        except TransportError as e:
            if if_none_match and e.is_not_modified:
                return None
            raise
        content = response.content
        self._metrics.record_download(len(content or b""), time.perf_counter_ns() - start_ns)
        return content

    async def stream(self, key: str, if_none_match: Optional[str] = None) -> AsyncIterator[bytes]:
        """
        Download the object chunk by chunk.

        Single pass and not restartable; drain it or call aclose() on the
        iterator to release the connection. An unchanged object under
        `if_none_match` yields nothing.
        """
        headers = {"If-None-Match": quote_etag(if_none_match)} if if_none_match else {}
        request = self.build_request("GET", key, headers=headers)
        start_ns = time.perf_counter_ns()
        received = 0
        chunks = self._transport.stream(request, cancel=self._cancel)
        try:
            async for chunk in chunks:
                received += len(chunk)
                yield chunk
        except TransportError as e:
            if if_none_match and e.is_not_modified:
                return
            raise
        finally:
            await chunks.aclose()
        self._metrics.record_download(received, time.perf_counter_ns() - start_ns)

    # -------------------------------------------------------------------------
    # WRITE OPERATIONS
    # -------------------------------------------------------------------------

    async def put(
        self,
        key: str,
        content: Content,
        *,
        content_type: Optional[str] = None,
        expected_etag: Optional[str] = None,
    ) -> str:
        """
        Store an object and return its new ETag.

        Args:
            key: Object key.
            content: bytes, str, a JSON-serialisable value, or an async
                iterable of bytes (uploaded through the multipart engine).
            content_type: Overrides the type derived from `content`.
            expected_etag: Overwrite only this version. When omitted the
                put is create-only and fails if the object exists.

        Raises:
            TransportError: 412 when the precondition does not hold (unless
                the RETURN_EXPECTED policy applies).
        """
        if isinstance(content, AsyncIterable):
            return await self.put_stream(
                key, content, content_type=content_type, expected_etag=expected_etag
            )
        body, resolved_type = encode_content(content, content_type)
        return await self.put_buffer(
            key, body, content_type=resolved_type, expected_etag=expected_etag
        )

    async def put_buffer(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str = C.BINARY_CONTENT_TYPE,
        expected_etag: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Single-request put of an in-memory body."""
        headers = {"Content-Type": content_type, **write_conditions(expected_etag)}
        request = self.build_request("PUT", key, headers=headers, body=body)
        start_ns = time.perf_counter_ns()
        try:
            response = await self.send(request, cancel=cancel)
        except TransportError as e:
            if self._precondition_satisfied(e, expected_etag):
                logger.info(f"put {key}: precondition failed, keeping {expected_etag}")
                return expected_etag  # type: ignore[return-value]
            raise
        self._metrics.record_upload(len(body), time.perf_counter_ns() - start_ns)

        etag = unquote_etag(response.headers.get("ETag"))
        if not etag:
            raise ProtocolError.missing_field("PutObject", "ETag")
        return etag

    async def put_stream(
        self,
        key: str,
        chunks: AsyncIterable[bytes],
        *,
        content_type: Optional[str] = None,
        expected_etag: Optional[str] = None,
    ) -> str:
        """Upload a byte stream of unknown length (see MultipartUpload)."""
        from s3lite.storage.multipart import MultipartUpload

        upload = MultipartUpload(
            self,
            key,
            content_type=content_type,
            expected_etag=expected_etag,
        )
        try:
            return await upload.run(chunks)
        except TransportError as e:
            if self._precondition_satisfied(e, expected_etag):
                logger.info(f"put {key}: precondition failed, keeping {expected_etag}")
                return expected_etag  # type: ignore[return-value]
            raise

    async def delete(self, key: str, expected_etag: Optional[str] = None) -> None:
        """
        Remove an object.

        With `expected_etag` the delete only happens if the object is
        still at that version (If-Match). Without it the delete is
        unconditional.
        """
        headers = {"If-Match": quote_etag(expected_etag)} if expected_etag else {}
        try:
            await self.send(self.build_request("DELETE", key, headers=headers))
        except TransportError as e:
            if self._precondition_satisfied(e, expected_etag):
                logger.info(f"delete {key}: precondition failed, treated as done")
                return
            raise
        self._metrics.delete_count += 1

    async def copy(
        self,
        target_key: str,
        source_key: str,
        expected_etag: Optional[str] = None,
    ) -> str:
        """
        Server-side copy within the bucket; returns the new ETag.

        The target follows the put preconditions: create-only unless
        `expected_etag` names the version to overwrite.

        Raises:
            ProtocolError: The response carries no ETag.
        """
        headers = {
            "x-amz-copy-source": self._config.endpoint.copy_source(source_key),
            **write_conditions(expected_etag),
        }

        response = await self.send(self.build_request("PUT", target_key, headers=headers))
        root = parse_xml(response.content, "CopyObject")
        self._metrics.copy_count += 1
        return unquote_etag(require_text(root, "ETag", "CopyObject"))  # type: ignore[return-value]

    # -------------------------------------------------------------------------
    # LIST OPERATIONS
    # -------------------------------------------------------------------------

    async def list(
        self,
        prefix: Optional[str] = None,
        options: Optional[Mapping[str, str]] = None,
    ) -> AsyncIterator[ObjectMetadata]:
        """
        Iterate the objects directly under `prefix`.

        Pages through ListObjectsV2 continuation tokens, yielding every
        entry of a page before fetching the next. The delimiter is always
        "/", so deeper keys are folded into common prefixes and not
        yielded. `options` are passed through as extra query parameters.
        """
        normalized = normalize_prefix(prefix)
        continuation: Optional[str] = None

        while True:
            params: List[Tuple[str, str]] = [("list-type", C.LIST_TYPE)]
            if normalized:
                params.append(("prefix", normalized))
            params.append(("delimiter", C.LIST_DELIMITER))
            if options:
                params.extend((str(k), str(v)) for k, v in options.items())
            if continuation:
                params.append(("continuation-token", continuation))

            response = await self.send(self.build_request("GET", "", params=params))
            self._metrics.list_count += 1
            root = parse_xml(response.content, "ListObjectsV2")

            for item in children(root, "Contents"):
                yield ObjectMetadata(
                    name=require_text(item, "Key", "ListObjectsV2"),
                    size=int(child_text(item, "Size") or 0),
                    etag=unquote_etag(child_text(item, "ETag")),
                    last_modified=_parse_iso_date(child_text(item, "LastModified")),
                )

            if child_text(root, "IsTruncated") != "true":
                break
            continuation = child_text(root, "NextContinuationToken")
            if not continuation:
                break


__all__ = [
    "S3ObjectStore",
    "S3Metrics",
    "encode_content",
    "write_conditions",
    "normalize_prefix",
]
