"""
HTTP Transport Adapter
======================

Performs exactly one signed HTTP call per request on top of
`httpx.AsyncClient`.

Contract:
---------
- 2xx: returns S3Response (buffered) or yields body chunks (streaming)
- 3xx: TransportError; redirects are never followed
- 4xx/5xx: TransportError carrying status, reason and raw body
- network failure: TransportError with status 0, chained to the httpx error
- cancellation: AbortedError, checked before sending, raced against the
  in-flight call and checked at every streamed chunk

No retries are performed here.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

import httpx

from s3lite.auth.signer import RequestSigner
from s3lite.core.cancellation import CancellationToken
from s3lite.core.config import EndpointConfig
from s3lite.core.constants import DEFAULT_TIMEOUT_SECONDS
from s3lite.core.errors import AbortedError, TransportError
from s3lite.transport.request import S3Request, S3Response

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _guard(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await `awaitable`, abandoning it as soon as `token` is cancelled."""
    if token is None:
        return await awaitable
    if token.is_cancelled():
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise AbortedError.cancelled(token.reason)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise AbortedError.cancelled(token.reason)


class HttpTransport:
    """
    Signs and sends requests for one endpoint.

    Example:
        >>> transport = HttpTransport(endpoint, RequestSigner(credentials))
        >>> response = await transport.send(S3Request("HEAD", "/bucket/key"))
        >>> await transport.aclose()
    """

    __slots__ = ("_endpoint", "_signer", "_client", "_owns_client", "_clock")

    def __init__(
        self,
        endpoint: EndpointConfig,
        signer: RequestSigner,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Args:
            endpoint: Host and addressing used to build URLs.
            signer: Applies the Authorization header.
            client: Injected HTTP client; created (and owned) when omitted.
            timeout_seconds: Timeout for a client created here.
            clock: Source of the Date header, UTC.
        """
        self._endpoint = endpoint
        self._signer = signer
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            follow_redirects=False,
            timeout=httpx.Timeout(timeout_seconds),
        )
        self._clock = clock or _utc_now

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it. Safe to call twice."""
        if self._owns_client:
            await self._client.aclose()

    # -------------------------------------------------------------------------
    # REQUEST PREPARATION
    # -------------------------------------------------------------------------

    def _prepare(self, request: S3Request) -> httpx.Request:
        date = format_datetime(self._clock(), usegmt=True)
        self._signer.sign_headers(
            request.method,
            request.path,
            request.params,
            request.headers,
            request.body,
            host=self._endpoint.request_host,
            date=date,
        )
        return self._client.build_request(
            request.method,
            f"{self._endpoint.base_url}{request.path}",
            params=request.params or None,
            headers=request.headers,
            content=request.body,
        )

    async def _raise_for_status(self, request: S3Request, response: httpx.Response) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if 300 <= status < 400 and status != 304:
            raise TransportError.redirect(
                request.method,
                request.path,
                status,
                response.reason_phrase,
                response.headers.get("Location"),
            )
        body: Optional[bytes] = None
        if request.method != "HEAD":
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = None
        raise TransportError.from_status(
            request.method, request.path, status, response.reason_phrase, body or None
        )

    async def _open(
        self,
        request: S3Request,
        token: Optional[CancellationToken],
    ) -> httpx.Response:
        http_request = self._prepare(request)
        try:
            return await _guard(self._client.send(http_request, stream=True), token)
        except httpx.HTTPError as e:
            raise TransportError.connection_failed(request.method, request.path, e) from e

    # -------------------------------------------------------------------------
    # CALLS
    # -------------------------------------------------------------------------

    async def send(
        self,
        request: S3Request,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> S3Response:
        """
        Perform the call and buffer the response body.

        Raises:
            TransportError: Non-2xx status, redirect or network failure.
            AbortedError: `cancel` was triggered.
        """
        start_ns = time.perf_counter_ns()
        response = await self._open(request, cancel)
        try:
            await self._raise_for_status(request, response)
            content: Optional[bytes] = None
            if request.method != "HEAD" and response.status_code != 204:
                try:
                    content = await _guard(response.aread(), cancel) or None
                except httpx.HTTPError as e:
                    raise TransportError.connection_failed(
                        request.method, request.path, e
                    ) from e
        finally:
            await response.aclose()
            elapsed_ms = (time.perf_counter_ns() - start_ns) / 1_000_000
            logger.debug(
                f"{request.describe()} -> {response.status_code} ({elapsed_ms:.1f} ms)"
            )

        return S3Response(
            status=response.status_code,
            headers=response.headers,
            content=content,
        )

    async def stream(
        self,
        request: S3Request,
        *,
        cancel: Optional[CancellationToken] = None,
    ) -> AsyncIterator[bytes]:
        """
        Perform the call and yield the body as it arrives.

        Single pass: the response is closed when the body is exhausted,
        when the consumer stops early (aclose) or on cancellation.
        """
        response = await self._open(request, cancel)
        try:
            await self._raise_for_status(request, response)
            logger.debug(f"{request.describe()} -> {response.status_code} (streaming)")
            try:
                async for chunk in response.aiter_bytes():
                    if cancel is not None:
                        cancel.raise_if_cancelled()
                    yield chunk
            except httpx.HTTPError as e:
                raise TransportError.connection_failed(request.method, request.path, e) from e
        finally:
            await response.aclose()


__all__ = ["HttpTransport", "Clock"]
