"""Request and response values exchanged with the transport."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import httpx


@dataclass(slots=True)
class S3Request:
    """
    One call to the service, built fresh and never reused.

    Attributes:
        method: HTTP method.
        path: Encoded request path (see EndpointConfig.object_path).
        params: Query parameters in wire order; sub-resources use "".
        headers: Case-insensitive, insertion-ordered headers.
        body: Request body, or None for body-less calls.
    """
    method: str
    path: str
    params: list[tuple[str, str]] = field(default_factory=list)
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Optional[bytes] = None

    def describe(self) -> str:
        """Short form for logs and error messages."""
        return f"{self.method} {self.path}"


@dataclass(frozen=True, slots=True)
class S3Response:
    """
    A 2xx response.

    `content` is None for HEAD, 204 and empty bodies.
    """
    status: int
    headers: httpx.Headers
    content: Optional[bytes] = None


__all__ = ["S3Request", "S3Response"]
