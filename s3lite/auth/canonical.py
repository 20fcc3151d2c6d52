"""Canonical string construction for S3 request signing.

Every function here is pure: the same inputs always give a byte-identical
string. The layout is::

    METHOD
    Content-MD5
    Content-Type
    Date
    x-amz-header:value        (zero or more, sorted by lowercased name)
    /resource?sub-resources

Only sub-resources from ``QUERY_WHITELIST`` are signed. Any other query
parameter is still sent on the wire but stays out of the resource string.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Iterable, Mapping, Optional

from s3lite.core.constants import (
    BINARY_CONTENT_TYPE,
    QUERY_WHITELIST,
    VENDOR_DATE_HEADER,
    VENDOR_HEADER_PREFIX,
)


def _header(headers: Mapping[str, str], name: str) -> str:
    """Case-insensitive lookup; a missing header reads as empty."""
    for key, value in headers.items():
        if key.lower() == name:
            return value
    return ""


def content_headers(body: Optional[bytes], content_type: Optional[str] = None) -> dict[str, str]:
    """
    Headers describing a request body.

    Returns Content-Length, the base64 MD5 digest and the content type
    (defaulting to application/octet-stream). Without a body there is
    nothing to describe and the result is empty.
    """
    if body is None:
        return {}
    digest = base64.b64encode(hashlib.md5(body).digest()).decode("ascii")
    return {
        "Content-Length": str(len(body)),
        "Content-MD5": digest,
        "Content-Type": content_type or BINARY_CONTENT_TYPE,
    }


def signed_query(params: Iterable[tuple[str, str]]) -> str:
    """Whitelisted sub-resources, sorted, as they appear in the resource."""
    pairs = sorted((k, v) for k, v in params if k in QUERY_WHITELIST)
    return "&".join(k if not v else f"{k}={v}" for k, v in pairs)


def canonical_resource(path: str, params: Iterable[tuple[str, str]] = ()) -> str:
    """
    Resource part of the string to sign.

    `path` is the encoded request path, which already starts with
    `/{bucket}` under path-based addressing.
    """
    query = signed_query(params)
    return f"{path}?{query}" if query else path


def canonical_vendor_headers(headers: Mapping[str, str]) -> list[str]:
    """`name:value` lines for x-amz-* headers except x-amz-date, sorted by name."""
    lines = []
    for key, value in headers.items():
        name = key.lower()
        if not name.startswith(VENDOR_HEADER_PREFIX) or name == VENDOR_DATE_HEADER:
            continue
        lines.append((name, value))
    lines.sort(key=lambda item: item[0])
    return [f"{name}:{value}" for name, value in lines]


def string_to_sign(method: str, headers: Mapping[str, str], resource: str) -> str:
    """Join the signed request elements with newlines."""
    return "\n".join([
        method,
        _header(headers, "content-md5"),
        _header(headers, "content-type"),
        _header(headers, "date"),
        *canonical_vendor_headers(headers),
        resource,
    ])


__all__ = [
    "content_headers",
    "signed_query",
    "canonical_resource",
    "canonical_vendor_headers",
    "string_to_sign",
]
