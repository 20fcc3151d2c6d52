"""HMAC-SHA1 request signing (S3 signature version 2)."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import MutableMapping, Optional

from s3lite.auth.canonical import canonical_resource, content_headers, string_to_sign
from s3lite.core.config import Credentials
from s3lite.core.constants import AUTH_SCHEME


def sign(secret_key: str, message: str) -> str:
    """Base64 HMAC-SHA1 of the UTF-8 encoded message."""
    mac = hmac.new(secret_key.encode("utf-8"), message.encode("utf-8"), hashlib.sha1)
    return base64.b64encode(mac.digest()).decode("ascii")


def authorization_header(access_key: str, signature: str) -> str:
    return f"{AUTH_SCHEME} {access_key}:{signature}"


class RequestSigner:
    """
    Applies content, host, date and authorization headers to a request.

    Holds the credentials so callers never handle the secret key.
    """

    __slots__ = ("_credentials",)

    def __init__(self, credentials: Credentials) -> None:
        self._credentials = credentials

    @property
    def access_key(self) -> str:
        return self._credentials.access_key

    def sign_headers(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]],
        headers: MutableMapping[str, str],
        body: Optional[bytes],
        *,
        host: str,
        date: str,
    ) -> str:
        """
        Complete `headers` in place and return the string that was signed.

        A Content-Type already present in `headers` is kept; with a body
        and no type the generic binary type is used.
        """
        content_type = headers.get("Content-Type")
        for name, value in content_headers(body, content_type).items():
            headers[name] = value
        headers["Date"] = date
        headers["Host"] = host

        message = string_to_sign(method, headers, canonical_resource(path, params))
        signature = sign(self._credentials.secret_key, message)
        headers["Authorization"] = authorization_header(self._credentials.access_key, signature)
        return message

    def __repr__(self) -> str:
        return f"RequestSigner(access_key={self._credentials.access_key!r})"


__all__ = ["sign", "authorization_header", "RequestSigner"]
