"""
Auth module: canonical request strings and HMAC signatures.
"""

from s3lite.auth.canonical import (
    content_headers,
    signed_query,
    canonical_resource,
    canonical_vendor_headers,
    string_to_sign,
)
from s3lite.auth.signer import sign, authorization_header, RequestSigner

__all__ = [
    "content_headers",
    "signed_query",
    "canonical_resource",
    "canonical_vendor_headers",
    "string_to_sign",
    "sign",
    "authorization_header",
    "RequestSigner",
]
