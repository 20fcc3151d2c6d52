"""
Protocol Constants for the S3 client

All magic numbers and wire-level names centralized here.
"""

from typing import Final

# =============================================================================
# SIZE UNITS
# =============================================================================
KB: Final[int] = 1024
MB: Final[int] = 1024 * KB

# =============================================================================
# MULTIPART
# =============================================================================
# S3 rejects non-final parts smaller than 5 MiB
MIN_CHUNK_SIZE: Final[int] = 5 * MB
DEFAULT_MAX_CONCURRENT_PARTS: Final[int] = 4

# =============================================================================
# SIGNING
# =============================================================================
# Sub-resources that are part of the signed resource string
QUERY_WHITELIST: Final[frozenset[str]] = frozenset({
    "acl",
    "delete",
    "lifecycle",
    "location",
    "logging",
    "notification",
    "partNumber",
    "policy",
    "requestPayment",
    "torrent",
    "uploadId",
    "uploads",
    "versionId",
    "versioning",
    "versions",
    "website",
})

VENDOR_HEADER_PREFIX: Final[str] = "x-amz-"
VENDOR_DATE_HEADER: Final[str] = "x-amz-date"
AUTH_SCHEME: Final[str] = "AWS"

# =============================================================================
# CONTENT TYPES
# =============================================================================
BINARY_CONTENT_TYPE: Final[str] = "application/octet-stream"
TEXT_CONTENT_TYPE: Final[str] = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE: Final[str] = "application/json; charset=utf-8"
XML_CONTENT_TYPE: Final[str] = "application/xml"

# =============================================================================
# LISTING
# =============================================================================
LIST_DELIMITER: Final[str] = "/"
LIST_TYPE: Final[str] = "2"

# =============================================================================
# TRANSPORT
# =============================================================================
DEFAULT_TIMEOUT_SECONDS: Final[float] = 60.0
