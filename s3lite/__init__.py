"""
s3lite: Minimal Async Client for S3-Compatible Object Storage

A small client for one bucket of an S3-compatible service:
- Signing: canonical request strings and HMAC-SHA1 (signature version 2)
- Transport: one signed httpx call per request, no redirects, no retries
- Objects: head, get, stream, put, delete, copy and paginated list
- Multipart: streamed uploads of unknown length with bounded concurrency
  and abort-on-failure
- Cancellation: one token aborts everything a client is doing

Writes are conditional. A put without an expected ETag only creates;
with one it only replaces that version.

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from s3lite.core.types import Result, Ok, Err
from s3lite.core.errors import (
    ErrorCode,
    S3LiteError,
    TransportError,
    ProtocolError,
    AbortedError,
    AggregateUploadError,
)
from s3lite.core.config import (
    AddressingMode,
    PreconditionPolicy,
    Credentials,
    EndpointConfig,
    ClientConfig,
)
from s3lite.core.cancellation import CancellationToken
from s3lite.auth import RequestSigner, sign, string_to_sign
from s3lite.transport import HttpTransport, S3Request, S3Response
from s3lite.storage import (
    MultipartUpload,
    ObjectMetadata,
    S3Metrics,
    S3ObjectStore,
    UploadState,
)
from s3lite.observability import log_context, setup_logging

__all__ = [
    "__version__",
    # Core
    "Result",
    "Ok",
    "Err",
    "ErrorCode",
    "S3LiteError",
    "TransportError",
    "ProtocolError",
    "AbortedError",
    "AggregateUploadError",
    "AddressingMode",
    "PreconditionPolicy",
    "Credentials",
    "EndpointConfig",
    "ClientConfig",
    "CancellationToken",
    # Signing and transport
    "RequestSigner",
    "sign",
    "string_to_sign",
    "HttpTransport",
    "S3Request",
    "S3Response",
    # Storage
    "MultipartUpload",
    "ObjectMetadata",
    "S3Metrics",
    "S3ObjectStore",
    "UploadState",
    # Observability
    "log_context",
    "setup_logging",
]
