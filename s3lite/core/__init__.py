"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the client:
- Result monad for recoverable absence
- Error hierarchy raised by transport, decoding and multipart cleanup
- Configuration management with validation
- Cooperative cancellation tokens
"""

from s3lite.core.types import (
    Result,
    Ok,
    Err,
    quote_etag,
    unquote_etag,
)
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

__all__ = [
    "Result",
    "Ok",
    "Err",
    "quote_etag",
    "unquote_etag",
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
]
