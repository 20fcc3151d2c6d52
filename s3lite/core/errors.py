"""
Error Hierarchy for the S3 client

Design Principles:
- Canonicalization and signing never fail; everything else raises
- Never swallow errors: cleanup failures are reported next to the
  original failure, not instead of it
- Carry full error context for debugging (never credentials)

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis

Usage:
    try:
        await store.head("missing.txt")
    except TransportError as e:
        if e.is_not_found:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence
from uuid import uuid4


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Transport errors
    - 2xxx: Protocol (response decoding) errors
    - 3xxx: Cancellation
    - 4xxx: Multipart cleanup
    """

    # Transport errors (1xxx)
    TRANSPORT_HTTP_STATUS = 1001
    TRANSPORT_REDIRECT = 1002
    TRANSPORT_CONNECTION_FAILED = 1003

    # Protocol errors (2xxx)
    PROTOCOL_MISSING_FIELD = 2001
    PROTOCOL_EMPTY_BODY = 2002
    PROTOCOL_ERROR_DOCUMENT = 2003
    PROTOCOL_INCOMPLETE_MANIFEST = 2004
    PROTOCOL_MALFORMED_DOCUMENT = 2005

    # Cancellation (3xxx)
    ABORTED_CANCELLED = 3001

    # Multipart cleanup (4xxx)
    UPLOAD_ABORT_FAILED = 4001


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class S3LiteError(Exception):
    """
    Base class for all client errors.

    Provides common infrastructure for error handling:
    - Unique error ID for correlating log lines
    - Error code for programmatic handling
    - Cause for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================
@dataclass
class TransportError(S3LiteError):
    """
    A single HTTP call did not succeed.

    `status` is the HTTP status code (0 when no response arrived),
    `reason` the status text and `body` the raw response body, kept
    for diagnostics.
    """

    status: int = 0
    reason: str = ""
    body: Optional[bytes] = None

    @classmethod
    def from_status(
        cls,
        method: str,
        path: str,
        status: int,
        reason: str,
        body: Optional[bytes] = None,
    ) -> TransportError:
        """Non-2xx response."""
        return cls(
            code=ErrorCode.TRANSPORT_HTTP_STATUS,
            message=f"{method} {path} failed: HTTP {status} {reason}".rstrip(),
            status=status,
            reason=reason,
            body=body,
            context={"method": method, "path": path, "status": status},
        )

    @classmethod
    def redirect(
        cls,
        method: str,
        path: str,
        status: int,
        reason: str,
        location: Optional[str] = None,
    ) -> TransportError:
        """3xx response; redirects are never followed."""
        return cls(
            code=ErrorCode.TRANSPORT_REDIRECT,
            message=f"{method} {path} answered with redirect HTTP {status}",
            status=status,
            reason=reason,
            context={"method": method, "path": path, "location": location},
        )

    @classmethod
    def connection_failed(
        cls,
        method: str,
        path: str,
        cause: BaseException,
    ) -> TransportError:
        """No HTTP response could be obtained."""
        return cls(
            code=ErrorCode.TRANSPORT_CONNECTION_FAILED,
            message=f"{method} {path} failed: {cause}",
            cause=cause,
            context={"method": method, "path": path},
        )

    @property
    def is_not_found(self) -> bool:
        return self.status == 404

    @property
    def is_precondition_failed(self) -> bool:
        return self.status == 412

    @property
    def is_not_modified(self) -> bool:
        return self.status == 304


# =============================================================================
# PROTOCOL ERRORS
# =============================================================================
@dataclass
class ProtocolError(S3LiteError):
    """A response arrived but could not be interpreted."""

    @classmethod
    def missing_field(cls, document: str, field_name: str) -> ProtocolError:
        """Expected XML element absent."""
        return cls(
            code=ErrorCode.PROTOCOL_MISSING_FIELD,
            message=f"{document} response has no {field_name}",
            context={"document": document, "field": field_name},
        )

    @classmethod
    def empty_body(cls, operation: str) -> ProtocolError:
        """Body required but empty."""
        return cls(
            code=ErrorCode.PROTOCOL_EMPTY_BODY,
            message=f"{operation} returned an empty body",
            context={"operation": operation},
        )

    @classmethod
    def error_document(cls, error_code: str, error_message: str) -> ProtocolError:
        """A success status that carries an <Error> document."""
        return cls(
            code=ErrorCode.PROTOCOL_ERROR_DOCUMENT,
            message=f"service returned {error_code}: {error_message}",
            context={"error_code": error_code},
        )

    @classmethod
    def malformed(cls, document: str, cause: BaseException) -> ProtocolError:
        """Body is not well-formed XML."""
        return cls(
            code=ErrorCode.PROTOCOL_MALFORMED_DOCUMENT,
            message=f"{document} response is not valid XML: {cause}",
            cause=cause,
            context={"document": document},
        )

    @classmethod
    def incomplete_manifest(cls, numbers: Sequence[int]) -> ProtocolError:
        """Part numbers are not exactly 1..N."""
        return cls(
            code=ErrorCode.PROTOCOL_INCOMPLETE_MANIFEST,
            message=f"part numbers are not contiguous from 1: {list(numbers)}",
            context={"part_numbers": list(numbers)},
        )


# =============================================================================
# CANCELLATION
# =============================================================================
@dataclass
class AbortedError(S3LiteError):
    """A cancellation token was triggered."""

    @classmethod
    def cancelled(cls, reason: Optional[str] = None) -> AbortedError:
        return cls(
            code=ErrorCode.ABORTED_CANCELLED,
            message=f"operation cancelled: {reason}" if reason else "operation cancelled",
            context={"reason": reason},
        )


# =============================================================================
# MULTIPART CLEANUP
# =============================================================================
def _describe(error: BaseException) -> str:
    """Exception type plus message; the type alone when the message is empty."""
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__


@dataclass
class AggregateUploadError(S3LiteError):
    """
    A multipart upload failed and so did the abort that followed.

    Both failures are kept: `original` is what broke the upload,
    `abort_error` is what broke the cleanup.
    """

    upload_id: str = ""
    original: Optional[BaseException] = None
    abort_error: Optional[BaseException] = None

    @classmethod
    def from_failures(
        cls,
        upload_id: str,
        original: BaseException,
        abort_error: BaseException,
    ) -> AggregateUploadError:
        return cls(
            code=ErrorCode.UPLOAD_ABORT_FAILED,
            message=(
                f"multipart upload {upload_id} failed ({_describe(original)}) "
                f"and could not be aborted ({_describe(abort_error)})"
            ),
            cause=original,
            upload_id=upload_id,
            original=original,
            abort_error=abort_error,
            context={"upload_id": upload_id},
        )

    @property
    def errors(self) -> tuple[BaseException, ...]:
        return tuple(e for e in (self.original, self.abort_error) if e is not None)


__all__ = [
    "ErrorCode",
    "S3LiteError",
    "TransportError",
    "ProtocolError",
    "AbortedError",
    "AggregateUploadError",
]
