"""
Core Type Definitions for the S3 client

Implements the Result/Either monad used for recoverable absence
(configuration loading) and the ETag wire-form helpers shared by the
object operations and the multipart engine.

Design Principles:
- Operational failures raise (see s3lite.core.errors)
- Expected absence is returned as Err, never as None
- ETags cross the library boundary unquoted; the wire form is quoted
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    Any,
    Generic,
    Literal,
    Optional,
    TypeVar,
    Union,
)

# =============================================================================
# TYPE VARIABLES FOR GENERIC CONTAINERS
# =============================================================================
T = TypeVar("T")  # Success type
E = TypeVar("E")  # Error type


# =============================================================================
# RESULT MONAD
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """
    Success variant of Result monad.

    Immutable, hashable container for successful computation results.
    """

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Extract value. Safe to call after is_ok() check."""
        return self.value

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    Failure variant of Result monad.

    Immutable container for error information.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        """
        Attempting to unwrap an error is a programming error.

        Raises:
            RuntimeError: Always, with error context
        """
        raise RuntimeError(f"Called unwrap() on Err: {self.error}")

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# Union type for pattern matching
Result = Union[Ok[T], Err[E]]


# =============================================================================
# ETAG WIRE FORM
# =============================================================================
def quote_etag(etag: str) -> str:
    """
    Wrap an ETag in the double quotes HTTP expects.

    Already-quoted values and the `*` wildcard pass through unchanged.
    """
    if etag == "*" or (len(etag) >= 2 and etag.startswith('"') and etag.endswith('"')):
        return etag
    return f'"{etag}"'


def unquote_etag(value: Optional[str]) -> Optional[str]:
    """Strip one pair of surrounding quotes from a wire ETag."""
    if value is None:
        return None
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


__all__ = [
    "Ok",
    "Err",
    "Result",
    "quote_etag",
    "unquote_etag",
]
