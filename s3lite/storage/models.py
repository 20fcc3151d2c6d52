"""
Storage models: object metadata and multipart session state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from s3lite.core.errors import ProtocolError


# =============================================================================
# OBJECT METADATA
# =============================================================================

@dataclass(frozen=True, slots=True)
class ObjectMetadata:
    """
    Read-only snapshot of a remote object at call time.

    HEAD fills every field. Listing entries carry no content type.

    Attributes:
        name: Object key.
        size: Size in bytes.
        etag: Unquoted entity tag.
        last_modified: Modification time, when the service reported one.
        content_type: MIME type, None for listing entries.
    """
    name: str
    size: int
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None

    @property
    def modified(self) -> Optional[datetime]:
        return self.last_modified


# =============================================================================
# MULTIPART SESSION
# =============================================================================

@dataclass(frozen=True, slots=True)
class UploadedPart:
    """One acknowledged part: its number and the ETag the service returned."""
    number: int
    etag: str


@dataclass(slots=True)
class UploadSession:
    """
    Server-side multipart upload owned by a single engine run.

    Created by "start", extended by each successful part, consumed by
    "complete" or "abort". Nothing is persisted.
    """
    upload_id: str
    key: str
    parts: dict[int, str] = field(default_factory=dict)

    def add_part(self, part: UploadedPart) -> None:
        self.parts[part.number] = part.etag

    def manifest(self) -> list[UploadedPart]:
        """
        Parts sorted by number.

        Raises:
            ProtocolError: If the numbers are not exactly 1..N.
        """
        numbers = sorted(self.parts)
        if numbers != list(range(1, len(numbers) + 1)):
            raise ProtocolError.incomplete_manifest(numbers)
        return [UploadedPart(n, self.parts[n]) for n in numbers]


__all__ = ["ObjectMetadata", "UploadedPart", "UploadSession"]
