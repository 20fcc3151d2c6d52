"""
Storage Module: S3 Object Operations
====================================

Provides:
- S3ObjectStore: head/get/stream/put/delete/copy/list for one bucket
- MultipartUpload: streamed uploads with all-or-nothing commit
- Models for object metadata and multipart sessions
- XML helpers for the service's response documents

Example:
    >>> config = ClientConfig.from_env()
    >>> async with S3ObjectStore(config) as store:
    ...     etag = await store.put("reports/q1.json", {"total": 3})
    ...     meta = await store.head("reports/q1.json")
"""

from s3lite.storage.models import ObjectMetadata, UploadedPart, UploadSession
from s3lite.storage.s3_store import (
    S3Metrics,
    S3ObjectStore,
    encode_content,
    normalize_prefix,
    write_conditions,
)
from s3lite.storage.multipart import MultipartUpload, UploadState

__all__ = [
    "ObjectMetadata",
    "UploadedPart",
    "UploadSession",
    "S3Metrics",
    "S3ObjectStore",
    "encode_content",
    "normalize_prefix",
    "write_conditions",
    "MultipartUpload",
    "UploadState",
]
