"""
Client Configuration
====================

Type-safe, immutable configuration dataclasses for the S3 client.

Design Principles:
------------------
1. **Immutability**: All configs are frozen to prevent runtime mutation
2. **Validation**: Pre-conditions checked at construction time
3. **Secrets**: The secret key never appears in repr() or logs
4. **Environment**: Supports loading from environment variables and
   from the bucket JSON file used by the live test suite
"""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Union
from urllib.parse import quote, urlsplit

from s3lite.core import constants as C
from s3lite.core.types import Err, Ok, Result


_REPEATED_SLASHES = re.compile(r"/+")


def _encode_path(raw: str) -> str:
    """
    Collapse repeated slashes and percent-encode every segment.

    `.` and `..` segments are written as `%2E` runs so that URL
    normalisation cannot remove them from the path on the wire.
    """
    segments = quote(_REPEATED_SLASHES.sub("/", raw), safe="/~").split("/")
    return "/".join(
        "%2E" * len(s) if s in (".", "..") else s for s in segments
    )


# =============================================================================
# ENUMERATIONS
# =============================================================================

class AddressingMode(Enum):
    """
    Where the bucket name goes in a request.

    PATH:         https://{host}/{bucket}/{key}
    VIRTUAL_HOST: https://{bucket}.{host}/{key}
    """
    PATH = "path"
    VIRTUAL_HOST = "virtual-host"


class PreconditionPolicy(Enum):
    """
    What a conditional put/delete does on HTTP 412.

    RAISE propagates the TransportError. RETURN_EXPECTED treats the
    failure as success when the caller supplied the expected ETag: put
    returns that ETag and delete returns normally.
    """
    RAISE = "raise"
    RETURN_EXPECTED = "return-expected"


# =============================================================================
# CREDENTIALS
# =============================================================================

@dataclass(frozen=True, slots=True)
class Credentials:
    """
    Access key pair.

    Attributes:
        access_key: Public key id, sent in the Authorization header.
        secret_key: HMAC key. Excluded from repr.
    """
    access_key: str
    secret_key: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.access_key:
            raise ValueError("access_key must be non-empty")
        if not self.secret_key:
            raise ValueError("secret_key must be non-empty")


# =============================================================================
# ENDPOINT
# =============================================================================

@dataclass(frozen=True, slots=True)
class EndpointConfig:
    """
    Service host and bucket addressing.

    Attributes:
        host: Service host name, optionally with a port.
        bucket: Bucket every request targets.
        addressing: Path-based or virtual-host-based addressing.
        use_ssl: https when True, http otherwise.

    Example:
        >>> ep = EndpointConfig(host="s3.example.com", bucket="media")
        >>> ep.base_url
        'https://s3.example.com'
        >>> ep.object_path("a//b.txt")
        '/media/a/b.txt'
    """
    host: str
    bucket: str
    addressing: AddressingMode = AddressingMode.PATH
    use_ssl: bool = True

    def __post_init__(self) -> None:
        if not self.host or "/" in self.host:
            raise ValueError(f"host must be a bare host name, got {self.host!r}")
        if not self.bucket or "/" in self.bucket:
            raise ValueError(f"bucket must be a plain bucket name, got {self.bucket!r}")

    @classmethod
    def parse(
        cls,
        endpoint: str,
        bucket: str,
        addressing: AddressingMode = AddressingMode.PATH,
    ) -> EndpointConfig:
        """Accept either `host[:port]` or `scheme://host[:port]`."""
        if "://" in endpoint:
            parts = urlsplit(endpoint)
            return cls(
                host=parts.netloc,
                bucket=bucket,
                addressing=addressing,
                use_ssl=parts.scheme != "http",
            )
        return cls(host=endpoint.rstrip("/"), bucket=bucket, addressing=addressing)

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def request_host(self) -> str:
        """Value of the Host header."""
        if self.addressing is AddressingMode.VIRTUAL_HOST:
            return f"{self.bucket}.{self.host}"
        return self.host

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.request_host}"

    def object_path(self, key: str) -> str:
        """
        Percent-encoded request path for `key`.

        Repeated slashes are collapsed and dot segments encoded. For
        path-based addressing the bucket is the first path segment.
        """
        if self.addressing is AddressingMode.PATH:
            raw = f"/{self.bucket}/{key}"
        else:
            raw = f"/{key}"
        return _encode_path(raw)

    def copy_source(self, key: str) -> str:
        """Value of x-amz-copy-source for `key`; always `/{bucket}/{key}`."""
        return _encode_path(f"/{self.bucket}/{key}")


# =============================================================================
# CLIENT CONFIGURATION
# =============================================================================

@dataclass(frozen=True, slots=True)
class ClientConfig:
    """
    Complete client configuration.

    Attributes:
        credentials: Access key pair.
        endpoint: Host, bucket and addressing mode.
        min_chunk_size: Multipart threshold and part size in bytes.
        max_concurrent_parts: Part uploads in flight per session.
        timeout_seconds: Per-request timeout handed to the HTTP client.
        precondition_policy: Behaviour of conditional writes on HTTP 412.
    """
    credentials: Credentials
    endpoint: EndpointConfig
    min_chunk_size: int = C.MIN_CHUNK_SIZE
    max_concurrent_parts: int = C.DEFAULT_MAX_CONCURRENT_PARTS
    timeout_seconds: float = C.DEFAULT_TIMEOUT_SECONDS
    precondition_policy: PreconditionPolicy = PreconditionPolicy.RAISE

    def __post_init__(self) -> None:
        """
        Validate configuration invariants.

        Raises:
            ValueError: If any invariant is violated.
        """
        if self.min_chunk_size <= 0:
            raise ValueError(f"min_chunk_size must be > 0, got {self.min_chunk_size}")
        if self.max_concurrent_parts < 1:
            raise ValueError(
                f"max_concurrent_parts must be >= 1, got {self.max_concurrent_parts}"
            )
        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")

    @classmethod
    def from_env(cls, prefix: str = "S3LITE") -> ClientConfig:
        """
        Construct configuration from environment variables.

        Environment Variables:
        - {prefix}_ACCESS_KEY, {prefix}_SECRET_KEY: credentials (required)
        - {prefix}_ENDPOINT: host or URL (required)
        - {prefix}_BUCKET: bucket name (required)
        - {prefix}_HOST_BASED: virtual-host addressing (default: false)
        - {prefix}_USE_SSL: https (default: true)
        - {prefix}_MIN_CHUNK_SIZE: multipart threshold in bytes
        - {prefix}_MAX_CONCURRENT_PARTS: parts in flight per upload
        - {prefix}_PRECONDITION_POLICY: raise|return-expected

        Raises:
            ValueError: If a required variable is missing or malformed.
        """
        def _get(key: str, default: str = "") -> str:
            return os.environ.get(f"{prefix}_{key}", default)

        def _get_int(key: str, default: int) -> int:
            val = _get(key)
            return int(val) if val else default

        def _get_bool(key: str, default: bool) -> bool:
            val = _get(key).lower()
            if val in ("true", "1", "yes"):
                return True
            if val in ("false", "0", "no"):
                return False
            return default

        missing = [k for k in ("ACCESS_KEY", "SECRET_KEY", "ENDPOINT", "BUCKET") if not _get(k)]
        if missing:
            names = ", ".join(f"{prefix}_{k}" for k in missing)
            raise ValueError(f"Environment variables required: {names}")

        addressing = (
            AddressingMode.VIRTUAL_HOST if _get_bool("HOST_BASED", False)
            else AddressingMode.PATH
        )
        endpoint = EndpointConfig.parse(_get("ENDPOINT"), _get("BUCKET"), addressing)
        if "://" not in _get("ENDPOINT"):
            endpoint = EndpointConfig(
                host=endpoint.host,
                bucket=endpoint.bucket,
                addressing=addressing,
                use_ssl=_get_bool("USE_SSL", True),
            )

        return cls(
            credentials=Credentials(_get("ACCESS_KEY"), _get("SECRET_KEY")),
            endpoint=endpoint,
            min_chunk_size=_get_int("MIN_CHUNK_SIZE", C.MIN_CHUNK_SIZE),
            max_concurrent_parts=_get_int(
                "MAX_CONCURRENT_PARTS", C.DEFAULT_MAX_CONCURRENT_PARTS
            ),
            precondition_policy=PreconditionPolicy(
                _get("PRECONDITION_POLICY", PreconditionPolicy.RAISE.value)
            ),
        )

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> Result[ClientConfig, str]:
        """
        Load a bucket description file.

        The file holds `{"key", "secret", "endpoint", "bucket"}` and an
        optional boolean `"hostBased"`.

        Returns:
            Ok(ClientConfig) on success, Err with message on failure.
        """
        try:
            data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            return Err(f"Cannot read bucket file {path}: {e}")

        if not isinstance(data, dict):
            return Err(f"Bucket file {path} must hold a JSON object")

        try:
            addressing = (
                AddressingMode.VIRTUAL_HOST if data.get("hostBased")
                else AddressingMode.PATH
            )
            return Ok(cls(
                credentials=Credentials(data["key"], data["secret"]),
                endpoint=EndpointConfig.parse(data["endpoint"], data["bucket"], addressing),
            ))
        except KeyError as e:
            return Err(f"Bucket file {path} is missing {e.args[0]!r}")
        except (TypeError, ValueError) as e:
            return Err(f"Configuration error: {e}")


__all__ = [
    "AddressingMode",
    "PreconditionPolicy",
    "Credentials",
    "EndpointConfig",
    "ClientConfig",
]
