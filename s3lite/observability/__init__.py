"""
Observability module: structured logging.
"""

from s3lite.observability.logging import (
    JsonFormatter,
    LogLevel,
    current_log_context,
    log_context,
    setup_logging,
)

__all__ = [
    "JsonFormatter",
    "LogLevel",
    "current_log_context",
    "log_context",
    "setup_logging",
]
