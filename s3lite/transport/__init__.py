"""
Transport module: one signed HTTP call per request.
"""

from s3lite.transport.request import S3Request, S3Response
from s3lite.transport.http import HttpTransport

__all__ = [
    "S3Request",
    "S3Response",
    "HttpTransport",
]
