"""
Unit Tests: Canonical Request Strings

Tests:
    - Content headers (length, MD5, type)
    - Sub-resource whitelist and ordering
    - Vendor header canonicalization
    - String-to-sign layout
"""

import pytest

from s3lite.auth.canonical import (
    canonical_resource,
    canonical_vendor_headers,
    content_headers,
    signed_query,
    string_to_sign,
)


class TestContentHeaders:
    """Tests for content_headers."""

    def test_no_body(self):
        assert content_headers(None) == {}
        assert content_headers(None, "text/plain") == {}

    def test_body_digest(self):
        headers = content_headers(b"hello")
        assert headers == {
            "Content-Length": "5",
            "Content-MD5": "XUFAKrxLKna5cZ2REBfFkg==",
            "Content-Type": "application/octet-stream",
        }

    def test_empty_body_still_described(self):
        headers = content_headers(b"")
        assert headers["Content-Length"] == "0"
        assert headers["Content-MD5"] == "1B2M2Y8AsgTpgAmY7PhCfg=="

    def test_explicit_type(self):
        assert content_headers(b"{}", "application/json")["Content-Type"] == "application/json"


class TestSignedQuery:
    """Tests for signed_query and canonical_resource."""

    def test_only_whitelisted(self):
        params = [("prefix", "docs/"), ("list-type", "2"), ("delimiter", "/")]
        assert signed_query(params) == ""

    def test_sorted_with_values(self):
        params = [("uploadId", "abc"), ("partNumber", "2")]
        assert signed_query(params) == "partNumber=2&uploadId=abc"

    def test_empty_value_is_bare_name(self):
        assert signed_query([("uploads", "")]) == "uploads"

    def test_mixed(self):
        params = [("versionId", "v1"), ("max-keys", "5"), ("acl", "")]
        assert signed_query(params) == "acl&versionId=v1"

    def test_resource_without_query(self):
        assert canonical_resource("/media/a.txt") == "/media/a.txt"
        assert canonical_resource("/media/a.txt", [("prefix", "x")]) == "/media/a.txt"

    def test_resource_with_subresource(self):
        assert canonical_resource("/media/big.bin", [("uploads", "")]) == "/media/big.bin?uploads"


class TestVendorHeaders:
    """Tests for canonical_vendor_headers."""

    def test_lowercased_and_sorted(self):
        headers = {
            "X-Amz-Meta-Zeta": "z",
            "Content-Type": "text/plain",
            "x-amz-acl": "private",
        }
        assert canonical_vendor_headers(headers) == [
            "x-amz-acl:private",
            "x-amz-meta-zeta:z",
        ]

    def test_date_header_excluded(self):
        headers = {"x-amz-date": "Tue, 02 Jan 2024 03:04:05 GMT", "x-amz-copy-source": "/b/k"}
        assert canonical_vendor_headers(headers) == ["x-amz-copy-source:/b/k"]

    def test_insertion_order_irrelevant(self):
        a = {"x-amz-b": "2", "x-amz-a": "1"}
        b = {"x-amz-a": "1", "x-amz-b": "2"}
        assert canonical_vendor_headers(a) == canonical_vendor_headers(b)


class TestStringToSign:
    """Tests for string_to_sign."""

    def test_full_layout(self):
        headers = {
            "Content-MD5": "m",
            "Content-Type": "t",
            "Date": "d",
            "x-amz-copy-source": "/media/a",
        }
        assert string_to_sign("PUT", headers, "/media/b") == (
            "PUT\nm\nt\nd\nx-amz-copy-source:/media/a\n/media/b"
        )

    def test_missing_headers_are_empty_lines(self):
        assert string_to_sign("GET", {"Date": "d"}, "/media/a") == "GET\n\n\nd\n/media/a"

    def test_case_insensitive_lookup(self):
        lower = {"content-type": "t", "date": "d"}
        upper = {"Content-Type": "t", "Date": "d"}
        assert string_to_sign("GET", lower, "/r") == string_to_sign("GET", upper, "/r")

    @pytest.mark.parametrize("method", ["GET", "HEAD", "PUT", "POST", "DELETE"])
    def test_deterministic(self, method):
        headers = {"Date": "d", "x-amz-meta-a": "1"}
        first = string_to_sign(method, headers, "/media/k")
        assert first == string_to_sign(method, dict(headers), "/media/k")
        assert first.startswith(f"{method}\n")
