"""
In-Memory S3 Service for Tests

An httpx.MockTransport handler that behaves like a single-bucket S3
endpoint: it checks signatures and Content-MD5, honours conditional
headers, pages ListObjectsV2 and runs multipart uploads. Knobs on the
instance inject failures and delays into multipart calls.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import AsyncIterator, Dict, List, Optional, Set, Tuple
from urllib.parse import unquote
from uuid import uuid4

import httpx

from s3lite.auth.canonical import canonical_resource, string_to_sign
from s3lite.auth.signer import sign
from s3lite.core.config import (
    AddressingMode,
    ClientConfig,
    Credentials,
    EndpointConfig,
    PreconditionPolicy,
)

S3_NS = "http://s3.amazonaws.com/doc/2006-03-01/"

TEST_CHUNK_SIZE = 1024

FIXED_NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def fixed_clock() -> datetime:
    return FIXED_NOW


async def byte_chunks(data: bytes, size: int) -> AsyncIterator[bytes]:
    """Feed `data` to an upload in `size`-byte chunks."""
    for offset in range(0, len(data), size):
        yield data[offset:offset + size]


def make_config(
    credentials: Credentials,
    *,
    addressing: AddressingMode = AddressingMode.PATH,
    policy: PreconditionPolicy = PreconditionPolicy.RAISE,
    min_chunk_size: int = TEST_CHUNK_SIZE,
    max_concurrent_parts: int = 3,
) -> ClientConfig:
    """Client configuration pointing at the fake endpoint over plain http."""
    return ClientConfig(
        credentials=credentials,
        endpoint=EndpointConfig(
            host="s3.test", bucket="media", addressing=addressing, use_ssl=False
        ),
        min_chunk_size=min_chunk_size,
        max_concurrent_parts=max_concurrent_parts,
        precondition_policy=policy,
    )


@dataclass
class StoredObject:
    data: bytes
    etag: str
    content_type: str
    last_modified: datetime = FIXED_NOW


@dataclass
class PendingUpload:
    key: str
    content_type: str
    parts: Dict[int, Tuple[str, bytes]]


def _md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _xml(root: ET.Element) -> bytes:
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


def _element(tag: str, **children: str) -> ET.Element:
    root = ET.Element(tag, xmlns=S3_NS)
    for name, text in children.items():
        ET.SubElement(root, name).text = text
    return root


def error_response(status: int, code: str, message: str, method: str = "GET") -> httpx.Response:
    if method == "HEAD":
        return httpx.Response(status)
    body = _xml(_element("Error", Code=code, Message=message))
    return httpx.Response(status, content=body, headers={"Content-Type": "application/xml"})


class FakeS3:
    """
    Single-bucket S3 emulation.

    Attributes:
        objects: Stored objects by key.
        uploads: Multipart uploads in progress by upload id.
        requests: Every request received, in arrival order.
        aborted: Upload ids the client asked to abort.
        manifests: Part numbers of every completion request.
        fail_parts: Part numbers answered with HTTP 500.
        part_delays: Seconds to stall before answering a part number.
        fail_abort: Answer abort requests with HTTP 500.
        fail_complete: Answer completion requests with HTTP 500.
        page_size: Default max-keys for listings.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        host: str = "s3.test",
        bucket: str = "media",
    ) -> None:
        self.credentials = credentials
        self.host = host
        self.bucket = bucket

        self.objects: Dict[str, StoredObject] = {}
        self.uploads: Dict[str, PendingUpload] = {}
        self.requests: List[httpx.Request] = []
        self.aborted: List[str] = []
        self.manifests: List[List[int]] = []
        self.signed_messages: List[str] = []

        self.fail_parts: Set[int] = set()
        self.part_delays: Dict[int, float] = {}
        self.fail_abort = False
        self.fail_complete = False
        self.page_size = 1000

        self.parts_in_flight = 0
        self.max_parts_in_flight = 0
        self.part_started = asyncio.Event()

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Seed an object directly; returns its ETag."""
        etag = _md5_hex(data)
        self.objects[key] = StoredObject(data, etag, content_type)
        return etag

    def requests_for(self, method: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    # -------------------------------------------------------------------------
    # DISPATCH
    # -------------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        await request.aread()

        denied = self._verify(request)
        if denied is not None:
            return denied

        key = self._key(request)
        if key is None:
            return error_response(404, "NoSuchBucket", "bucket not found", request.method)

        params = request.url.params
        method = request.method

        if key == "":
            if method == "GET" and params.get("list-type") == "2":
                return self._list(params)
            return error_response(405, "MethodNotAllowed", "bucket operation", method)

        if method == "POST" and "uploads" in params:
            return self._initiate(key, request)
        if method == "POST" and "uploadId" in params:
            return self._complete(key, params["uploadId"], request)
        if method == "PUT" and "uploadId" in params:
            return await self._upload_part(params["uploadId"], int(params["partNumber"]), request)
        if method == "DELETE" and "uploadId" in params:
            return self._abort(params["uploadId"])

        if method in ("GET", "HEAD"):
            return self._read(key, request)
        if method == "PUT" and "x-amz-copy-source" in request.headers:
            return self._copy(key, request)
        if method == "PUT":
            return self._put(key, request)
        if method == "DELETE":
            return self._delete(key, request)
        return error_response(405, "MethodNotAllowed", method, method)

    def _verify(self, request: httpx.Request) -> Optional[httpx.Response]:
        raw_path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        params = list(request.url.params.multi_items())
        headers = dict(request.headers.items())
        message = string_to_sign(request.method, headers, canonical_resource(raw_path, params))
        self.signed_messages.append(message)

        expected = f"AWS {self.credentials.access_key}:{sign(self.credentials.secret_key, message)}"
        if request.headers.get("authorization") != expected:
            return error_response(403, "SignatureDoesNotMatch", "bad signature", request.method)

        md5 = request.headers.get("content-md5")
        if md5 is not None:
            actual = base64.b64encode(hashlib.md5(request.content).digest()).decode("ascii")
            if md5 != actual:
                return error_response(400, "BadDigest", "Content-MD5 mismatch", request.method)
        return None

    def _key(self, request: httpx.Request) -> Optional[str]:
        host = request.headers.get("host", "")
        path = unquote(request.url.raw_path.decode("ascii").split("?", 1)[0])
        if host == f"{self.bucket}.{self.host}":
            return path[1:]
        bucket, _, key = path[1:].partition("/")
        if bucket != self.bucket:
            return None
        return key

    # -------------------------------------------------------------------------
    # OBJECTS
    # -------------------------------------------------------------------------

    def _precondition(self, key: str, request: httpx.Request) -> Optional[httpx.Response]:
        current = self.objects.get(key)
        if_match = request.headers.get("if-match")
        if_none_match = request.headers.get("if-none-match")
        if if_match is not None:
            if current is None or if_match.strip('"') != current.etag:
                return error_response(412, "PreconditionFailed", "If-Match", request.method)
        if if_none_match == "*" and current is not None:
            return error_response(412, "PreconditionFailed", "If-None-Match", request.method)
        return None

    def _object_headers(self, obj: StoredObject) -> Dict[str, str]:
        return {
            "ETag": f'"{obj.etag}"',
            "Content-Type": obj.content_type,
            "Content-Length": str(len(obj.data)),
            "Last-Modified": format_datetime(obj.last_modified, usegmt=True),
        }

    def _read(self, key: str, request: httpx.Request) -> httpx.Response:
        obj = self.objects.get(key)
        if obj is None:
            return error_response(404, "NoSuchKey", key, request.method)
        if_none_match = request.headers.get("if-none-match")
        if if_none_match is not None and if_none_match.strip('"') == obj.etag:
            return httpx.Response(304, headers={"ETag": f'"{obj.etag}"'})
        headers = self._object_headers(obj)
        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=obj.data)

    def _put(self, key: str, request: httpx.Request) -> httpx.Response:
        failed = self._precondition(key, request)
        if failed is not None:
            return failed
        content_type = request.headers.get("content-type", "application/octet-stream")
        etag = self.put_object(key, request.content, content_type)
        return httpx.Response(200, headers={"ETag": f'"{etag}"'})

    def _delete(self, key: str, request: httpx.Request) -> httpx.Response:
        failed = self._precondition(key, request)
        if failed is not None:
            return failed
        self.objects.pop(key, None)
        return httpx.Response(204)

    def _copy(self, key: str, request: httpx.Request) -> httpx.Response:
        source = unquote(request.headers["x-amz-copy-source"])
        bucket, _, source_key = source.lstrip("/").partition("/")
        obj = self.objects.get(source_key) if bucket == self.bucket else None
        if obj is None:
            return error_response(404, "NoSuchKey", source, request.method)
        failed = self._precondition(key, request)
        if failed is not None:
            return failed
        self.objects[key] = StoredObject(obj.data, obj.etag, obj.content_type)
        body = _xml(_element(
            "CopyObjectResult",
            LastModified="2024-01-02T03:04:05.000Z",
            ETag=f'"{obj.etag}"',
        ))
        return httpx.Response(200, content=body)

    # -------------------------------------------------------------------------
    # LISTING
    # -------------------------------------------------------------------------

    def _list(self, params: httpx.QueryParams) -> httpx.Response:
        prefix = params.get("prefix", "")
        delimiter = params.get("delimiter", "")
        max_keys = int(params.get("max-keys", self.page_size))
        after = params.get("continuation-token")

        names: Dict[str, bool] = {}  # name -> is common prefix
        for key in sorted(self.objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix):]
            if delimiter and delimiter in rest:
                names[prefix + rest.split(delimiter, 1)[0] + delimiter] = True
            else:
                names[key] = False

        ordered = sorted(names)
        if after:
            ordered = [n for n in ordered if n > after]
        page, remaining = ordered[:max_keys], ordered[max_keys:]

        root = _element("ListBucketResult", Name=self.bucket, Prefix=prefix)
        ET.SubElement(root, "KeyCount").text = str(len(page))
        ET.SubElement(root, "MaxKeys").text = str(max_keys)
        ET.SubElement(root, "IsTruncated").text = "true" if remaining else "false"
        if remaining:
            ET.SubElement(root, "NextContinuationToken").text = page[-1]
        for name in page:
            if names[name]:
                common = ET.SubElement(root, "CommonPrefixes")
                ET.SubElement(common, "Prefix").text = name
                continue
            obj = self.objects[name]
            item = ET.SubElement(root, "Contents")
            ET.SubElement(item, "Key").text = name
            ET.SubElement(item, "LastModified").text = "2024-01-02T03:04:05.000Z"
            ET.SubElement(item, "ETag").text = f'"{obj.etag}"'
            ET.SubElement(item, "Size").text = str(len(obj.data))
            ET.SubElement(item, "StorageClass").text = "STANDARD"
        return httpx.Response(200, content=_xml(root))

    # -------------------------------------------------------------------------
    # MULTIPART
    # -------------------------------------------------------------------------

    def _initiate(self, key: str, request: httpx.Request) -> httpx.Response:
        upload_id = uuid4().hex
        content_type = request.headers.get("content-type", "application/octet-stream")
        self.uploads[upload_id] = PendingUpload(key, content_type, {})
        body = _xml(_element(
            "InitiateMultipartUploadResult",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
        ))
        return httpx.Response(200, content=body)

    async def _upload_part(
        self,
        upload_id: str,
        number: int,
        request: httpx.Request,
    ) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None:
            return error_response(404, "NoSuchUpload", upload_id, request.method)

        self.parts_in_flight += 1
        self.max_parts_in_flight = max(self.max_parts_in_flight, self.parts_in_flight)
        self.part_started.set()
        try:
            delay = self.part_delays.get(number)
            if delay:
                await asyncio.sleep(delay)
            if number in self.fail_parts:
                return error_response(500, "InternalError", f"part {number}", request.method)
            etag = _md5_hex(request.content)
            upload.parts[number] = (etag, request.content)
            return httpx.Response(200, headers={"ETag": f'"{etag}"'})
        finally:
            self.parts_in_flight -= 1

    def _complete(self, key: str, upload_id: str, request: httpx.Request) -> httpx.Response:
        upload = self.uploads.get(upload_id)
        if upload is None:
            return error_response(404, "NoSuchUpload", upload_id, request.method)
        if self.fail_complete:
            return error_response(500, "InternalError", "complete", request.method)

        root = ET.fromstring(request.content)
        listed = [
            (int(part.findtext("PartNumber")), part.findtext("ETag").strip('"'))
            for part in root.findall("Part")
        ]
        self.manifests.append([number for number, _ in listed])
        numbers = [number for number, _ in listed]
        if numbers != sorted(numbers):
            return error_response(400, "InvalidPartOrder", "parts out of order", request.method)
        for number, etag in listed:
            stored = upload.parts.get(number)
            if stored is None or stored[0] != etag:
                return error_response(400, "InvalidPart", f"part {number}", request.method)

        failed = self._precondition(key, request)
        if failed is not None:
            return failed

        data = b"".join(upload.parts[number][1] for number in numbers)
        digest = hashlib.md5(
            b"".join(bytes.fromhex(upload.parts[n][0]) for n in numbers)
        ).hexdigest()
        etag = f"{digest}-{len(numbers)}"
        self.objects[key] = StoredObject(data, etag, upload.content_type)
        del self.uploads[upload_id]

        body = _xml(_element(
            "CompleteMultipartUploadResult",
            Location=f"http://{self.host}/{self.bucket}/{key}",
            Bucket=self.bucket,
            Key=key,
            ETag=f'"{etag}"',
        ))
        return httpx.Response(200, content=body)

    def _abort(self, upload_id: str) -> httpx.Response:
        self.aborted.append(upload_id)
        if self.fail_abort:
            return error_response(500, "InternalError", "abort", "DELETE")
        if self.uploads.pop(upload_id, None) is None:
            return error_response(404, "NoSuchUpload", upload_id, "DELETE")
        return httpx.Response(204)
