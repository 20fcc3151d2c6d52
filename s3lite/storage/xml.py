"""
XML helpers for S3 response and request documents.

Responses are parsed with the standard library ElementTree; namespaces
are dropped so callers address children by local name.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Iterable, Optional

from s3lite.core.errors import ProtocolError
from s3lite.core.types import quote_etag
from s3lite.storage.models import UploadedPart


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def parse_xml(content: Optional[bytes], document: str) -> ET.Element:
    """
    Parse a response body into an element tree.

    Raises:
        ProtocolError: Empty body, malformed XML, or an <Error> document.
    """
    if not content:
        raise ProtocolError.empty_body(document)
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise ProtocolError.malformed(document, e) from e

    for element in root.iter():
        element.tag = _local(element.tag)

    if root.tag == "Error":
        raise ProtocolError.error_document(
            child_text(root, "Code") or "UnknownError",
            child_text(root, "Message") or "",
        )
    return root


def child_text(node: ET.Element, name: str) -> Optional[str]:
    """Text of the first child called `name`; None when absent."""
    child = node.find(name)
    if child is None:
        return None
    return child.text or ""


def require_text(node: ET.Element, name: str, document: str) -> str:
    """Like child_text, but a missing or empty element is a ProtocolError."""
    text = child_text(node, name)
    if not text:
        raise ProtocolError.missing_field(document, name)
    return text


def children(node: ET.Element, name: str) -> list[ET.Element]:
    """All direct children called `name`, in document order."""
    return node.findall(name)


def completion_manifest(parts: Iterable[UploadedPart]) -> bytes:
    """Body of a CompleteMultipartUpload request."""
    root = ET.Element("CompleteMultipartUpload")
    for part in parts:
        item = ET.SubElement(root, "Part")
        ET.SubElement(item, "PartNumber").text = str(part.number)
        ET.SubElement(item, "ETag").text = quote_etag(part.etag)
    return ET.tostring(root, encoding="utf-8", xml_declaration=True)


__all__ = [
    "parse_xml",
    "child_text",
    "require_text",
    "children",
    "completion_manifest",
]
