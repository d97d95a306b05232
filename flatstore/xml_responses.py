import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from typing import Iterable

from fastapi import Response

from flatstore.errors import StorageError
from flatstore.models import Bucket, ObjectMetadata

XML_MEDIA_TYPE = "application/xml"


def generate_xml_response(content: str, status_code: int = 200) -> Response:
    return Response(content=content, media_type=XML_MEDIA_TYPE, status_code=status_code)


def get_iso_timestamp(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _text(parent: ET.Element, tag: str, value) -> ET.Element:
    child = ET.SubElement(parent, tag)
    child.text = str(value)
    return child


def _bucket_element(bucket: Bucket, parent: ET.Element | None = None) -> ET.Element:
    element = ET.Element("Bucket") if parent is None else ET.SubElement(parent, "Bucket")
    _text(element, "Name", bucket.name)
    _text(element, "CreationTime", get_iso_timestamp(bucket.creation_time))
    _text(element, "LastModifiedTime", get_iso_timestamp(bucket.last_modified_time))
    _text(element, "Status", bucket.status.value)
    return element


def _serialize(element: ET.Element) -> str:
    return ET.tostring(element, encoding="unicode")


def render_bucket(bucket: Bucket) -> str:
    return _serialize(_bucket_element(bucket))


def render_bucket_list(buckets: Iterable[Bucket]) -> str:
    root = ET.Element("ListAllBucketsResponse")
    for bucket in buckets:
        _bucket_element(bucket, root)
    return _serialize(root)


def render_object(metadata: ObjectMetadata) -> str:
    root = ET.Element("Object")
    _text(root, "Key", metadata.key)
    _text(root, "Size", metadata.size)
    _text(root, "LastModified", get_iso_timestamp(metadata.last_modified))
    _text(root, "ContentType", metadata.content_type)
    return _serialize(root)


def render_error(code: str, message: str) -> str:
    root = ET.Element("Error")
    _text(root, "Code", code)
    _text(root, "Message", message)
    return _serialize(root)


def error_response(error: StorageError) -> Response:
    return generate_xml_response(render_error(error.code, error.message), error.status_code)


HTTP_ERROR_CODES = {
    404: "NotFound",
    405: "MethodNotAllowed",
}


def http_error_response(status_code: int, detail: str) -> Response:
    """Renders an error raised by the routing layer itself as an XML error document."""
    code = HTTP_ERROR_CODES.get(status_code, "InvalidRequest")
    return generate_xml_response(render_error(code, detail), status_code)
