"""S3 XML documents, built and parsed with lxml."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from lxml import etree as ET

from mems3.storage import BucketInfo, CompletedPart, ObjectInfo, PartInfo
from mems3.storage.errors import InvalidRequest

S3_NAMESPACE = "http://s3.amazonaws.com/doc/2006-03-01/"

OWNER_ID = "02d6176db174dc93cb1b899f7c6078f08654445fe8cf1b6ce98d8855f66bdbf4"
OWNER_NAME = "mems3"

_parser = ET.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=True)

# lxml has no usable type stubs
Element = Any


class MalformedXML(InvalidRequest):
    code = "MalformedXML"
    default_message = "The XML you provided was not well-formed or did not validate against our published schema."


def format_timestamp(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def quote_etag(etag: str) -> str:
    return f'"{etag}"'


def unquote_etag(etag: str) -> str:
    return etag.strip().strip('"')


def _root(tag: str) -> Element:
    return ET.Element(f"{{{S3_NAMESPACE}}}{tag}", nsmap={None: S3_NAMESPACE})


def _add(parent: Element, tag: str, text: str | None = None) -> Element:
    # children share the parent's namespace
    namespace = ET.QName(parent).namespace
    elem = ET.SubElement(parent, f"{{{namespace}}}{tag}" if namespace else tag)
    if text is not None:
        elem.text = text
    return elem


def to_xml_bytes(root: Element) -> bytes:
    result: bytes = ET.tostring(root, encoding="UTF-8", xml_declaration=True)
    return result


def _parse(body: bytes) -> Element:
    if not body:
        raise MalformedXML()
    try:
        return ET.fromstring(body, parser=_parser)
    except ET.XMLSyntaxError as e:
        raise MalformedXML(f"Malformed XML: {e}") from e


def _local(elem: Element) -> str:
    return ET.QName(elem).localname


def _find(parent: Element, name: str) -> list[Element]:
    # clients disagree on whether to namespace request bodies
    return [child for child in parent if isinstance(child.tag, str) and _local(child) == name]


def _text(parent: Element, name: str) -> str:
    found = _find(parent, name)
    if not found:
        raise MalformedXML(f"Missing <{name}> in <{_local(parent)}>")
    return found[0].text or ""


# responses


def list_buckets_result(buckets: Iterable[BucketInfo]) -> bytes:
    root = _root("ListAllMyBucketsResult")
    owner = _add(root, "Owner")
    _add(owner, "ID", OWNER_ID)
    _add(owner, "DisplayName", OWNER_NAME)
    container = _add(root, "Buckets")
    for bucket in buckets:
        elem = _add(container, "Bucket")
        _add(elem, "Name", bucket.name)
        _add(elem, "CreationDate", format_timestamp(bucket.created))
    return to_xml_bytes(root)


def list_bucket_result(bucket: str, prefix: str, objects: Iterable[ObjectInfo]) -> bytes:
    root = _root("ListBucketResult")
    _add(root, "Name", bucket)
    _add(root, "Prefix", prefix)
    _add(root, "Marker", "")
    _add(root, "MaxKeys", "1000")
    _add(root, "IsTruncated", "false")
    for obj in objects:
        contents = _add(root, "Contents")
        _add(contents, "Key", obj.name)
        if obj.last_modified is not None:
            _add(contents, "LastModified", format_timestamp(obj.last_modified))
        _add(contents, "ETag", quote_etag(obj.etag or ""))
        _add(contents, "Size", str(obj.size or 0))
        _add(contents, "StorageClass", "STANDARD")
    return to_xml_bytes(root)


def location_constraint(region: str) -> bytes:
    root = _root("LocationConstraint")
    # us-east-1 is an empty constraint
    root.text = "" if region == "us-east-1" else region
    return to_xml_bytes(root)


def initiate_multipart_upload_result(bucket: str, key: str, upload_id: str) -> bytes:
    root = _root("InitiateMultipartUploadResult")
    _add(root, "Bucket", bucket)
    _add(root, "Key", key)
    _add(root, "UploadId", upload_id)
    return to_xml_bytes(root)


def complete_multipart_upload_result(location: str, bucket: str, key: str, etag: str) -> bytes:
    root = _root("CompleteMultipartUploadResult")
    _add(root, "Location", location)
    _add(root, "Bucket", bucket)
    _add(root, "Key", key)
    _add(root, "ETag", quote_etag(etag))
    return to_xml_bytes(root)


def list_parts_result(bucket: str, key: str, upload_id: str, parts: Iterable[PartInfo]) -> bytes:
    root = _root("ListPartsResult")
    _add(root, "Bucket", bucket)
    _add(root, "Key", key)
    _add(root, "UploadId", upload_id)
    _add(root, "MaxParts", "10000")
    _add(root, "IsTruncated", "false")
    for part in parts:
        elem = _add(root, "Part")
        _add(elem, "PartNumber", str(part.part_number))
        _add(elem, "ETag", quote_etag(part.etag))
        _add(elem, "Size", str(part.size))
    return to_xml_bytes(root)


def tagging(tags: Mapping[str, str]) -> bytes:
    root = _root("Tagging")
    tag_set = _add(root, "TagSet")
    for key, value in sorted(tags.items()):
        tag = _add(tag_set, "Tag")
        _add(tag, "Key", key)
        _add(tag, "Value", value)
    return to_xml_bytes(root)


def error_document(
    code: str,
    message: str,
    *,
    resource: str,
    request_id: str,
    host_id: str,
    key: str = "",
    bucket: str = "",
    region: str = "",
) -> bytes:
    # no namespace: SDK error parsers expect a bare <Error>
    root = ET.Element("Error")
    _add(root, "Code", code)
    _add(root, "Message", message)
    if key:
        _add(root, "Key", key)
    if bucket:
        _add(root, "BucketName", bucket)
    _add(root, "Resource", resource)
    if region:
        _add(root, "Region", region)
    _add(root, "RequestId", request_id)
    _add(root, "HostId", host_id)
    return to_xml_bytes(root)


# requests


def parse_tagging(body: bytes) -> dict[str, str]:
    root = _parse(body)
    if _local(root) != "Tagging":
        raise MalformedXML("Expected a <Tagging> document")
    tags: dict[str, str] = {}
    for tag_set in _find(root, "TagSet"):
        for tag in _find(tag_set, "Tag"):
            key = _text(tag, "Key")
            if key in tags:
                raise InvalidRequest(f"Duplicate tag key {key!r}")
            tags[key] = _text(tag, "Value")
    return tags


def parse_complete_multipart_upload(body: bytes) -> list[CompletedPart]:
    root = _parse(body)
    if _local(root) != "CompleteMultipartUpload":
        raise MalformedXML("Expected a <CompleteMultipartUpload> document")
    parts = []
    for part in _find(root, "Part"):
        number = _text(part, "PartNumber").strip()
        try:
            part_number = int(number)
        except ValueError:
            raise MalformedXML(f"Invalid part number {number!r}") from None
        parts.append(CompletedPart(part_number=part_number, etag=unquote_etag(_text(part, "ETag"))))
    return parts
