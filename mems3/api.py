import base64
import logging
import uuid
from dataclasses import dataclass
from email.utils import format_datetime
from hashlib import md5
from typing import Annotated, Any, Callable

import anyio.to_thread
from fastapi import APIRouter, Depends, Header, Path, Request, Response

from mems3 import wire
from mems3.config import Config
from mems3.depends import Injected
from mems3.storage import ObjectInfo, StorageBackend
from mems3.storage.errors import (
    BucketAlreadyExists,
    BucketNotEmpty,
    BucketNotFound,
    EtagMismatch,
    InvalidRequest,
    ObjectNotFound,
    PartsNotFound,
    StorageError,
    UploadIdMismatch,
)

logger = logging.getLogger(__name__)

router = APIRouter()

HOST_ID = "mems3"

STATUS_CODES: dict[type[StorageError], int] = {
    BucketNotFound: 404,
    ObjectNotFound: 404,
    UploadIdMismatch: 404,
    BucketAlreadyExists: 409,
    BucketNotEmpty: 409,
    PartsNotFound: 400,
    EtagMismatch: 400,
    InvalidRequest: 400,
}


class BadDigest(InvalidRequest):
    code = "BadDigest"
    default_message = "The Content-MD5 you specified did not match what we received."


def status_for(exc: StorageError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def storage_error_handler(request: Request, exc: StorageError) -> Response:
    status_code = status_for(exc)
    request_id = uuid.uuid4().hex
    logger.info("%s %s -> %s %s", request.method, request.url.path, status_code, exc.code)
    if request.method == "HEAD":
        return Response(status_code=status_code, headers={"x-amz-request-id": request_id})
    content = wire.error_document(
        exc.code,
        exc.message,
        resource=request.url.path,
        request_id=request_id,
        host_id=HOST_ID,
        key=exc.key,
        bucket=exc.bucket,
    )
    return Response(
        content=content,
        media_type="application/xml",
        status_code=status_code,
        headers={"x-amz-request-id": request_id, "x-amz-error-code": exc.code},
    )


async def run(func: Callable[..., Any], *args: Any) -> Any:
    # engine calls may wait on the registry lock, keep them off the event loop
    return await anyio.to_thread.run_sync(func, *args)


@router.get("/health")
async def health() -> Response:
    return Response(status_code=200)


@dataclass
class ObjectPath:
    bucket: str
    key: str


def get_bucket(
    host: Annotated[str, Header()],
    key: Annotated[str, Path()],
    config: Injected[Config],
) -> ObjectPath:
    # remove the port
    host = host.split(":")[0]
    suffix = f".{config.host}"
    if host.endswith(suffix) and len(host) > len(suffix):
        # virtual-host style: <bucket>.<config.host>
        return ObjectPath(bucket=host[: -len(suffix)], key=key)
    bucket = key.split("/")[0]
    key = key[len(bucket) + 1 :]
    return ObjectPath(bucket=bucket, key=key)


@dataclass
class Md5Digest:
    etag: str
    content_md5: str


def get_md5_digests(data: bytes) -> Md5Digest:
    hash = md5(data)
    etag = hash.hexdigest()
    content_md5 = base64.b64encode(hash.digest()).decode()
    return Md5Digest(etag=etag, content_md5=content_md5)


def parse_bool(value: str) -> bool:
    if value in ("1", "t", "T", "true", "TRUE", "True"):
        return True
    if value in ("0", "f", "F", "false", "FALSE", "False"):
        return False
    raise InvalidRequest(f"Invalid boolean value {value!r}")


def parse_part_number(value: str) -> int:
    if not (value.isascii() and value.isdigit()):
        raise InvalidRequest(f"Invalid part number {value!r}")
    return int(value)


def decode_aws_chunked(body: bytes) -> bytes:
    """Strip aws-chunked framing: `<hex size>[;ext]\\r\\n<data>\\r\\n ... 0\\r\\n<trailers>`."""
    result = bytearray()
    offset = 0
    while offset < len(body):
        line_end = body.find(b"\r\n", offset)
        if line_end == -1:
            raise InvalidRequest("Truncated aws-chunked body")
        size_field = body[offset:line_end].split(b";")[0].strip()
        try:
            size = int(size_field, 16)
        except ValueError:
            raise InvalidRequest(f"Invalid chunk size {size_field!r}") from None
        if size == 0:
            break
        start = line_end + 2
        if start + size > len(body):
            raise InvalidRequest("Chunk size exceeds remaining data")
        result.extend(body[start : start + size])
        offset = start + size + 2
    return bytes(result)


async def get_request_body(request: Request) -> bytes:
    body = await request.body()
    content_encoding = request.headers.get("content-encoding", "").lower()
    content_sha256 = request.headers.get("x-amz-content-sha256", "")
    if "aws-chunked" in content_encoding or content_sha256.startswith("STREAMING-"):
        body = decode_aws_chunked(body)
    content_md5 = request.headers.get("Content-MD5")
    if content_md5 and get_md5_digests(body).content_md5 != content_md5:
        raise BadDigest()
    return body


def object_headers(info: ObjectInfo) -> dict[str, str]:
    headers = {"ETag": wire.quote_etag(info.etag or "")}
    if info.last_modified is not None:
        headers["Last-Modified"] = format_datetime(info.last_modified, usegmt=True)
    return headers


def readable(info: ObjectInfo, object: ObjectPath) -> ObjectInfo:
    # an open multipart upload has no content yet
    if info.etag is None:
        raise ObjectNotFound(bucket=object.bucket, key=object.key)
    return info


async def require_bucket(fs: StorageBackend, bucket: str) -> None:
    if not await run(fs.bucket_exists, bucket):
        raise BucketNotFound(bucket=bucket)


def xml_response(content: bytes, headers: dict[str, str] | None = None) -> Response:
    return Response(content=content, media_type="application/xml", headers=headers)


@router.get("/{key:path}")
async def get(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    config: Injected[Config],
) -> Response:
    query = request.query_params
    if not object.bucket:
        return xml_response(wire.list_buckets_result(await run(fs.list_buckets)))

    if not object.key:
        if "location" in query:
            await require_bucket(fs, object.bucket)
            return xml_response(wire.location_constraint(config.region))
        if "policy" in query:
            policy, found = await run(fs.get_bucket_policy, object.bucket)
            if not found:
                raise BucketNotFound(bucket=object.bucket)
            return Response(content=policy, media_type="application/json")
        prefix = query.get("prefix", "")
        objects = await run(fs.list_objects, object.bucket, prefix)
        return xml_response(wire.list_bucket_result(object.bucket, prefix, objects))

    if "tagging" in query:
        tags = await run(fs.get_object_tags, object.bucket, object.key)
        return xml_response(wire.tagging(tags))
    if "uploadId" in query:
        upload_id = query["uploadId"]
        parts = await run(fs.list_parts, object.bucket, object.key, upload_id)
        return xml_response(wire.list_parts_result(object.bucket, object.key, upload_id, parts))

    info = readable(await run(fs.get_object, object.bucket, object.key), object)
    return Response(
        content=info.data,
        media_type="application/octet-stream",
        headers=object_headers(info),
    )


@router.head("/{key:path}")
async def head(
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
) -> Response:
    if not object.key:
        await require_bucket(fs, object.bucket)
        return Response(status_code=200)
    info = readable(await run(fs.head_object, object.bucket, object.key), object)
    headers = object_headers(info)
    headers["Content-Length"] = str(info.size)
    return Response(status_code=200, headers=headers)


@router.put("/{key:path}")
async def put(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
) -> Response:
    query = request.query_params
    if not object.bucket:
        raise InvalidRequest("A bucket name is required")

    if not object.key:
        if "policy" in query:
            await require_bucket(fs, object.bucket)
            try:
                policy = (await request.body()).decode()
            except UnicodeDecodeError:
                raise InvalidRequest("Bucket policy must be UTF-8 text") from None
            if not await run(fs.set_bucket_policy, object.bucket, policy):
                raise BucketNotFound(bucket=object.bucket)
            return Response(status_code=204)
        if not await run(fs.create_bucket, object.bucket):
            raise BucketAlreadyExists(bucket=object.bucket)
        return Response(status_code=200, headers={"Location": f"/{object.bucket}"})

    if "tagging" in query:
        tags = wire.parse_tagging(await request.body())
        await run(fs.set_object_tags, object.bucket, object.key, tags)
        return Response(status_code=200)

    body = await get_request_body(request)
    if "partNumber" in query:
        if "uploadId" not in query:
            raise InvalidRequest("uploadId is required with partNumber")
        part_number = parse_part_number(query["partNumber"])
        etag = await run(fs.upload_part, object.bucket, object.key, query["uploadId"], part_number, body)
    else:
        etag = await run(fs.put_object, object.bucket, object.key, body)
    return Response(status_code=200, headers={"ETag": wire.quote_etag(etag)})


@router.post("/{key:path}")
async def post(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
) -> Response:
    query = request.query_params
    if not object.bucket or not object.key:
        raise InvalidRequest("A bucket and an object key are required")

    if "uploads" in query:
        upload_id = await run(fs.initiate_multipart_upload, object.bucket, object.key)
        return xml_response(wire.initiate_multipart_upload_result(object.bucket, object.key, upload_id))

    if "uploadId" not in query:
        raise InvalidRequest("Expected the uploads or uploadId parameter")
    parts = wire.parse_complete_multipart_upload(await request.body())
    etag = await run(fs.complete_multipart_upload, object.bucket, object.key, query["uploadId"], parts)
    location = f"{request.base_url}{object.bucket}/{object.key}"
    return xml_response(
        wire.complete_multipart_upload_result(location, object.bucket, object.key, etag),
        headers={"ETag": wire.quote_etag(etag)},
    )


@router.delete("/{key:path}")
async def delete(
    request: Request,
    object: Annotated[ObjectPath, Depends(get_bucket)],
    fs: Injected[StorageBackend],
    x_minio_force_delete: Annotated[str | None, Header()] = None,
) -> Response:
    query = request.query_params
    if not object.bucket:
        raise InvalidRequest("A bucket name is required")

    if not object.key:
        force = parse_bool(x_minio_force_delete) if x_minio_force_delete else False
        await run(fs.delete_bucket, object.bucket, force)
        return Response(status_code=204)

    if "tagging" in query:
        await run(fs.clear_object_tags, object.bucket, object.key)
    elif "uploadId" in query:
        await run(fs.abort_multipart_upload, object.bucket, object.key, query["uploadId"])
    else:
        await run(fs.delete_object, object.bucket, object.key)
    return Response(status_code=204)
