from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class BucketInfo:
    name: str
    created: datetime


@dataclass(frozen=True)
class ObjectInfo:
    """A point-in-time copy of an object record.

    `data`, `size` and `etag` are None while the object's multipart upload
    is still open. `data` is also None for listings and HEAD lookups, which
    do not copy the payload.
    """

    name: str
    size: int | None
    etag: str | None
    last_modified: datetime | None
    data: bytes | None = None
    tags: dict[str, str] = field(default_factory=dict)
    is_multipart: bool = False
    upload_id: str | None = None


@dataclass(frozen=True)
class PartInfo:
    part_number: int
    etag: str
    size: int


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str


class StorageBackend(Protocol):
    def bucket_exists(self, bucket: str) -> bool: ...

    def list_buckets(self) -> list[BucketInfo]: ...

    def create_bucket(self, bucket: str) -> bool: ...

    def delete_bucket(self, bucket: str, force: bool = False) -> None: ...

    def set_bucket_policy(self, bucket: str, policy: str) -> bool: ...

    def get_bucket_policy(self, bucket: str) -> tuple[str, bool]: ...

    def get_object(self, bucket: str, key: str) -> ObjectInfo: ...

    def head_object(self, bucket: str, key: str) -> ObjectInfo: ...

    def put_object(self, bucket: str, key: str, data: bytes, etag: str | None = None) -> str: ...

    def delete_object(self, bucket: str, key: str) -> None: ...

    def list_objects(self, bucket: str, prefix: str = "") -> list[ObjectInfo]: ...

    def get_object_tags(self, bucket: str, key: str) -> dict[str, str]: ...

    def set_object_tags(self, bucket: str, key: str, tags: Mapping[str, str]) -> None: ...

    def clear_object_tags(self, bucket: str, key: str) -> None: ...

    def initiate_multipart_upload(self, bucket: str, key: str) -> str: ...

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes) -> str: ...

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> str: ...

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None: ...

    def list_parts(self, bucket: str, key: str, upload_id: str) -> list[PartInfo]: ...
