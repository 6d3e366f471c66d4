from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone

from mems3.storage import (
    BucketInfo,
    CompletedPart,
    ObjectInfo,
    PartInfo,
    StorageBackend,
)
from mems3.storage.errors import (
    BucketNotEmpty,
    BucketNotFound,
    InvalidRequest,
    ObjectNotFound,
    UploadIdMismatch,
)
from mems3.storage.ids import new_id
from mems3.storage.lock import RWLock
from mems3.storage.multipart import MultipartUpload

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_name(kind: str, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise InvalidRequest(f"{kind} name must be a non-empty string")


@dataclass
class Object:
    name: str
    data: bytes | None = None
    etag: str | None = None
    last_modified: datetime | None = None
    tags: dict[str, str] = field(default_factory=dict)
    upload: MultipartUpload | None = None

    @property
    def size(self) -> int | None:
        return None if self.data is None else len(self.data)

    @property
    def readable(self) -> bool:
        return self.upload is None or not self.upload.is_open

    def snapshot(self, with_data: bool = True) -> ObjectInfo:
        return ObjectInfo(
            name=self.name,
            size=self.size,
            etag=self.etag,
            last_modified=self.last_modified,
            data=self.data if with_data else None,
            tags=dict(self.tags),
            is_multipart=self.upload is not None,
            upload_id=self.upload.upload_id if self.upload is not None else None,
        )


@dataclass
class Bucket:
    created: datetime
    policy: str = ""
    objects: dict[str, Object] = field(default_factory=dict)


@dataclass
class InMemoryBackend(StorageBackend):
    """Process-lifetime object store.

    Every public method is atomic: reads hold the registry lock in shared
    mode, mutations hold it exclusively for their whole duration. Results are
    copies, so nothing returned here changes after the call.
    """

    access_key: str = ""
    secret_key: str = ""
    buckets: dict[str, Bucket] = field(default_factory=dict)
    _lock: RWLock = field(default_factory=RWLock, repr=False, compare=False)

    def _bucket(self, bucket: str) -> Bucket:
        _check_name("Bucket", bucket)
        try:
            return self.buckets[bucket]
        except KeyError:
            raise BucketNotFound(bucket=bucket) from None

    def _object(self, bucket: str, key: str) -> Object:
        objects = self._bucket(bucket).objects
        _check_name("Object", key)
        try:
            return objects[key]
        except KeyError:
            raise ObjectNotFound(bucket=bucket, key=key) from None

    # buckets

    def bucket_exists(self, bucket: str) -> bool:
        _check_name("Bucket", bucket)
        with self._lock.read():
            return bucket in self.buckets

    def list_buckets(self) -> list[BucketInfo]:
        with self._lock.read():
            return [BucketInfo(name=name, created=b.created) for name, b in sorted(self.buckets.items())]

    def create_bucket(self, bucket: str) -> bool:
        _check_name("Bucket", bucket)
        with self._lock.write():
            if bucket in self.buckets:
                return False
            self.buckets[bucket] = Bucket(created=_now())
        logger.debug("created bucket %s", bucket)
        return True

    def delete_bucket(self, bucket: str, force: bool = False) -> None:
        _check_name("Bucket", bucket)
        with self._lock.write():
            existing = self.buckets.get(bucket)
            if existing is None:
                return
            if existing.objects and not force:
                raise BucketNotEmpty(bucket=bucket)
            del self.buckets[bucket]
        logger.debug("deleted bucket %s (force=%s)", bucket, force)

    def set_bucket_policy(self, bucket: str, policy: str) -> bool:
        _check_name("Bucket", bucket)
        with self._lock.write():
            existing = self.buckets.get(bucket)
            if existing is None:
                return False
            existing.policy = policy
        return True

    def get_bucket_policy(self, bucket: str) -> tuple[str, bool]:
        _check_name("Bucket", bucket)
        with self._lock.read():
            existing = self.buckets.get(bucket)
            if existing is None:
                return "", False
            return existing.policy, True

    # objects

    def get_object(self, bucket: str, key: str) -> ObjectInfo:
        with self._lock.read():
            return self._object(bucket, key).snapshot()

    def head_object(self, bucket: str, key: str) -> ObjectInfo:
        with self._lock.read():
            return self._object(bucket, key).snapshot(with_data=False)

    def put_object(self, bucket: str, key: str, data: bytes, etag: str | None = None) -> str:
        etag = etag or new_id()
        with self._lock.write():
            objects = self._bucket(bucket).objects
            _check_name("Object", key)
            objects[key] = Object(name=key, data=bytes(data), etag=etag, last_modified=_now())
        logger.debug("put %s/%s (%d bytes)", bucket, key, len(data))
        return etag

    def delete_object(self, bucket: str, key: str) -> None:
        with self._lock.write():
            self._object(bucket, key)
            del self.buckets[bucket].objects[key]
        logger.debug("deleted %s/%s", bucket, key)

    def list_objects(self, bucket: str, prefix: str = "") -> list[ObjectInfo]:
        with self._lock.read():
            objects = self._bucket(bucket).objects
            return [
                obj.snapshot(with_data=False)
                for name, obj in sorted(objects.items())
                if name.startswith(prefix) and obj.readable
            ]

    # tagging

    def get_object_tags(self, bucket: str, key: str) -> dict[str, str]:
        with self._lock.read():
            return dict(self._object(bucket, key).tags)

    def set_object_tags(self, bucket: str, key: str, tags: Mapping[str, str]) -> None:
        for k, v in tags.items():
            if not isinstance(k, str) or not isinstance(v, str) or not k:
                raise InvalidRequest("Tag keys must be non-empty strings and values must be strings")
        with self._lock.write():
            self._object(bucket, key).tags = dict(tags)

    def clear_object_tags(self, bucket: str, key: str) -> None:
        self.set_object_tags(bucket, key, {})

    # multipart uploads

    def _open_upload(self, bucket: str, key: str, upload_id: str) -> tuple[Object, MultipartUpload]:
        obj = self._object(bucket, key)
        upload = obj.upload
        if upload is None or upload.upload_id != upload_id or not upload.is_open:
            raise UploadIdMismatch(bucket=bucket, key=key)
        return obj, upload

    def initiate_multipart_upload(self, bucket: str, key: str) -> str:
        upload_id = new_id()
        with self._lock.write():
            objects = self._bucket(bucket).objects
            _check_name("Object", key)
            objects[key] = Object(name=key, upload=MultipartUpload(upload_id=upload_id))
        logger.debug("initiated upload %s for %s/%s", upload_id, bucket, key)
        return upload_id

    def upload_part(self, bucket: str, key: str, upload_id: str, part_number: int, data: bytes) -> str:
        with self._lock.write():
            upload = self._object(bucket, key).upload
            # parts are accepted for whichever upload is open on the object
            if upload is None or not upload.is_open:
                raise UploadIdMismatch(bucket=bucket, key=key)
            return upload.store_part(part_number, bytes(data))

    def complete_multipart_upload(
        self, bucket: str, key: str, upload_id: str, parts: Sequence[CompletedPart]
    ) -> str:
        with self._lock.write():
            obj = self._object(bucket, key)
            upload = obj.upload
            if upload is None or upload.upload_id != upload_id:
                raise UploadIdMismatch(bucket=bucket, key=key)
            if upload.etag is not None:
                return upload.etag
            data = upload.merge(parts)
            etag = new_id()
            obj.data = data
            obj.etag = etag
            obj.last_modified = _now()
            upload.mark_completed(etag)
        logger.debug("completed upload %s for %s/%s (%d parts)", upload_id, bucket, key, len(parts))
        return etag

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        with self._lock.write():
            self._open_upload(bucket, key, upload_id)
            del self.buckets[bucket].objects[key]
        logger.debug("aborted upload %s for %s/%s", upload_id, bucket, key)

    def list_parts(self, bucket: str, key: str, upload_id: str) -> list[PartInfo]:
        with self._lock.read():
            _, upload = self._open_upload(bucket, key, upload_id)
            return upload.list_parts()
