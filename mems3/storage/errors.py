"""Error kinds raised by the storage engine."""

from __future__ import annotations


class StorageError(Exception):
    """Base class for every expected failure of a storage operation."""

    code = "InternalError"
    default_message = "We encountered an internal error. Please try again."

    def __init__(self, message: str = "", *, bucket: str = "", key: str = "") -> None:
        self.message = message or self.default_message
        self.bucket = bucket
        self.key = key
        super().__init__(self.message)


class BucketNotFound(StorageError):
    code = "NoSuchBucket"
    default_message = "The specified bucket does not exist"


class BucketAlreadyExists(StorageError):
    code = "BucketAlreadyOwnedByYou"
    default_message = "Your previous request to create the named bucket succeeded and you already own it."


class BucketNotEmpty(StorageError):
    code = "BucketNotEmpty"
    default_message = "The bucket you tried to delete is not empty"


class ObjectNotFound(StorageError):
    code = "NoSuchKey"
    default_message = "The specified key does not exist."


class PartsNotFound(StorageError):
    code = "InvalidPart"
    default_message = "One or more of the specified parts could not be found."


class EtagMismatch(StorageError):
    code = "InvalidPart"
    default_message = "The entity tag of a specified part does not match the uploaded part."


class UploadIdMismatch(StorageError):
    code = "NoSuchUpload"
    default_message = "The specified multipart upload does not exist."


class InvalidRequest(StorageError):
    code = "InvalidRequest"
    default_message = "Invalid Request"
