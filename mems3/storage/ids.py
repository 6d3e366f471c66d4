from uuid import uuid4


def new_id() -> str:
    """Return an opaque token usable as an etag or a multipart upload id."""
    return uuid4().hex
