from concurrent.futures import ThreadPoolExecutor

import pytest

from mems3.storage.errors import (
    BucketNotEmpty,
    BucketNotFound,
    InvalidRequest,
    ObjectNotFound,
)
from mems3.storage.memory import InMemoryBackend


@pytest.fixture
def fs() -> InMemoryBackend:
    """A store with one empty bucket named "b"."""
    fs = InMemoryBackend(access_key="minioadmin", secret_key="minioadmin")
    assert fs.create_bucket("b")
    return fs


def test_create_bucket_is_unique(fs: InMemoryBackend) -> None:
    created = fs.list_buckets()[0].created
    assert fs.bucket_exists("b")
    assert not fs.create_bucket("b")
    assert fs.list_buckets()[0].created == created


def test_bucket_names_are_case_sensitive(fs: InMemoryBackend) -> None:
    assert not fs.bucket_exists("B")
    assert fs.create_bucket("B")
    assert [b.name for b in fs.list_buckets()] == ["B", "b"]


def test_list_buckets_is_sorted() -> None:
    fs = InMemoryBackend()
    for name in ["zeta", "alpha", "mid"]:
        fs.create_bucket(name)
    assert [b.name for b in fs.list_buckets()] == ["alpha", "mid", "zeta"]


def test_empty_bucket_name_is_rejected() -> None:
    fs = InMemoryBackend()
    with pytest.raises(InvalidRequest):
        fs.create_bucket("")
    with pytest.raises(InvalidRequest):
        fs.put_object("", "k", b"x")


def test_delete_non_empty_bucket(fs: InMemoryBackend) -> None:
    fs.put_object("b", "k", b"data")
    with pytest.raises(BucketNotEmpty):
        fs.delete_bucket("b")
    assert fs.bucket_exists("b")
    assert fs.get_object("b", "k").data == b"data"

    fs.delete_bucket("b", force=True)
    assert not fs.bucket_exists("b")


def test_delete_bucket_counts_open_uploads(fs: InMemoryBackend) -> None:
    fs.initiate_multipart_upload("b", "o")
    with pytest.raises(BucketNotEmpty):
        fs.delete_bucket("b")


def test_delete_missing_bucket_is_a_noop(fs: InMemoryBackend) -> None:
    fs.delete_bucket("missing")
    fs.delete_bucket("b")
    assert not fs.bucket_exists("b")


def test_bucket_policy(fs: InMemoryBackend) -> None:
    assert fs.get_bucket_policy("b") == ("", True)
    assert fs.set_bucket_policy("b", "first")
    assert fs.set_bucket_policy("b", "second")
    assert fs.get_bucket_policy("b") == ("second", True)

    assert not fs.set_bucket_policy("missing", "x")
    assert fs.get_bucket_policy("missing") == ("", False)


def test_put_overwrites(fs: InMemoryBackend) -> None:
    first = fs.put_object("b", "k", b"one")
    fs.set_object_tags("b", "k", {"a": "1"})
    second = fs.put_object("b", "k", b"three")

    info = fs.get_object("b", "k")
    assert info.data == b"three"
    assert info.size == 5
    assert info.etag == second
    assert first != second
    assert info.tags == {}


def test_put_replaces_open_upload(fs: InMemoryBackend) -> None:
    fs.initiate_multipart_upload("b", "k")
    fs.put_object("b", "k", b"plain")
    info = fs.get_object("b", "k")
    assert info.data == b"plain"
    assert not info.is_multipart
    assert info.upload_id is None


def test_put_with_explicit_etag(fs: InMemoryBackend) -> None:
    assert fs.put_object("b", "k", b"x", etag="abc") == "abc"
    assert fs.head_object("b", "k").etag == "abc"


def test_put_into_missing_bucket() -> None:
    with pytest.raises(BucketNotFound):
        InMemoryBackend().put_object("missing", "k", b"x")


def test_get_missing(fs: InMemoryBackend) -> None:
    with pytest.raises(ObjectNotFound) as exc_info:
        fs.get_object("b", "nope")
    assert exc_info.value.bucket == "b"
    assert exc_info.value.key == "nope"
    with pytest.raises(BucketNotFound):
        fs.get_object("missing", "nope")


def test_get_returns_a_snapshot(fs: InMemoryBackend) -> None:
    fs.put_object("b", "k", b"v1")
    fs.set_object_tags("b", "k", {"a": "1"})
    before = fs.get_object("b", "k")
    before.tags["a"] = "changed"

    fs.put_object("b", "k", b"v2")
    assert before.data == b"v1"
    assert fs.get_object_tags("b", "k") == {}


def test_head_does_not_copy_data(fs: InMemoryBackend) -> None:
    fs.put_object("b", "k", b"hello")
    info = fs.head_object("b", "k")
    assert info.data is None
    assert info.size == 5


def test_delete_object(fs: InMemoryBackend) -> None:
    fs.put_object("b", "k", b"x")
    fs.delete_object("b", "k")
    with pytest.raises(ObjectNotFound):
        fs.get_object("b", "k")
    with pytest.raises(ObjectNotFound):
        fs.delete_object("b", "k")
    with pytest.raises(BucketNotFound):
        fs.delete_object("missing", "k")


def test_list_objects(fs: InMemoryBackend) -> None:
    fs.put_object("b", "logs/2", b"22")
    fs.put_object("b", "logs/1", b"1")
    fs.put_object("b", "other", b"x")
    fs.initiate_multipart_upload("b", "logs/pending")

    listed = fs.list_objects("b", "logs/")
    assert [o.name for o in listed] == ["logs/1", "logs/2"]
    assert [o.size for o in listed] == [1, 2]
    assert all(o.data is None for o in listed)
    assert len(fs.list_objects("b")) == 3


def test_tags(fs: InMemoryBackend) -> None:
    etag = fs.put_object("b", "o", b"x")
    before = fs.head_object("b", "o")

    fs.set_object_tags("b", "o", {"k": "v"})
    fs.set_object_tags("b", "o", {"k": "v"})
    assert fs.get_object_tags("b", "o") == {"k": "v"}

    fs.set_object_tags("b", "o", {"other": ""})
    assert fs.get_object_tags("b", "o") == {"other": ""}

    fs.clear_object_tags("b", "o")
    assert fs.get_object_tags("b", "o") == {}

    after = fs.head_object("b", "o")
    assert after.etag == etag
    assert after.size == before.size
    assert after.last_modified == before.last_modified


def test_tags_on_missing_object(fs: InMemoryBackend) -> None:
    with pytest.raises(ObjectNotFound):
        fs.set_object_tags("b", "o", {"k": "v"})
    with pytest.raises(ObjectNotFound):
        fs.clear_object_tags("b", "o")
    with pytest.raises(BucketNotFound):
        fs.set_object_tags("missing", "o", {"k": "v"})


def test_invalid_tags(fs: InMemoryBackend) -> None:
    fs.put_object("b", "o", b"x")
    with pytest.raises(InvalidRequest):
        fs.set_object_tags("b", "o", {"": "v"})


def test_concurrent_puts_to_distinct_keys(fs: InMemoryBackend) -> None:
    def put(i: int) -> str:
        return fs.put_object("b", f"key-{i}", str(i).encode())

    with ThreadPoolExecutor(16) as executor:
        etags = list(executor.map(put, range(200)))

    assert len(set(etags)) == 200
    for i in range(200):
        assert fs.get_object("b", f"key-{i}").data == str(i).encode()


def test_concurrent_readers_and_writers(fs: InMemoryBackend) -> None:
    fs.put_object("b", "shared", b"0" * 8)

    def write(i: int) -> None:
        fs.put_object("b", "shared", str(i % 10).encode() * 8)

    def read(_: int) -> bytes:
        info = fs.get_object("b", "shared")
        assert info.size == len(info.data or b"")
        return info.data or b""

    with ThreadPoolExecutor(16) as executor:
        writes = [executor.submit(write, i) for i in range(100)]
        reads = [executor.submit(read, i) for i in range(100)]
        for future in writes:
            future.result()
        for future in reads:
            data = future.result()
            assert len(set(data)) == 1


def test_empty_bucket_name_is_rejected_by_lookups(fs: InMemoryBackend) -> None:
    with pytest.raises(InvalidRequest):
        fs.bucket_exists("")
    with pytest.raises(InvalidRequest):
        fs.set_bucket_policy("", "x")
    with pytest.raises(InvalidRequest):
        fs.get_bucket_policy("")
