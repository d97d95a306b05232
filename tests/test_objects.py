import os
import stat
import threading
from io import BytesIO

import pytest

from flatstore.errors import CorruptCatalog, InvalidKey, MissingField, NotFound, StorageFault


@pytest.fixture
def bucket(buckets):
    buckets.create_bucket("b")
    return "b"


def _bucket_files(data_dir, bucket):
    return sorted(os.listdir(os.path.join(data_dir, bucket)))


class FailingStream:
    """Yields some bytes, then fails like a dropped client connection."""

    def __init__(self):
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls == 1:
            return b"partial"
        raise OSError("connection reset")


class TestPutObject:
    def test_put_then_get(self, objects, bucket):
        metadata = objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        assert metadata.key == "a.txt"
        assert metadata.size == 5
        assert metadata.content_type == "text/plain"
        assert objects.get_object(bucket, "a.txt") == (b"hello", "text/plain")

    def test_overwrite_keeps_one_record(self, objects, bucket):
        objects.put_object(bucket, "a.txt", BytesIO(b"hello"))
        objects.put_object(bucket, "a.txt", BytesIO(b"world!"))

        data, content_type = objects.get_object(bucket, "a.txt")
        records = objects.list_objects(bucket)

        assert data == b"world!"
        assert content_type == "text/plain"
        assert [(r.key, r.size) for r in records] == [("a.txt", 6)]

    def test_declared_content_type_wins(self, objects, bucket):
        metadata = objects.put_object(bucket, "a.txt", BytesIO(b"{}"), "application/json")

        assert metadata.content_type == "application/json"
        assert objects.get_object(bucket, "a.txt")[1] == "application/json"

    def test_unknown_extension_defaults_to_binary(self, objects, bucket):
        metadata = objects.put_object(bucket, "blob.zzzz", BytesIO(b"\x00\x01"))

        assert metadata.content_type == "application/octet-stream"

    def test_extension_table_beyond_get_fallback(self, objects, bucket):
        metadata = objects.put_object(bucket, "page.html", BytesIO(b"<p>"))

        assert metadata.content_type == "text/html"

    def test_size_matches_file(self, objects, bucket, data_dir):
        payload = os.urandom(70000)
        metadata = objects.put_object(bucket, "big.bin", BytesIO(payload))

        assert metadata.size == len(payload)
        assert os.path.getsize(os.path.join(data_dir, bucket, "big.bin")) == len(payload)

    def test_no_temporaries_left(self, objects, bucket, data_dir):
        objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        assert _bucket_files(data_dir, bucket) == ["a.txt", "objects.csv"]

    def test_failed_write_keeps_previous_version(self, objects, bucket, data_dir):
        objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        with pytest.raises(StorageFault, match="unable to write object data"):
            objects.put_object(bucket, "a.txt", FailingStream())

        assert objects.get_object(bucket, "a.txt")[0] == b"hello"
        assert [r.size for r in objects.list_objects(bucket)] == [5]
        assert _bucket_files(data_dir, bucket) == ["a.txt", "objects.csv"]

    def test_refreshes_bucket_last_modified(self, objects, buckets, bucket):
        created = buckets.get_bucket(bucket)

        metadata = objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        touched = buckets.get_bucket(bucket)
        assert touched.last_modified_time == metadata.last_modified
        assert touched.last_modified_time >= created.last_modified_time
        assert touched.creation_time == created.creation_time

    @pytest.mark.parametrize("bucket_name,key", [("", "a.txt"), ("b", "")])
    def test_missing_fields(self, objects, bucket, bucket_name, key):
        with pytest.raises(MissingField):
            objects.put_object(bucket_name, key, BytesIO(b"x"))

    @pytest.mark.parametrize("key", ["a/b", "..", "sp ace"])
    def test_invalid_key(self, objects, bucket, data_dir, key):
        with pytest.raises(InvalidKey):
            objects.put_object(bucket, key, BytesIO(b"x"))
        assert _bucket_files(data_dir, bucket) == []

    def test_catalog_name_is_reserved(self, objects, bucket):
        with pytest.raises(InvalidKey, match="reserved"):
            objects.put_object(bucket, "objects.csv", BytesIO(b"x"))

    def test_missing_bucket(self, objects, data_dir):
        with pytest.raises(NotFound, match="bucket"):
            objects.put_object("nope", "a.txt", BytesIO(b"x"))
        assert os.listdir(data_dir) == []

    def test_corrupt_catalog_writes_no_file(self, objects, bucket, data_dir):
        with open(os.path.join(data_dir, bucket, "objects.csv"), "w") as f:
            f.write("broken\n")

        with pytest.raises(CorruptCatalog):
            objects.put_object(bucket, "a.txt", BytesIO(b"x"))
        assert _bucket_files(data_dir, bucket) == ["objects.csv"]

    def test_concurrent_puts_are_all_recorded(self, objects, bucket):
        keys = [f"key-{n}.txt" for n in range(30)]
        errors = []

        def put(key):
            try:
                objects.put_object(bucket, key, BytesIO(key.encode()))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=put, args=(k,)) for k in keys]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(r.key for r in objects.list_objects(bucket)) == sorted(keys)


class TestGetObject:
    def test_missing_object(self, objects, bucket):
        with pytest.raises(NotFound, match="object"):
            objects.get_object(bucket, "nothing.txt")

    def test_missing_bucket(self, objects):
        with pytest.raises(NotFound, match="bucket"):
            objects.get_object("nope", "a.txt")

    def test_invalid_key_is_not_found(self, objects, bucket):
        with pytest.raises(NotFound):
            objects.get_object(bucket, "..")

    def test_catalog_file_is_not_an_object(self, objects, bucket):
        objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        with pytest.raises(NotFound):
            objects.get_object(bucket, "objects.csv")

    def test_missing_fields(self, objects):
        with pytest.raises(MissingField):
            objects.get_object("b", "")

    @pytest.mark.parametrize(
        "key,content_type",
        [
            ("photo.png", "image/png"),
            ("photo.jpg", "image/jpeg"),
            ("photo.jpeg", "image/jpeg"),
            ("notes.txt", "text/plain"),
            ("archive.tar", "application/octet-stream"),
        ],
    )
    def test_unrecorded_file_uses_extension_table(self, objects, bucket, data_dir, key, content_type):
        with open(os.path.join(data_dir, bucket, key), "wb") as f:
            f.write(b"raw")

        assert objects.get_object(bucket, key) == (b"raw", content_type)


class TestDeleteObject:
    def test_delete_removes_file_and_record(self, objects, bucket, data_dir):
        objects.put_object(bucket, "a.txt", BytesIO(b"hello"))
        objects.put_object(bucket, "b.txt", BytesIO(b"bye"))

        objects.delete_object(bucket, "a.txt")

        assert not os.path.exists(os.path.join(data_dir, bucket, "a.txt"))
        assert [r.key for r in objects.list_objects(bucket)] == ["b.txt"]
        with pytest.raises(NotFound):
            objects.get_object(bucket, "a.txt")

    def test_missing_object(self, objects, bucket):
        with pytest.raises(NotFound):
            objects.delete_object(bucket, "a.txt")

    def test_missing_bucket(self, objects):
        with pytest.raises(NotFound):
            objects.delete_object("nope", "a.txt")

    def test_missing_fields(self, objects):
        with pytest.raises(MissingField):
            objects.delete_object("", "a.txt")

    def test_refreshes_bucket_last_modified(self, objects, buckets, bucket):
        metadata = objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

        objects.delete_object(bucket, "a.txt")

        assert buckets.get_bucket(bucket).last_modified_time >= metadata.last_modified


class TestListObjects:
    def test_empty_bucket(self, objects, bucket):
        assert objects.list_objects(bucket) == []

    def test_missing_bucket(self, objects):
        with pytest.raises(NotFound):
            objects.list_objects("nope")


class TestConcurrentRewrites:
    def test_puts_racing_deletes(self, objects, bucket, data_dir):
        doomed = [f"old-{n}.txt" for n in range(15)]
        fresh = [f"new-{n}.txt" for n in range(15)]
        for key in doomed:
            objects.put_object(bucket, key, BytesIO(b"old"))
        errors = []
        start = threading.Barrier(len(doomed) + len(fresh))

        def run(func, *args):
            start.wait()
            try:
                func(*args)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=run, args=(objects.delete_object, bucket, k)) for k in doomed]
        threads += [
            threading.Thread(target=run, args=(objects.put_object, bucket, k, BytesIO(b"new")))
            for k in fresh
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert sorted(r.key for r in objects.list_objects(bucket)) == sorted(fresh)
        assert _bucket_files(data_dir, bucket) == sorted(fresh + ["objects.csv"])


@pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
def test_stored_object_is_world_readable(objects, bucket, data_dir):
    objects.put_object(bucket, "a.txt", BytesIO(b"hello"))

    mode = os.stat(os.path.join(data_dir, bucket, "a.txt")).st_mode
    assert stat.S_IMODE(mode) == 0o644
