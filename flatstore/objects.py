"""
Object put/get/delete inside a bucket.

Object bytes live in one file per key in the bucket directory; the bucket's
object catalog records size, content type and modification time. Both are
changed while holding the object catalog lock, file first.
"""

import logging
import os
from typing import BinaryIO

from flatstore.buckets import BucketManager
from flatstore.catalog import load_records
from flatstore.errors import InvalidKey, MissingField, NotFound
from flatstore.models import ObjectMetadata
from flatstore.storage import (
    OBJECT_CATALOG,
    content_type_for_extension,
    delete_physical_file,
    object_path,
    read_file,
    resolve_content_type,
    save_file,
)
from flatstore.validation import is_valid_object_key, validate_object_key

logger = logging.getLogger(__name__)


def _require_fields(bucket: str, key: str):
    if not bucket or not key:
        raise MissingField("missing bucket name or object key")


class ObjectManager:
    def __init__(self, buckets: BucketManager):
        self.buckets = buckets
        self.data_dir = buckets.data_dir

    def _require_bucket(self, bucket: str):
        if not self.buckets.bucket_exists(bucket):
            raise NotFound("bucket does not exist")

    def _existing_object_path(self, bucket: str, key: str) -> str:
        if not is_valid_object_key(key) or key == OBJECT_CATALOG:
            raise NotFound("object does not exist")
        path = object_path(self.data_dir, bucket, key)
        if not os.path.isfile(path):
            raise NotFound("object does not exist")
        return path

    def put_object(
        self,
        bucket: str,
        key: str,
        file_obj: BinaryIO,
        content_type: str | None = None,
    ) -> ObjectMetadata:
        _require_fields(bucket, key)
        validate_object_key(key)
        if key == OBJECT_CATALOG:
            raise InvalidKey(f"object key '{key}' is reserved")
        self._require_bucket(bucket)

        catalog = self.buckets.object_catalog(bucket)
        with catalog.lock:
            # The bucket may have been deleted while we waited for the lock
            self._require_bucket(bucket)
            records = [r for r in load_records(catalog, ObjectMetadata) if r.key != key]

            size = save_file(file_obj, object_path(self.data_dir, bucket, key))
            metadata = ObjectMetadata(
                key=key,
                size=size,
                content_type=resolve_content_type(key, content_type),
            )
            records.append(metadata)
            catalog.overwrite_all(r.to_row() for r in records)

        self.buckets.touch_bucket(bucket, metadata.last_modified)
        logger.info(f"Stored object {bucket}/{key} ({size} bytes, {metadata.content_type})")
        return metadata

    def get_object(self, bucket: str, key: str) -> tuple[bytes, str]:
        """
        Returns the object's bytes and content type.
        The content type recorded at upload wins; the extension table is only
        consulted for a file that has no catalog record.
        """
        _require_fields(bucket, key)
        self._require_bucket(bucket)

        catalog = self.buckets.object_catalog(bucket)
        with catalog.lock:
            path = self._existing_object_path(bucket, key)
            data = read_file(path)
            record = next((r for r in load_records(catalog, ObjectMetadata) if r.key == key), None)

        if record is None:
            return data, content_type_for_extension(key)
        return data, record.content_type

    def delete_object(self, bucket: str, key: str):
        _require_fields(bucket, key)
        self._require_bucket(bucket)

        catalog = self.buckets.object_catalog(bucket)
        with catalog.lock:
            path = self._existing_object_path(bucket, key)
            records = load_records(catalog, ObjectMetadata)
            delete_physical_file(path)
            catalog.overwrite_all(r.to_row() for r in records if r.key != key)

        self.buckets.touch_bucket(bucket)
        logger.info(f"Deleted object {bucket}/{key}")

    def list_objects(self, bucket: str) -> list[ObjectMetadata]:
        if not bucket:
            raise MissingField("missing bucket name")
        self._require_bucket(bucket)
        catalog = self.buckets.object_catalog(bucket)
        with catalog.lock:
            return load_records(catalog, ObjectMetadata)
