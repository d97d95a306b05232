"""
Bucket lifecycle on top of the bucket catalog.

A bucket is a directory under the data root plus one row in the bucket
catalog. Every mutation touches the filesystem first and the catalog second,
so a crash in between leaves an orphan record or an unrecorded directory,
both of which the consistency sweep repairs.
"""

import logging
import os
import shutil
from datetime import datetime

from flatstore.catalog import Catalog, load_records
from flatstore.errors import Conflict, MissingField, NotEmpty, NotFound, StorageFault
from flatstore.models import Bucket, ObjectMetadata, utcnow
from flatstore.storage import (
    OBJECT_CATALOG,
    bucket_catalog_path,
    bucket_path,
    object_catalog_path,
)
from flatstore.validation import is_valid_bucket_name, validate_bucket_name

logger = logging.getLogger(__name__)


class BucketManager:
    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.catalog = Catalog(bucket_catalog_path(data_dir), Bucket.FIELD_COUNT)

    def bucket_exists(self, name: str) -> bool:
        # A name that fails validation can never have been created
        return is_valid_bucket_name(name) and os.path.isdir(bucket_path(self.data_dir, name))

    def object_catalog(self, name: str) -> Catalog:
        return Catalog(object_catalog_path(self.data_dir, name), ObjectMetadata.FIELD_COUNT)

    def create_bucket(self, name: str) -> Bucket:
        if not name:
            raise MissingField("missing bucket name")
        validate_bucket_name(name)

        path = bucket_path(self.data_dir, name)
        with self.catalog.lock:
            if any(b.name == name for b in load_records(self.catalog, Bucket)):
                raise Conflict(f"bucket name '{name}' already exists")

            try:
                os.mkdir(path)
            except FileExistsError as e:
                if not os.path.isdir(path):
                    raise StorageFault(f"error creating bucket directory: {path} is not a directory", cause=e) from e
                # Left behind by a create that crashed before its catalog write
                logger.warning(f"Adopting existing directory for bucket {name}")
            except OSError as e:
                raise StorageFault(f"error creating bucket directory: {e}", cause=e) from e

            now = utcnow()
            bucket = Bucket(name=name, creation_time=now, last_modified_time=now)
            self.catalog.append(bucket.to_row())

        logger.info(f"Created bucket {name}")
        return bucket

    def list_buckets(self) -> list[Bucket]:
        with self.catalog.lock:
            return load_records(self.catalog, Bucket)

    def get_bucket(self, name: str) -> Bucket | None:
        for bucket in self.list_buckets():
            if bucket.name == name:
                return bucket
        return None

    def delete_bucket(self, name: str):
        if not name:
            raise MissingField("missing bucket name")
        if not self.bucket_exists(name):
            raise NotFound("bucket not found")

        path = bucket_path(self.data_dir, name)
        # Object catalog lock first: no upload may land while the bucket is being removed
        with self.object_catalog(name).lock, self.catalog.lock:
            try:
                entries = [e for e in os.listdir(path) if e != OBJECT_CATALOG]
            except FileNotFoundError as e:
                raise NotFound("bucket not found") from e
            except OSError as e:
                raise StorageFault(f"error reading bucket directory: {e}", cause=e) from e
            if entries:
                raise NotEmpty("bucket is not empty, delete objects before deleting the bucket")

            records = load_records(self.catalog, Bucket)
            try:
                shutil.rmtree(path)
            except OSError as e:
                raise StorageFault(f"error deleting bucket directory: {e}", cause=e) from e
            self.catalog.overwrite_all(b.to_row() for b in records if b.name != name)

        logger.info(f"Deleted bucket {name}")

    def touch_bucket(self, name: str, when: datetime | None = None) -> Bucket | None:
        """
        Sets lastModifiedTime of a bucket record, typically after one of its
        objects changed. Returns None when the bucket has no record.
        """
        when = when or utcnow()
        with self.catalog.lock:
            records = load_records(self.catalog, Bucket)
            touched = None
            for bucket in records:
                if bucket.name == name:
                    bucket.last_modified_time = when
                    touched = bucket
            if touched is None:
                return None
            self.catalog.overwrite_all(b.to_row() for b in records)
        return touched
