"""
Startup reconciliation of catalogs against the data directory.

Mutations change the filesystem before the catalog, so an interrupted
operation leaves one of a few known shapes behind: a record whose directory
or file is gone, a directory or file with no record, a record whose size no
longer matches its file, or a stray temporary from an interrupted write.
`reconcile` finds each of these and repairs it in favour of the filesystem.
"""

import logging
import os
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from flatstore.buckets import BucketManager
from flatstore.catalog import load_records
from flatstore.errors import StorageFault
from flatstore.models import Bucket, ObjectMetadata, utcnow
from flatstore.storage import OBJECT_CATALOG, bucket_path, guess_content_type, is_temporary
from flatstore.validation import is_valid_bucket_name, is_valid_object_key

logger = logging.getLogger(__name__)


class ReconcileReport(BaseModel):
    dropped_buckets: list[str] = Field(default_factory=list)
    adopted_buckets: list[str] = Field(default_factory=list)
    dropped_objects: list[str] = Field(default_factory=list)
    adopted_objects: list[str] = Field(default_factory=list)
    resized_objects: list[str] = Field(default_factory=list)
    removed_temporaries: list[str] = Field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not any(
            (
                self.dropped_buckets,
                self.adopted_buckets,
                self.dropped_objects,
                self.adopted_objects,
                self.resized_objects,
                self.removed_temporaries,
            )
        )


def _listdir(path: str) -> list[str]:
    try:
        return sorted(os.listdir(path))
    except OSError as e:
        raise StorageFault(f"unable to list {path}: {e}", cause=e) from e


def _remove_temporary(path: str, report: ReconcileReport):
    try:
        os.remove(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise StorageFault(f"unable to remove temporary file {path}: {e}", cause=e) from e
    logger.warning(f"Removed leftover temporary file {path}")
    report.removed_temporaries.append(path)


def _reconcile_buckets(buckets: BucketManager, report: ReconcileReport) -> list[str]:
    data_dir = buckets.data_dir
    with buckets.catalog.lock:
        records = load_records(buckets.catalog, Bucket)
        changed = False
        kept = []
        for bucket in records:
            if os.path.isdir(bucket_path(data_dir, bucket.name)):
                kept.append(bucket)
            else:
                logger.warning(f"Dropping record of bucket {bucket.name}: directory is missing")
                report.dropped_buckets.append(bucket.name)
                changed = True

        known = {b.name for b in kept}
        for entry in _listdir(data_dir):
            full_path = os.path.join(data_dir, entry)
            if is_temporary(entry) and os.path.isfile(full_path):
                _remove_temporary(full_path, report)
            elif entry not in known and os.path.isdir(full_path) and is_valid_bucket_name(entry):
                logger.warning(f"Adopting bucket directory {entry} with no catalog record")
                now = utcnow()
                kept.append(Bucket(name=entry, creation_time=now, last_modified_time=now))
                report.adopted_buckets.append(entry)
                changed = True

        if changed:
            buckets.catalog.overwrite_all(b.to_row() for b in kept)
    return [b.name for b in kept]


def _reconcile_objects(buckets: BucketManager, name: str, report: ReconcileReport):
    directory = bucket_path(buckets.data_dir, name)
    catalog = buckets.object_catalog(name)
    with catalog.lock:
        records = load_records(catalog, ObjectMetadata)

        files = {}
        for entry in _listdir(directory):
            full_path = os.path.join(directory, entry)
            if entry == OBJECT_CATALOG or not os.path.isfile(full_path):
                continue
            if is_temporary(entry):
                _remove_temporary(full_path, report)
            elif is_valid_object_key(entry):
                files[entry] = os.stat(full_path)

        changed = False
        kept = []
        for record in records:
            st = files.get(record.key)
            if st is None:
                logger.warning(f"Dropping record of object {name}/{record.key}: file is missing")
                report.dropped_objects.append(f"{name}/{record.key}")
                changed = True
                continue
            if record.size != st.st_size:
                logger.warning(
                    f"Object {name}/{record.key} is {st.st_size} bytes, catalog said {record.size}"
                )
                record.size = st.st_size
                record.last_modified = datetime.fromtimestamp(st.st_mtime, timezone.utc)
                report.resized_objects.append(f"{name}/{record.key}")
                changed = True
            kept.append(record)

        known = {r.key for r in kept}
        for key in sorted(files.keys() - known):
            st = files[key]
            logger.warning(f"Adopting object file {name}/{key} with no catalog record")
            kept.append(
                ObjectMetadata(
                    key=key,
                    size=st.st_size,
                    content_type=guess_content_type(key),
                    last_modified=datetime.fromtimestamp(st.st_mtime, timezone.utc),
                )
            )
            report.adopted_objects.append(f"{name}/{key}")
            changed = True

        if changed:
            catalog.overwrite_all(r.to_row() for r in kept)


def reconcile(buckets: BucketManager) -> ReconcileReport:
    """Repairs every catalog under the data directory. Returns what was changed."""
    report = ReconcileReport()
    for name in _reconcile_buckets(buckets, report):
        _reconcile_objects(buckets, name, report)

    if report.clean:
        logger.info("Consistency sweep found no divergence")
    return report
