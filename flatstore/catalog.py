"""
Flat CSV catalogs.

A catalog is a CSV file holding one record per line, every record having the
same number of fields. The bucket catalog lives at the root of the data
directory and each bucket keeps its own object catalog. There is no database
underneath, so all read-modify-write cycles on a catalog must be done while
holding `Catalog.lock`, which is shared by every Catalog opened on the same
path within the process.
"""

import csv
import logging
import os
import threading
import weakref
from typing import Iterable, TypeVar

from pydantic import BaseModel, ValidationError

from flatstore.errors import CorruptCatalog, StorageFault
from flatstore.storage import atomic_writer

logger = logging.getLogger(__name__)

Record = list[str]
M = TypeVar("M", bound=BaseModel)

# An entry goes away once no Catalog holds its lock
_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()
_locks_guard = threading.Lock()


def lock_for(path: str) -> threading.RLock:
    """Returns the process-wide lock guarding the catalog at path."""
    key = os.path.abspath(path)
    with _locks_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.RLock()
        return lock


class Catalog:
    def __init__(self, path: str, width: int):
        self.path = path
        self.width = width
        self.lock = lock_for(path)

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def read_all(self) -> list[Record]:
        """
        Returns every record in file order.
        A missing file is an empty catalog, not an error.
        """
        try:
            with open(self.path, newline="", encoding="utf-8") as f:
                rows = list(csv.reader(f, strict=True))
        except FileNotFoundError:
            return []
        except (csv.Error, UnicodeDecodeError) as e:
            raise CorruptCatalog(self.path, str(e)) from e
        except OSError as e:
            raise StorageFault(f"unable to read catalog {self.path}: {e}", cause=e) from e

        records = []
        for line_no, row in enumerate(rows, start=1):
            if not row:
                continue
            if len(row) != self.width:
                raise CorruptCatalog(
                    self.path, f"line {line_no} has {len(row)} fields, expected {self.width}"
                )
            records.append(row)
        return records

    def overwrite_all(self, records: Iterable[Record]):
        records = [self._checked(r) for r in records]
        try:
            with atomic_writer(self.path, "w", newline="", encoding="utf-8") as f:
                csv.writer(f).writerows(records)
        except OSError as e:
            raise StorageFault(f"unable to write catalog {self.path}: {e}", cause=e) from e
        logger.debug(f"Rewrote catalog {self.path} with {len(records)} records")

    def append(self, record: Record):
        record = self._checked(record)
        try:
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(record)
        except OSError as e:
            raise StorageFault(f"unable to append to catalog {self.path}: {e}", cause=e) from e

    def _checked(self, record: Record) -> Record:
        if len(record) != self.width:
            raise ValueError(f"record has {len(record)} fields, expected {self.width}")
        return record


def load_records(catalog: Catalog, model: type[M]) -> list[M]:
    """Reads a catalog and parses every record into `model`."""
    parsed = []
    for row in catalog.read_all():
        try:
            parsed.append(model.from_row(row))
        except (ValidationError, ValueError) as e:
            raise CorruptCatalog(catalog.path, f"unparsable record {row!r}") from e
    return parsed
