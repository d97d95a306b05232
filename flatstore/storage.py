import contextlib
import mimetypes
import os
import shutil
import tempfile
from typing import BinaryIO, Iterator

from flatstore.errors import NotFound, StorageFault

BUCKET_CATALOG = "_buckets.csv"
OBJECT_CATALOG = "objects.csv"

# '~' is outside the object key alphabet, so a temporary never shadows a real key
TEMP_SUFFIX = ".part~"

# mkstemp creates files as 0600
FILE_MODE = 0o644

DEFAULT_CONTENT_TYPE = "application/octet-stream"

EXTENSION_CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".txt": "text/plain",
}


def bucket_catalog_path(data_dir: str) -> str:
    return os.path.join(data_dir, BUCKET_CATALOG)


def bucket_path(data_dir: str, bucket: str) -> str:
    return os.path.join(data_dir, bucket)


def object_catalog_path(data_dir: str, bucket: str) -> str:
    return os.path.join(data_dir, bucket, OBJECT_CATALOG)


def object_path(data_dir: str, bucket: str, key: str) -> str:
    return os.path.join(data_dir, bucket, key)


def is_temporary(filename: str) -> bool:
    return filename.endswith(TEMP_SUFFIX)


@contextlib.contextmanager
def atomic_writer(path: str, mode: str = "wb", **kwargs) -> Iterator:
    """
    Yields a file opened on a temporary sibling of `path`.
    On a clean exit the temporary is renamed over `path`, so readers see
    either the old content or the new one, never a partial write.
    """
    directory, name = os.path.split(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{name}.", suffix=TEMP_SUFFIX, dir=directory or ".")
    try:
        with os.fdopen(fd, mode, **kwargs) as buffer:
            yield buffer
            buffer.flush()
            os.fsync(buffer.fileno())
        os.chmod(tmp_path, FILE_MODE)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.remove(tmp_path)
        raise


def save_file(file_obj: BinaryIO, path: str) -> int:
    """
    Streams file_obj to path, replacing any existing file atomically.
    Returns the number of bytes written.
    """
    try:
        with atomic_writer(path) as buffer:
            shutil.copyfileobj(file_obj, buffer)
            size = buffer.tell()
    except OSError as e:
        raise StorageFault(f"unable to write object data: {e}", cause=e) from e
    return size


def read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except FileNotFoundError as e:
        raise NotFound("object does not exist") from e
    except OSError as e:
        raise StorageFault(f"unable to read object: {e}", cause=e) from e


def delete_physical_file(path: str):
    try:
        os.remove(path)
    except FileNotFoundError as e:
        raise NotFound("object does not exist") from e
    except OSError as e:
        raise StorageFault(f"unable to delete object: {e}", cause=e) from e


def guess_content_type(key: str) -> str:
    ctype, _ = mimetypes.guess_type(key)
    return ctype or DEFAULT_CONTENT_TYPE


def content_type_for_extension(key: str) -> str:
    ext = os.path.splitext(key)[1].lower()
    return EXTENSION_CONTENT_TYPES.get(ext, DEFAULT_CONTENT_TYPE)


def resolve_content_type(key: str, declared: str | None) -> str:
    if declared:
        return declared
    return guess_content_type(key)
