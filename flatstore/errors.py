"""Error kinds raised by the bucket and object managers.

Each error carries the HTTP status the router answers with and a short
machine-readable code that ends up in the XML error document.
"""


class StorageError(Exception):
    """Base class for every error surfaced to a client."""

    status_code = 500
    code = "InternalError"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidName(StorageError):
    """Bucket name fails the naming rules."""

    status_code = 400
    code = "InvalidBucketName"


class InvalidKey(StorageError):
    """Object key fails the naming rules or is reserved."""

    status_code = 400
    code = "InvalidKey"


class MissingField(StorageError):
    """Bucket name or object key is empty."""

    status_code = 400
    code = "MissingField"


class InvalidRequest(StorageError):
    """Request path does not map to any operation."""

    status_code = 400
    code = "InvalidRequest"


class NotEmpty(StorageError):
    status_code = 400
    code = "BucketNotEmpty"


class NotFound(StorageError):
    status_code = 404
    code = "NotFound"


class MethodNotAllowed(StorageError):
    status_code = 405
    code = "MethodNotAllowed"


class Conflict(StorageError):
    status_code = 409
    code = "BucketAlreadyExists"


class CorruptCatalog(StorageError):
    """Catalog file exists but cannot be parsed."""

    status_code = 500
    code = "CorruptCatalog"

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"catalog {path} is corrupt: {reason}")


class StorageFault(StorageError):
    """A filesystem operation failed."""

    status_code = 500
    code = "StorageFault"

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)
