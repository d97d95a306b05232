"""Service configuration loaded from environment variables."""

import os

from pydantic import BaseModel, Field


class StorageConfig(BaseModel, frozen=True):
    """Runtime settings of the storage service."""

    data_dir: str = "data"
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    reconcile_on_startup: bool = True
    log_level: str = "INFO"


def load_config() -> StorageConfig:
    """Loads configuration from environment variables."""
    return StorageConfig(
        data_dir=os.getenv("FLATSTORE_DATA_DIR", "data"),
        host=os.getenv("FLATSTORE_HOST", "0.0.0.0"),
        port=os.getenv("FLATSTORE_PORT", "8080"),
        reconcile_on_startup=os.getenv("FLATSTORE_RECONCILE_ON_STARTUP", "true"),
        log_level=os.getenv("FLATSTORE_LOG_LEVEL", "INFO"),
    )
