from datetime import datetime, timezone
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BucketStatus(str, Enum):
    ACTIVE = "active"


class Bucket(BaseModel):
    """One row of the bucket catalog."""

    FIELD_COUNT: ClassVar[int] = 4

    name: str
    creation_time: datetime = Field(default_factory=utcnow)
    last_modified_time: datetime = Field(default_factory=utcnow)
    status: BucketStatus = BucketStatus.ACTIVE

    def to_row(self) -> list[str]:
        return [
            self.name,
            self.creation_time.isoformat(),
            self.last_modified_time.isoformat(),
            self.status.value,
        ]

    @classmethod
    def from_row(cls, row: list[str]) -> "Bucket":
        name, creation_time, last_modified_time, status = row
        return cls(
            name=name,
            creation_time=creation_time,
            last_modified_time=last_modified_time,
            status=status,
        )


class ObjectMetadata(BaseModel):
    """One row of a bucket's object catalog."""

    FIELD_COUNT: ClassVar[int] = 4

    key: str
    size: int = Field(default=0, ge=0)
    content_type: str = Field(default="application/octet-stream")
    last_modified: datetime = Field(default_factory=utcnow)

    def to_row(self) -> list[str]:
        return [self.key, str(self.size), self.content_type, self.last_modified.isoformat()]

    @classmethod
    def from_row(cls, row: list[str]) -> "ObjectMetadata":
        key, size, content_type, last_modified = row
        return cls(key=key, size=size, content_type=content_type, last_modified=last_modified)
