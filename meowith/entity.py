from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable

from pydantic import BaseModel, TypeAdapter

_timestamp = TypeAdapter(datetime)


def parse_timestamp(value: str) -> datetime:
    return _timestamp.validate_python(value)


@dataclass(frozen=True)
class BucketId:
    app_id: str
    bucket_id: str


@dataclass(frozen=True)
class Resource(BucketId):
    path: str


@dataclass(frozen=True)
class Range:
    """A byte interval.

    ``start`` and ``end`` together form a closed range, ``start`` alone an
    open-ended offset and ``end`` alone a suffix length (the last ``end`` bytes).
    """

    start: int | None = None
    end: int | None = None

    def __bool__(self) -> bool:
        return self.start is not None or self.end is not None


# wire payloads, timestamps are ISO-8601 strings


class RawEntity(BaseModel):
    name: str
    dir: str | None = None
    dir_id: str | None = None
    size: int
    is_dir: bool
    created: str
    last_modified: str


class RawEntityList(BaseModel):
    entities: list[RawEntity]


class RawBucket(BaseModel):
    app_id: str
    id: str
    name: str
    encrypted: bool
    atomic_upload: bool
    quota: int
    file_count: int
    space_taken: int
    created: str
    last_modified: str


class UploadSessionInfo(BaseModel):
    code: str
    validity: int
    uploaded: int


class UploadSessionResumeResponse(BaseModel):
    uploaded: int


class UploadSessionRequest(BaseModel):
    size: int


class UploadSessionResumeRequest(BaseModel):
    session_id: str


class RenameEntityRequest(BaseModel):
    to: str


class DeleteDirectoryRequest(BaseModel):
    recursive: bool = False


# client side forms


@dataclass(frozen=True)
class Entity:
    name: str
    # parent directory id, None at the bucket root
    dir: str | None
    # own directory id, set iff is_dir
    dir_id: str | None
    size: int
    is_dir: bool
    created: datetime
    last_modified: datetime

    @classmethod
    def from_raw(cls, raw: RawEntity) -> Entity:
        return cls(
            name=raw.name,
            dir=raw.dir,
            dir_id=raw.dir_id,
            size=raw.size,
            is_dir=raw.is_dir,
            created=parse_timestamp(raw.created),
            last_modified=parse_timestamp(raw.last_modified),
        )


@dataclass(frozen=True)
class Bucket:
    app_id: str
    id: str
    name: str
    encrypted: bool
    atomic_upload: bool
    quota: int
    file_count: int
    space_taken: int
    created: datetime
    last_modified: datetime

    @classmethod
    def from_raw(cls, raw: RawBucket) -> Bucket:
        return cls(
            app_id=raw.app_id,
            id=raw.id,
            name=raw.name,
            encrypted=raw.encrypted,
            atomic_upload=raw.atomic_upload,
            quota=raw.quota,
            file_count=raw.file_count,
            space_taken=raw.space_taken,
            created=parse_timestamp(raw.created),
            last_modified=parse_timestamp(raw.last_modified),
        )


@dataclass
class FileEntity:
    """A downloaded file.

    ``content`` can be iterated once. Call ``aclose`` when done with it, whether
    or not it was fully consumed, to release the underlying connection.
    """

    name: str
    mime: str
    # None when the node streams without a Content-Length
    size: int | None
    content: AsyncIterator[bytes]
    _close: Callable[[], Awaitable[None]] | None = None

    async def read(self) -> bytes:
        return b"".join([chunk async for chunk in self.content])

    async def aclose(self) -> None:
        if self._close is not None:
            await self._close()
