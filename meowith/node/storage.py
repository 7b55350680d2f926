from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from meowith.entity import Range, RawBucket, RawEntity, UploadSessionInfo
from meowith.error import NodeClientError


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _split(path: str) -> tuple[str, str]:
    path = path.strip("/")
    parent, _, name = path.rpartition("/")
    return parent, name


class NodeError(Exception):
    status_codes = {
        NodeClientError.InternalError: 500,
        NodeClientError.BadRequest: 400,
        NodeClientError.NotFound: 404,
        NodeClientError.EntityExists: 409,
        NodeClientError.NoSuchSession: 404,
        NodeClientError.BadAuth: 401,
        NodeClientError.InsufficientStorage: 507,
        NodeClientError.NotEmpty: 409,
        NodeClientError.RangeUnsatisfiable: 416,
    }

    def __init__(self, code: NodeClientError, detail: str = "") -> None:
        super().__init__(f"{code.value}: {detail}" if detail else code.value)
        self.code = code

    @property
    def status_code(self) -> int:
        return self.status_codes[self.code]


@dataclass
class StoredFile:
    data: bytes
    created: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)


@dataclass
class StoredDirectory:
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)


@dataclass
class UploadSession:
    code: str
    path: str
    size: int
    validity: int
    data: bytearray = field(default_factory=bytearray)


@dataclass
class PartialData:
    data: bytes
    total: int
    start: int
    end: int


@dataclass
class StoredBucket:
    app_id: str
    id: str
    name: str
    quota: int
    encrypted: bool = False
    atomic_upload: bool = False
    created: datetime = field(default_factory=_now)
    last_modified: datetime = field(default_factory=_now)
    # keyed by full path, kept in insertion order
    files: dict[str, StoredFile] = field(default_factory=dict)
    directories: dict[str, StoredDirectory] = field(default_factory=dict)
    sessions: dict[str, UploadSession] = field(default_factory=dict)

    @property
    def space_taken(self) -> int:
        return sum(len(f.data) for f in self.files.values())

    def touch(self) -> None:
        self.last_modified = _now()

    def exists(self, path: str) -> bool:
        return path in self.files or path in self.directories

    def parent_id(self, path: str) -> str | None:
        parent, _ = _split(path)
        if not parent:
            return None
        directory = self.directories.get(parent)
        if directory is None:
            raise NodeError(NodeClientError.NotFound, f"no directory {parent!r}")
        return directory.id

    def children(self, path: str) -> list[str]:
        prefix = f"{path}/" if path else ""
        return [p for p in [*self.directories, *self.files] if p.startswith(prefix) and p != path]

    def raw_entity(self, path: str) -> RawEntity:
        _, name = _split(path)
        if path in self.directories:
            directory = self.directories[path]
            return RawEntity(
                name=name,
                dir=self.parent_id(path),
                dir_id=directory.id,
                size=0,
                is_dir=True,
                created=directory.created.isoformat(),
                last_modified=directory.last_modified.isoformat(),
            )
        if path in self.files:
            stored = self.files[path]
            return RawEntity(
                name=name,
                dir=self.parent_id(path),
                dir_id=None,
                size=len(stored.data),
                is_dir=False,
                created=stored.created.isoformat(),
                last_modified=stored.last_modified.isoformat(),
            )
        raise NodeError(NodeClientError.NotFound, f"no entity {path!r}")

    def raw(self) -> RawBucket:
        return RawBucket(
            app_id=self.app_id,
            id=self.id,
            name=self.name,
            encrypted=self.encrypted,
            atomic_upload=self.atomic_upload,
            quota=self.quota,
            file_count=len(self.files),
            space_taken=self.space_taken,
            created=self.created.isoformat(),
            last_modified=self.last_modified.isoformat(),
        )


def _paginate(paths: list[str], paginate: Range | None) -> list[str]:
    if not paginate:
        return paths
    start = paginate.start or 0
    end = paginate.end if paginate.end is not None else len(paths)
    return paths[start:end]


@dataclass
class InMemoryStorage:
    """Buckets, files, directories and upload sessions held in process memory."""

    buckets: dict[tuple[str, str], StoredBucket] = field(default_factory=dict)
    session_validity: int = 3600

    def create_bucket(self, app_id: str, bucket_id: str, name: str | None = None, quota: int = 1 << 30) -> StoredBucket:
        bucket = StoredBucket(app_id=app_id, id=bucket_id, name=name or bucket_id, quota=quota)
        self.buckets[(app_id, bucket_id)] = bucket
        return bucket

    def bucket(self, app_id: str, bucket_id: str) -> StoredBucket:
        try:
            return self.buckets[(app_id, bucket_id)]
        except KeyError:
            raise NodeError(NodeClientError.NotFound, f"no bucket {app_id}/{bucket_id}") from None

    def _check_quota(self, bucket: StoredBucket, size: int, replacing: str | None = None) -> None:
        freed = len(bucket.files[replacing].data) if replacing in bucket.files else 0
        if bucket.space_taken - freed + size > bucket.quota:
            raise NodeError(NodeClientError.InsufficientStorage)

    def put(self, app_id: str, bucket_id: str, path: str, body: bytes) -> None:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        if not path or path in bucket.directories:
            raise NodeError(NodeClientError.BadRequest, f"cannot write a file at {path!r}")
        bucket.parent_id(path)
        self._check_quota(bucket, len(body), replacing=path)
        existing = bucket.files.get(path)
        if existing is not None:
            existing.data = body
            existing.last_modified = _now()
        else:
            bucket.files[path] = StoredFile(data=body)
        bucket.touch()

    def get(self, app_id: str, bucket_id: str, path: str, range: Range | None = None) -> PartialData:
        stored = self.bucket(app_id, bucket_id).files.get(path.strip("/"))
        if stored is None:
            raise NodeError(NodeClientError.NotFound, f"no file {path!r}")
        total = len(stored.data)
        if not range:
            return PartialData(data=stored.data, total=total, start=0, end=max(total - 1, 0))
        if range.start is None:
            # suffix range, the last `end` bytes
            start = max(total - (range.end or 0), 0)
            end = total - 1
        else:
            start = range.start
            end = min(range.end, total - 1) if range.end is not None else total - 1
        if start >= total or start > end:
            raise NodeError(NodeClientError.RangeUnsatisfiable)
        return PartialData(data=stored.data[start : end + 1], total=total, start=start, end=end)

    def start_session(self, app_id: str, bucket_id: str, path: str, size: int) -> UploadSessionInfo:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        if not path or path in bucket.directories:
            raise NodeError(NodeClientError.BadRequest, f"cannot write a file at {path!r}")
        bucket.parent_id(path)
        self._check_quota(bucket, size, replacing=path)
        session = UploadSession(code=secrets.token_urlsafe(16), path=path, size=size, validity=self.session_validity)
        bucket.sessions[session.code] = session
        return UploadSessionInfo(code=session.code, validity=session.validity, uploaded=0)

    def _session(self, bucket: StoredBucket, code: str) -> UploadSession:
        try:
            return bucket.sessions[code]
        except KeyError:
            raise NodeError(NodeClientError.NoSuchSession) from None

    def put_chunk(self, app_id: str, bucket_id: str, code: str, chunk: bytes) -> None:
        bucket = self.bucket(app_id, bucket_id)
        session = self._session(bucket, code)
        if len(session.data) + len(chunk) > session.size:
            raise NodeError(NodeClientError.BadRequest, "chunk exceeds the declared size")
        session.data.extend(chunk)
        if len(session.data) == session.size:
            del bucket.sessions[code]
            self.put(app_id, bucket_id, session.path, bytes(session.data))

    def resume_session(self, app_id: str, bucket_id: str, code: str) -> int:
        return len(self._session(self.bucket(app_id, bucket_id), code).data)

    def delete(self, app_id: str, bucket_id: str, path: str) -> None:
        bucket = self.bucket(app_id, bucket_id)
        if bucket.files.pop(path.strip("/"), None) is None:
            raise NodeError(NodeClientError.NotFound, f"no file {path!r}")
        bucket.touch()

    def rename(self, app_id: str, bucket_id: str, path: str, to: str, directory: bool) -> None:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        entries = bucket.directories if directory else bucket.files
        if path not in entries:
            raise NodeError(NodeClientError.NotFound, f"no entity {path!r}")
        parent, _ = _split(path)
        target = f"{parent}/{to}" if parent else to
        if bucket.exists(target):
            raise NodeError(NodeClientError.EntityExists, f"{target!r} already exists")
        if directory:
            prefix = f"{path}/"
            for mapping in (bucket.files, bucket.directories):
                for old in [p for p in mapping if p.startswith(prefix)]:
                    mapping[target + old[len(path) :]] = mapping.pop(old)
        moved = entries.pop(path)
        moved.last_modified = _now()
        entries[target] = moved
        bucket.touch()

    def create_directory(self, app_id: str, bucket_id: str, path: str) -> None:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        if not path:
            raise NodeError(NodeClientError.BadRequest, "empty directory name")
        if bucket.exists(path):
            raise NodeError(NodeClientError.EntityExists, f"{path!r} already exists")
        bucket.parent_id(path)
        bucket.directories[path] = StoredDirectory()
        bucket.touch()

    def delete_directory(self, app_id: str, bucket_id: str, path: str, recursive: bool) -> None:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        if path not in bucket.directories:
            raise NodeError(NodeClientError.NotFound, f"no directory {path!r}")
        children = bucket.children(path)
        if children and not recursive:
            raise NodeError(NodeClientError.NotEmpty, f"{path!r} is not empty")
        for child in children:
            bucket.files.pop(child, None)
            bucket.directories.pop(child, None)
        del bucket.directories[path]
        bucket.touch()

    def list_files(self, app_id: str, bucket_id: str, paginate: Range | None = None) -> list[RawEntity]:
        bucket = self.bucket(app_id, bucket_id)
        return [bucket.raw_entity(p) for p in _paginate(list(bucket.files), paginate)]

    def list_directories(self, app_id: str, bucket_id: str, paginate: Range | None = None) -> list[RawEntity]:
        bucket = self.bucket(app_id, bucket_id)
        return [bucket.raw_entity(p) for p in _paginate(list(bucket.directories), paginate)]

    def list_directory(
        self, app_id: str, bucket_id: str, path: str, paginate: Range | None = None
    ) -> list[RawEntity]:
        bucket = self.bucket(app_id, bucket_id)
        path = path.strip("/")
        if path and path not in bucket.directories:
            raise NodeError(NodeClientError.NotFound, f"no directory {path!r}")
        direct = [p for p in bucket.children(path) if _split(p)[0] == path]
        return [bucket.raw_entity(p) for p in _paginate(direct, paginate)]

    def stat(self, app_id: str, bucket_id: str, path: str) -> RawEntity:
        return self.bucket(app_id, bucket_id).raw_entity(path.strip("/"))
