import pytest

from meowith.entity import Range
from meowith.error import NodeClientError
from meowith.node.storage import InMemoryStorage, NodeError


@pytest.fixture
def fs() -> InMemoryStorage:
    fs = InMemoryStorage()
    fs.create_bucket("app", "bucket", quota=16)
    return fs


def test_get_ranges(fs: InMemoryStorage) -> None:
    fs.put("app", "bucket", "key", b"0123456789")

    assert fs.get("app", "bucket", "key").data == b"0123456789"
    assert fs.get("app", "bucket", "key", Range(start=2, end=4)).data == b"234"
    assert fs.get("app", "bucket", "key", Range(start=8, end=50)).data == b"89"
    # a suffix longer than the file is the whole file
    assert fs.get("app", "bucket", "key", Range(end=50)).data == b"0123456789"

    with pytest.raises(NodeError) as exc_info:
        fs.get("app", "bucket", "key", Range(start=10))
    assert exc_info.value.code is NodeClientError.RangeUnsatisfiable
    assert exc_info.value.status_code == 416


def test_overwrite_counts_against_quota_once(fs: InMemoryStorage) -> None:
    fs.put("app", "bucket", "key", b"x" * 10)
    fs.put("app", "bucket", "key", b"y" * 16)

    with pytest.raises(NodeError) as exc_info:
        fs.put("app", "bucket", "other", b"z")
    assert exc_info.value.code is NodeClientError.InsufficientStorage


def test_file_needs_parent_directory(fs: InMemoryStorage) -> None:
    with pytest.raises(NodeError) as exc_info:
        fs.put("app", "bucket", "missing/key", b"x")
    assert exc_info.value.code is NodeClientError.NotFound


def test_rename_directory_keeps_ids(fs: InMemoryStorage) -> None:
    fs.create_directory("app", "bucket", "a")
    fs.create_directory("app", "bucket", "a/b")
    fs.put("app", "bucket", "a/b/c", b"c")
    before = fs.stat("app", "bucket", "a/b").dir_id

    fs.rename("app", "bucket", "a", "z", directory=True)

    assert fs.stat("app", "bucket", "z/b").dir_id == before
    assert fs.stat("app", "bucket", "z/b/c").dir == before
    with pytest.raises(NodeError):
        fs.stat("app", "bucket", "a/b/c")


def test_session_rejects_overflow(fs: InMemoryStorage) -> None:
    info = fs.start_session("app", "bucket", "key", 4)
    fs.put_chunk("app", "bucket", info.code, b"ab")

    with pytest.raises(NodeError) as exc_info:
        fs.put_chunk("app", "bucket", info.code, b"cde")
    assert exc_info.value.code is NodeClientError.BadRequest
    assert fs.resume_session("app", "bucket", info.code) == 2
