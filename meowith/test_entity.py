from datetime import datetime, timedelta, timezone

import pytest

from meowith.api import pagination_query, range_header
from meowith.entity import Bucket, Entity, Range, RawBucket, RawEntity


@pytest.mark.parametrize(
    "range,expected",
    [
        (Range(start=0, end=99), "bytes=0-99"),
        (Range(start=512, end=1023), "bytes=512-1023"),
        (Range(start=10), "bytes=10-"),
        (Range(end=300), "bytes=-300"),
    ],
)
def test_range_header(range: Range, expected: str) -> None:
    assert range_header(range) == expected


def test_range_header_rejects_empty_range() -> None:
    with pytest.raises(ValueError):
        range_header(Range())


@pytest.mark.parametrize(
    "range,expected",
    [
        (None, ""),
        (Range(), ""),
        (Range(start=5, end=10), "?start=5&end=10"),
        (Range(start=5), "?start=5-"),
        (Range(end=10), "?end=10"),
    ],
)
def test_pagination_query(range: Range | None, expected: str) -> None:
    assert pagination_query(range) == expected


def test_range_truthiness() -> None:
    assert not Range()
    assert Range(start=0)
    assert Range(end=0)


def test_entity_timestamps_are_normalized() -> None:
    created = datetime(2024, 3, 1, 12, 30, 15, tzinfo=timezone.utc)
    modified = datetime(2024, 3, 2, 8, 0, 0, 123456, tzinfo=timezone(timedelta(hours=2)))
    raw = RawEntity(
        name="report.pdf",
        dir="0b8e7c62-2d0f-4a43-9a1b-5d1a0b7f2c11",
        size=2048,
        is_dir=False,
        created=created.isoformat(),
        last_modified=modified.isoformat(),
    )

    entity = Entity.from_raw(raw)

    assert entity.created == created
    assert entity.last_modified == modified
    assert entity.dir_id is None
    assert entity.dir == raw.dir


def test_entity_accepts_zulu_timestamps() -> None:
    raw = RawEntity(
        name="docs",
        dir_id="5d1a0b7f-2c11-4a43-9a1b-0b8e7c622d0f",
        size=0,
        is_dir=True,
        created="2023-11-05T09:15:00Z",
        last_modified="2023-11-05T09:15:30.5Z",
    )

    entity = Entity.from_raw(raw)

    assert entity.created == datetime(2023, 11, 5, 9, 15, tzinfo=timezone.utc)
    assert entity.last_modified.replace(microsecond=0) == datetime(2023, 11, 5, 9, 15, 30, tzinfo=timezone.utc)
    assert entity.dir is None


def test_bucket_from_raw() -> None:
    raw = RawBucket(
        app_id="app",
        id="bucket",
        name="photos",
        encrypted=True,
        atomic_upload=False,
        quota=1 << 20,
        file_count=3,
        space_taken=4096,
        created="2024-01-01T00:00:00+00:00",
        last_modified="2024-01-02T00:00:00+00:00",
    )

    bucket = Bucket.from_raw(raw)

    assert bucket.quota == 1 << 20
    assert bucket.space_taken == 4096
    assert bucket.created == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert bucket.last_modified - bucket.created == timedelta(days=1)
