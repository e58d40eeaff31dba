import math

import pytest

from direct_upload.multipart.keys import InvalidObjectKey, validate_object_key
from direct_upload.multipart.parts import (
    MIN_PART_SIZE_BYTES,
    InvalidPartNumber,
    effective_part_size,
    plan_parts,
    validate_part_number,
)


@pytest.mark.parametrize(
    "file_size, part_size",
    [(1, 5), (5, 5), (6, 5), (24, 5), (25, 5), (10 * 1024 * 1024 + 7, MIN_PART_SIZE_BYTES)],
)
def test_plan_parts_sizes(file_size, part_size):
    ranges = plan_parts(file_size, part_size)
    expected_count = math.ceil(file_size / part_size)

    assert len(ranges) == expected_count
    assert [r.part_number for r in ranges] == list(range(1, expected_count + 1))
    assert all(r.size == part_size for r in ranges[:-1])
    assert ranges[-1].size == file_size - part_size * (expected_count - 1)
    assert ranges[-1].size > 0
    assert ranges[-1].end == file_size


def test_plan_parts_is_contiguous():
    ranges = plan_parts(23, 5)

    for previous, current in zip(ranges, ranges[1:]):
        assert current.offset == previous.end


def test_empty_file_still_has_one_part():
    assert [(r.part_number, r.size) for r in plan_parts(0, 5)] == [(1, 0)]


def test_effective_part_size_floor():
    assert effective_part_size(1024) == MIN_PART_SIZE_BYTES
    assert effective_part_size(64 * 1024 * 1024) == 64 * 1024 * 1024


@pytest.mark.parametrize("value", [0, -3, 10_001, True, "1", 1.0])
def test_invalid_part_numbers(value):
    with pytest.raises(InvalidPartNumber):
        validate_part_number(value)


@pytest.mark.parametrize(
    "key", ["../etc/passwd", "/abs/path", "\\windows\\root", "a/../b", "a\\..\\b", "  ", None]
)
def test_unsafe_keys_are_rejected(key):
    with pytest.raises(InvalidObjectKey):
        validate_object_key(key)


@pytest.mark.parametrize(
    "key, expected",
    [("videos/a.mp4", "videos/a.mp4"), ("  notes.txt ", "notes.txt"), ("a/..b/c", "a/..b/c")],
)
def test_safe_keys_are_trimmed(key, expected):
    assert validate_object_key(key) == expected
