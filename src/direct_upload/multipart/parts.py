from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List

MIN_PART_SIZE_BYTES = 5 * 1024 * 1024
MAX_PART_COUNT = 10_000


class InvalidPartNumber(ValueError):
    pass


@dataclass(frozen=True)
class PartRange:
    part_number: int
    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size


def effective_part_size(configured: int) -> int:
    """Apply the store's minimum part size floor."""
    return max(int(configured), MIN_PART_SIZE_BYTES)


def validate_part_number(part_number: object) -> int:
    # bool is an int subclass; True must not sign part 1
    if isinstance(part_number, bool) or not isinstance(part_number, int):
        raise InvalidPartNumber("Part number must be a positive integer")
    if part_number < 1 or part_number > MAX_PART_COUNT:
        raise InvalidPartNumber(
            f"Part number must be between 1 and {MAX_PART_COUNT}"
        )
    return part_number


def count_parts(file_size: int, part_size: int) -> int:
    if part_size <= 0:
        raise ValueError("Part size must be positive")
    if file_size < 0:
        raise ValueError("File size must not be negative")
    # An empty file still needs one (empty) part to finalize.
    return max(1, math.ceil(file_size / part_size))


def plan_parts(file_size: int, part_size: int) -> List[PartRange]:
    """Split ``file_size`` bytes into contiguous 1-based parts.

    Every part is ``part_size`` bytes except the last, which holds the
    remainder (or a full ``part_size`` when the size divides evenly).
    """
    total = count_parts(file_size, part_size)
    if total > MAX_PART_COUNT:
        raise ValueError(
            f"File needs {total} parts; the store allows at most {MAX_PART_COUNT}"
        )
    ranges: List[PartRange] = []
    for index in range(total):
        offset = index * part_size
        size = min(part_size, file_size - offset)
        ranges.append(PartRange(part_number=index + 1, offset=offset, size=size))
    return ranges
