from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from direct_upload.multipart.parts import validate_part_number


class UnresolvedPartsError(ValueError):
    def __init__(self, part_numbers: Iterable[int]) -> None:
        self.part_numbers = sorted(part_numbers)
        joined = ", ".join(str(n) for n in self.part_numbers)
        super().__init__(f"No completion token could be resolved for parts: {joined}")


@dataclass(frozen=True)
class RequestedPart:
    part_number: int
    token: Optional[str] = None


@dataclass(frozen=True)
class StoredPart:
    """One entry of the store's authoritative part listing."""

    part_number: int
    token: str
    size: int = 0


@dataclass(frozen=True)
class ResolvedPart:
    part_number: int
    token: str


def validate_requested_parts(parts: Sequence[RequestedPart]) -> List[RequestedPart]:
    if not parts:
        raise ValueError("At least one part is required to complete an upload")
    seen: set[int] = set()
    for part in parts:
        validate_part_number(part.part_number)
        if part.part_number in seen:
            raise ValueError(f"Part {part.part_number} is listed more than once")
        seen.add(part.part_number)
    return list(parts)


def split_known(
    parts: Iterable[RequestedPart],
) -> Tuple[Dict[int, str], FrozenSet[int]]:
    known: Dict[int, str] = {}
    missing: set[int] = set()
    for part in parts:
        if part.token:
            known[part.part_number] = part.token
        else:
            missing.add(part.part_number)
    return known, frozenset(missing)


def resolve_page(
    missing: FrozenSet[int], page: Iterable[StoredPart]
) -> Tuple[Dict[int, str], FrozenSet[int]]:
    """Match one listing page against the still-missing part numbers.

    Returns the tokens found on this page and the part numbers that remain
    unresolved. Parts not in ``missing`` are ignored.
    """
    found: Dict[int, str] = {}
    for stored in page:
        if stored.part_number in missing and stored.token:
            found[stored.part_number] = stored.token
    return found, missing - found.keys()


def reconcile_parts(
    requested: Sequence[RequestedPart],
    pages: Iterable[Sequence[StoredPart]],
) -> List[ResolvedPart]:
    """Fill missing tokens from listing pages and order parts for finalize.

    ``pages`` is consumed lazily and only while something is still missing,
    so a generator backed by the store is not paged further than needed.
    """
    known, missing = split_known(validate_requested_parts(requested))
    if missing:
        for page in pages:
            found, missing = resolve_page(missing, page)
            known.update(found)
            if not missing:
                break
    if missing:
        raise UnresolvedPartsError(missing)
    return [ResolvedPart(part_number=n, token=known[n]) for n in sorted(known)]
