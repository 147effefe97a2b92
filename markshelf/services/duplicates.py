from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from markshelf.services.common import normalize_url

DUPLICATE_CHECK_CHUNK = 200

FindExisting = Callable[[int, list[str]], Iterable[str]]


@dataclass
class DuplicatePartition:
    fresh: list[str] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    repeated: list[str] = field(default_factory=list)


def dedupe_batch(urls: Iterable[str]) -> tuple[list[str], list[str]]:
    """First occurrence of each normalized URL wins; the rest are repeats."""
    seen: set[str] = set()
    unique: list[str] = []
    repeated: list[str] = []
    for url in urls:
        key = normalize_url(url)
        if key in seen:
            repeated.append(url)
            continue
        seen.add(key)
        unique.append(url)
    return unique, repeated


def partition_duplicates(
    user_id: int,
    urls: Iterable[str],
    find_existing: FindExisting,
    chunk_size: int = DUPLICATE_CHECK_CHUNK,
) -> DuplicatePartition:
    unique, repeated = dedupe_batch(urls)
    keys = [normalize_url(url) for url in unique]

    existing: set[str] = set()
    step = max(1, min(chunk_size, DUPLICATE_CHECK_CHUNK))
    for i in range(0, len(keys), step):
        existing.update(find_existing(user_id, keys[i : i + step]))

    partition = DuplicatePartition(repeated=repeated)
    for url, key in zip(unique, keys):
        if key in existing:
            partition.duplicates.append(url)
        else:
            partition.fresh.append(url)
    return partition
