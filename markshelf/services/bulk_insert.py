from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from markshelf.services.errors import InsertChunkFailed

logger = logging.getLogger(__name__)

INSERT_CHUNK = 100

InsertRecords = Callable[[list[dict]], Sequence[int] | None]


@dataclass
class ChunkReport:
    imported: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    ids: list[int] = field(default_factory=list)


def chunked(records: Sequence, size: int) -> list[list]:
    step = max(1, size)
    return [list(records[i : i + step]) for i in range(0, len(records), step)]


def insert_chunked(
    records: Sequence[dict],
    insert: InsertRecords,
    chunk_size: int = INSERT_CHUNK,
) -> ChunkReport:
    """Write ``records`` chunk by chunk; a failed chunk never stops the rest."""
    report = ChunkReport()
    for index, chunk in enumerate(chunked(records, chunk_size), start=1):
        try:
            ids = insert(chunk)
        except Exception as exc:
            failure = InsertChunkFailed(index, len(chunk), exc)
            logger.warning("%s (%s records)", failure, len(chunk))
            report.failed += len(chunk)
            report.errors.append(str(failure))
            continue
        report.imported += len(chunk)
        report.ids.extend(ids or [])
    return report
