from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from markshelf.models import utcnow
from markshelf.services.bulk_insert import INSERT_CHUNK, insert_chunked
from markshelf.services.categories import ensure_categories
from markshelf.services.common import (
    folder_path_or_default,
    normalize_url,
    parse_client_time,
)
from markshelf.services.duplicates import DUPLICATE_CHECK_CHUNK, partition_duplicates
from markshelf.services.errors import EmptyBatchError, InvalidPayload, InvalidURL
from markshelf.services.validation import validate_url

logger = logging.getLogger(__name__)

DEFAULT_SOURCE = "import"

_FIELD_ALIASES = {
    "url": "url",
    "title": "title",
    "folderPath": "folder_path",
    "folder_path": "folder_path",
    "description": "description",
    "faviconUrl": "favicon_url",
    "favicon_url": "favicon_url",
    "source": "source",
    "isRead": "is_read",
    "is_read": "is_read",
    "dateAdded": "date_added",
    "date_added": "date_added",
    "dateGroupModified": "date_group_modified",
    "date_group_modified": "date_group_modified",
}

_STRING_FIELDS = {"title", "folder_path", "description", "favicon_url", "source"}
_DATE_FIELDS = {"date_added", "date_group_modified"}


@dataclass
class IngestBookmark:
    url: str
    title: str | None = None
    folder_path: str | None = None
    description: str | None = None
    favicon_url: str | None = None
    source: str | None = None
    is_read: bool | None = None
    date_added: str | int | float | datetime | None = None
    date_group_modified: str | int | float | datetime | None = None

    @classmethod
    def from_dict(cls, payload) -> "IngestBookmark":
        if not isinstance(payload, dict):
            raise InvalidPayload("bookmark entries must be objects")

        values: dict = {}
        for key, value in payload.items():
            name = _FIELD_ALIASES.get(key)
            if name is None:
                raise InvalidPayload(f"unknown bookmark field: {key}")
            if value is None:
                continue
            if name == "url" and not isinstance(value, str):
                raise InvalidPayload("url must be a string")
            if name in _STRING_FIELDS and not isinstance(value, str):
                raise InvalidPayload(f"{key} must be a string")
            if name == "is_read" and not isinstance(value, bool):
                raise InvalidPayload(f"{key} must be a boolean")
            if name in _DATE_FIELDS and (
                isinstance(value, bool) or not isinstance(value, (str, int, float))
            ):
                raise InvalidPayload(f"{key} must be an ISO date string or a number")
            values[name] = value

        # A missing or null url is kept as "" so the pipeline counts it as one
        # failed record, the same as a blank one.
        values.setdefault("url", "")
        return cls(**values)


def parse_ingest_payload(items) -> list[IngestBookmark]:
    if not isinstance(items, list):
        raise InvalidPayload("bookmarks must be a list")
    parsed: list[IngestBookmark] = []
    for index, item in enumerate(items):
        try:
            parsed.append(IngestBookmark.from_dict(item))
        except InvalidPayload as exc:
            raise InvalidPayload(f"bookmarks[{index}]: {exc}") from exc
    return parsed


@dataclass
class IngestResult:
    imported: int = 0
    failed: int = 0
    duplicates: list[dict] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    bookmark_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "imported": self.imported,
            "failed": self.failed,
            "duplicates": list(self.duplicates),
            "errors": list(self.errors),
        }


def _timestamp(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return parse_client_time(value) or utcnow()


def build_bookmark_record(
    user_id: int,
    entry: IngestBookmark,
    folder_path: str,
    category_id: int | None,
) -> dict:
    url = entry.url.strip()
    return {
        "user_id": user_id,
        "title": (entry.title or "").strip() or url,
        "url": url,
        "normalized_url": normalize_url(url),
        "description": entry.description or "",
        "favicon_url": entry.favicon_url or None,
        "category_id": category_id,
        "folder_path": folder_path,
        "source": entry.source or DEFAULT_SOURCE,
        "is_read": bool(entry.is_read),
        "created_at": _timestamp(entry.date_added),
        "updated_at": _timestamp(entry.date_group_modified),
    }


def ingest_bookmarks(
    user_id: int,
    bookmarks: list[IngestBookmark],
    store,
    duplicate_chunk: int = DUPLICATE_CHECK_CHUNK,
    insert_chunk: int = INSERT_CHUNK,
) -> IngestResult:
    """Validate, deduplicate, categorize and store a batch of bookmarks.

    Per-record problems (bad URLs, category or chunk write failures) are
    counted in the returned result. Only an empty batch or a store failure
    before anything was written raises.
    """
    if not bookmarks:
        raise EmptyBatchError()

    result = IngestResult()

    valid: list[IngestBookmark] = []
    for entry in bookmarks:
        try:
            validate_url(entry.url)
        except InvalidURL:
            result.failed += 1
            result.errors.append(f"Invalid URL: {entry.url}")
            continue
        valid.append(entry)

    first_by_key: dict[str, IngestBookmark] = {}
    for entry in valid:
        first_by_key.setdefault(normalize_url(entry.url), entry)

    partition = partition_duplicates(
        user_id,
        [entry.url for entry in valid],
        store.find_existing_urls,
        chunk_size=duplicate_chunk,
    )
    result.duplicates = [{"url": url} for url in partition.duplicates]
    to_insert = [first_by_key[normalize_url(url)] for url in partition.fresh]

    if partition.repeated:
        logger.debug(
            "Dropped %s repeated URLs from batch for user %s",
            len(partition.repeated),
            user_id,
        )
    if not to_insert:
        return result

    folder_paths = [folder_path_or_default(entry.folder_path) for entry in to_insert]
    category_map, category_errors = ensure_categories(
        user_id,
        folder_paths,
        store.load_category_map(user_id),
        store.insert_categories,
        recover=lambda missing: store.find_categories_by_path(user_id, missing),
    )
    result.errors.extend(category_errors)

    records = [
        build_bookmark_record(user_id, entry, path, category_map.get(path))
        for entry, path in zip(to_insert, folder_paths)
    ]
    report = insert_chunked(records, store.insert_bookmarks, chunk_size=insert_chunk)
    result.imported += report.imported
    result.failed += report.failed
    result.errors.extend(report.errors)
    result.bookmark_ids.extend(report.ids)

    logger.info(
        "Ingested bookmarks for user %s: imported=%s failed=%s duplicates=%s",
        user_id,
        result.imported,
        result.failed,
        len(result.duplicates),
    )
    return result
