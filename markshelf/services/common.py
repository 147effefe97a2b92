from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from dateutil import parser as dt_parser


DEFAULT_FOLDER_PATH = "Imported"


def normalize_url(url: str) -> str:
    if not url:
        return ""
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    query_items = sorted(parse_qsl(parsed.query, keep_blank_values=True))
    normalized_query = urlencode(query_items)
    return urlunparse((scheme, netloc, path, "", normalized_query, ""))


def normalize_folder_path(raw: str | None) -> str:
    """Canonical slash-joined form of a folder path, "" when nothing is left."""
    if not raw:
        return ""
    parts = [part.strip() for part in str(raw).split("/")]
    return "/".join(part for part in parts if part)


def folder_path_or_default(raw: str | None) -> str:
    return normalize_folder_path(raw) or DEFAULT_FOLDER_PATH


def parse_client_time(value) -> datetime | None:
    """Parse an ISO 8601 string or an epoch-milliseconds number."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)

    text = str(value).strip()
    try:
        numeric = float(text)
    except ValueError:
        numeric = None
    if numeric is not None:
        return _from_epoch_ms(numeric) if numeric > 0 else None

    try:
        parsed = dt_parser.isoparse(text)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _from_epoch_ms(value: float) -> datetime | None:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
