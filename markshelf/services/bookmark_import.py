from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union, cast

from bs4 import BeautifulSoup, Tag

from markshelf.services.common import DEFAULT_FOLDER_PATH
from markshelf.services.ingest import IngestBookmark

UPLOAD_SOURCE = "upload"


@dataclass
class ParsedLink:
    title: str
    href: str
    add_date: str | None = None
    icon: str | None = None


@dataclass
class ParsedFolder:
    name: str
    children: list[Union["ParsedFolder", ParsedLink]] = field(default_factory=list)


def _iter_dt_entries(dl: Tag) -> list[Tag]:
    entries: list[Tag] = []
    for dt in dl.find_all("dt"):
        if not isinstance(dt, Tag):
            continue
        parent_dl = dt.find_parent("dl")
        if parent_dl is dl:
            entries.append(cast(Tag, dt))
    return entries


def _find_nested_dl(dt: Tag) -> Tag | None:
    nested = dt.find("dl")
    if isinstance(nested, Tag):
        return nested

    sibling = dt.next_sibling
    while sibling is not None:
        if isinstance(sibling, Tag):
            name = (sibling.name or "").lower()
            if name == "dl":
                return sibling
            if name == "dt":
                return None
        sibling = sibling.next_sibling
    return None


def _find_anchor_in_dt(dt: Tag) -> Tag | None:
    for anchor in dt.find_all("a"):
        if isinstance(anchor, Tag) and anchor.find_parent("dt") is dt:
            return anchor
    return None


def _find_folder_in_dt(dt: Tag) -> Tag | None:
    for folder in dt.find_all(["h3", "h2", "h1"]):
        if isinstance(folder, Tag) and folder.find_parent("dt") is dt:
            return folder
    return None


def _attr(tag: Tag, name: str) -> str | None:
    value = tag.get(name)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _find_any_heading(dt: Tag) -> Tag | None:
    for heading in dt.find_all(["h3", "h2", "h1"]):
        if isinstance(heading, Tag):
            return heading
    return None


def _parse_dl(dl: Tag, claimed: set[int] | None = None) -> list[ParsedFolder | ParsedLink]:
    # lxml nests an unclosed <DT><H3> inside the previous link's <DT> and
    # leaves the folder's <DL> as that outer <DT>'s sibling. ``claimed``
    # holds the ids of headings already attached to a list.
    claimed = set() if claimed is None else claimed
    items: list[ParsedFolder | ParsedLink] = []
    for dt in _iter_dt_entries(dl):
        anchor = _find_anchor_in_dt(dt)
        href = _attr(anchor, "href") if isinstance(anchor, Tag) else None
        if isinstance(anchor, Tag) and href:
            items.append(
                ParsedLink(
                    title=anchor.get_text(strip=True),
                    href=href,
                    add_date=_attr(anchor, "add_date"),
                    icon=_attr(anchor, "icon"),
                )
            )

        nested_dl = _find_nested_dl(dt)
        folder = _find_folder_in_dt(dt)
        if folder is None and nested_dl is not None:
            folder = _find_any_heading(dt)

        if folder is None or nested_dl is None or id(folder) in claimed:
            continue
        claimed.add(id(folder))
        items.append(
            ParsedFolder(
                name=folder.get_text(strip=True),
                children=_parse_dl(nested_dl, claimed),
            )
        )
    return items


def parse_bookmark_html(html: str) -> list[ParsedFolder | ParsedLink]:
    """Parse a Netscape bookmark export into a tree of folders and links."""
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    root = soup.find("dl")
    if not isinstance(root, Tag):
        return []
    return _parse_dl(root)


def _epoch_seconds_to_ms(value: str | None) -> int | None:
    if not value or not value.isdigit():
        return None
    return int(value) * 1000


def flatten_bookmark_tree(
    items: list[ParsedFolder | ParsedLink],
    path_prefix: list[str] | None = None,
) -> list[IngestBookmark]:
    prefix = path_prefix or []
    flattened: list[IngestBookmark] = []
    for item in items:
        if isinstance(item, ParsedFolder):
            flattened.extend(flatten_bookmark_tree(item.children, prefix + [item.name]))
            continue
        flattened.append(
            IngestBookmark(
                url=item.href,
                title=item.title or item.href,
                folder_path="/".join(prefix) or DEFAULT_FOLDER_PATH,
                description=item.title or "",
                source=UPLOAD_SOURCE,
                date_added=_epoch_seconds_to_ms(item.add_date),
            )
        )
    return flattened
