from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; Markshelf/1.0)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

DEFAULT_TIMEOUT = 12.0
DEFAULT_MAX_BYTES = 1_500_000


@dataclass
class PageMetadata:
    title: str
    description: str
    favicon: str | None = None


def fetch_html(url: str, timeout: float, max_bytes: int) -> tuple[str, str]:
    with httpx.Client(
        follow_redirects=True, timeout=timeout, headers=DEFAULT_HEADERS
    ) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            chunks = []
            total = 0
            for chunk in response.iter_bytes():
                total += len(chunk)
                if total > max_bytes:
                    break
                chunks.append(chunk)
            data = b"".join(chunks)
            encoding = response.encoding or "utf-8"
            return data.decode(encoding, errors="ignore"), str(response.url)


def _meta_content(soup: BeautifulSoup, **attrs) -> str | None:
    tag = soup.find("meta", attrs=attrs)
    if isinstance(tag, Tag):
        content = tag.get("content")
        if isinstance(content, str) and content.strip():
            return content.strip()
    return None


def _favicon_href(soup: BeautifulSoup) -> str | None:
    for link in soup.find_all("link"):
        if not isinstance(link, Tag):
            continue
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if "icon" in {value.lower() for value in rel}:
            href = link.get("href")
            if isinstance(href, str) and href.strip():
                return href.strip()
    return None


def extract_metadata(html: str, url: str) -> PageMetadata:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(html, "lxml")

    title = _meta_content(soup, property="og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip()

    description = (
        _meta_content(soup, property="og:description")
        or _meta_content(soup, name="description")
        or ""
    )

    favicon = _favicon_href(soup)
    return PageMetadata(
        title=title or url,
        description=description,
        favicon=urljoin(url, favicon) if favicon else None,
    )


def fetch_page_metadata(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
) -> PageMetadata:
    """Best-effort title, description and favicon for ``url``.

    Never raises: network or parse failures fall back to the URL as title.
    """
    try:
        html, final_url = fetch_html(url, timeout=timeout, max_bytes=max_bytes)
        return extract_metadata(html, final_url)
    except Exception as exc:
        logger.warning("Failed to fetch metadata for %s: %s", url, exc)
        return PageMetadata(title=url, description="")
