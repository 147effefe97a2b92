from __future__ import annotations

import logging
from itertools import combinations

from markshelf.extensions import db
from markshelf.models import Bookmark
from markshelf.services.ai import (
    GeminiClient,
    bookmark_embedding_text,
    cosine_similarity,
)
from markshelf.services.bulk_insert import chunked
from markshelf.services.errors import AIServiceError

logger = logging.getLogger(__name__)

DEFAULT_ORGANIZE_LIMIT = 100
MAX_ORGANIZE_LIMIT = 200
DUPLICATE_SIMILARITY = 0.92
ENRICH_CHUNK = 10


def organize_limit(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return DEFAULT_ORGANIZE_LIMIT
    return min(value, MAX_ORGANIZE_LIMIT)


def summary_input(bookmark: Bookmark) -> dict:
    return {
        "id": bookmark.id,
        "title": bookmark.title,
        "description": bookmark.description,
        "url": bookmark.url,
    }


def _vector_for(client: GeminiClient, bookmark: Bookmark) -> list[float] | None:
    if bookmark.embedding is not None and bookmark.embedding.embedding:
        return bookmark.embedding.embedding
    try:
        return client.embed_text(
            bookmark_embedding_text(bookmark.title, bookmark.url, bookmark.description)
        )
    except AIServiceError as exc:
        logger.warning("Skipping bookmark %s in duplicate scan: %s", bookmark.id, exc)
        return None


def suggest_duplicates(
    client: GeminiClient,
    bookmarks: list[Bookmark],
    threshold: float = DUPLICATE_SIMILARITY,
) -> list[dict]:
    """Pairs of bookmarks whose embeddings are at least ``threshold`` similar."""
    if len(bookmarks) < 2:
        return []

    vectors = []
    for bookmark in bookmarks:
        vector = _vector_for(client, bookmark)
        if vector:
            vectors.append((bookmark.id, vector))

    suggestions = []
    for (first_id, first), (second_id, second) in combinations(vectors, 2):
        score = cosine_similarity(first, second)
        if score >= threshold:
            suggestions.append(
                {"first_id": first_id, "second_id": second_id, "score": score}
            )
    suggestions.sort(key=lambda item: item["score"], reverse=True)
    return suggestions


def description_with_tags(summary: str, tags: list[str]) -> str:
    if not tags:
        return summary
    return f"{summary}\n\nTags: {', '.join(tags)}"


def enrich_bookmarks(
    client: GeminiClient,
    bookmarks: list[Bookmark],
    chunk_size: int = ENRICH_CHUNK,
) -> tuple[int, list[str]]:
    """Rewrite descriptions from AI summaries and tags, ``chunk_size`` at a time.

    A chunk the model fails on is reported and skipped; the rest still run.
    Returns the number of updated bookmarks and the collected errors.
    """
    by_id = {bookmark.id: bookmark for bookmark in bookmarks}
    updated = 0
    errors: list[str] = []

    for index, chunk in enumerate(chunked(bookmarks, chunk_size), start=1):
        try:
            results = client.enrich_bookmarks([summary_input(b) for b in chunk])
        except AIServiceError as exc:
            errors.append(f"Enrichment chunk {index} failed: {exc}")
            continue

        for item in results:
            bookmark = by_id[item["id"]]
            bookmark.description = description_with_tags(item["summary"], item["tags"])
            updated += 1
        db.session.commit()

    logger.info("Enriched %s of %s bookmarks", updated, len(bookmarks))
    return updated, errors
