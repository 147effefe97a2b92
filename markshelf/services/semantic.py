from __future__ import annotations

import logging

from markshelf.extensions import db
from markshelf.models import Bookmark, BookmarkEmbedding
from markshelf.services.ai import GeminiClient, cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_MATCH_COUNT = 8


def rank_by_similarity(
    query_vector: list[float],
    rows: list[tuple[Bookmark, list[float]]],
    match_count: int = DEFAULT_MATCH_COUNT,
) -> list[dict]:
    ranked = [
        {"bookmark": bookmark, "similarity": cosine_similarity(query_vector, vector)}
        for bookmark, vector in rows
        if vector
    ]
    ranked.sort(key=lambda item: item["similarity"], reverse=True)
    return ranked[:match_count]


def semantic_search(
    client: GeminiClient,
    user_id: int,
    query: str,
    match_count: int = DEFAULT_MATCH_COUNT,
) -> list[dict]:
    """Bookmarks closest to ``query``; an empty list when anything fails."""
    try:
        query_vector = client.embed_text(query)
        rows = (
            db.session.query(Bookmark, BookmarkEmbedding.embedding)
            .join(BookmarkEmbedding, BookmarkEmbedding.bookmark_id == Bookmark.id)
            .filter(Bookmark.user_id == user_id)
            .all()
        )
    except Exception as exc:
        logger.error("Semantic search error: %s", exc)
        return []
    return rank_by_similarity(
        query_vector, [(bookmark, vector) for bookmark, vector in rows], match_count
    )
