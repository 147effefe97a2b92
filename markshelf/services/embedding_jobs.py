from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from flask import Flask

from markshelf.extensions import db
from markshelf.models import Bookmark, BookmarkEmbedding
from markshelf.services.ai import GeminiClient, bookmark_embedding_text

BACKFILL_BATCH = 50


def start_embedding_job(app: Flask, user_id: int, bookmark_ids: list[int]) -> None:
    """Embed ``bookmark_ids`` on a daemon thread; the caller never waits."""
    ordered_ids = [int(value) for value in dict.fromkeys(bookmark_ids) if value]
    if not ordered_ids:
        return

    worker = threading.Thread(
        target=_run_embedding_job,
        args=(app, user_id, tuple(ordered_ids)),
        daemon=True,
        name=f"embedding-job-{user_id}",
    )
    worker.start()


def _run_embedding_job(app: Flask, user_id: int, bookmark_ids: tuple[int, ...]) -> None:
    with app.app_context():
        db.session.remove()
        try:
            bookmarks = (
                Bookmark.query.filter_by(user_id=user_id)
                .filter(Bookmark.id.in_(bookmark_ids))
                .all()
            )
            embed_bookmarks(app, bookmarks)
        except Exception as exc:
            db.session.rollback()
            app.logger.warning("Embedding job for user %s failed: %s", user_id, exc)
        finally:
            db.session.remove()


def run_embedding_backfill(app: Flask) -> int:
    with app.app_context():
        bookmarks = (
            Bookmark.query.outerjoin(BookmarkEmbedding)
            .filter(BookmarkEmbedding.id.is_(None))
            .order_by(Bookmark.created_at.asc())
            .limit(BACKFILL_BATCH)
            .all()
        )
        return embed_bookmarks(app, bookmarks)


def store_embedding(bookmark: Bookmark, vector: list[float], model: str) -> None:
    row = bookmark.embedding or BookmarkEmbedding(bookmark_id=bookmark.id)
    row.embedding = vector
    row.model = model
    bookmark.embedding = row
    db.session.add(row)


def embed_bookmarks(app: Flask, bookmarks: list[Bookmark]) -> int:
    """Embed and store each bookmark; failures are logged, never raised."""
    if not bookmarks:
        return 0

    client = GeminiClient.from_config(app.config)
    worker_count = int(app.config.get("EMBEDDING_WORKERS", 4))
    worker_count = max(1, min(worker_count, 16))
    by_id = {bookmark.id: bookmark for bookmark in bookmarks}
    stored = 0

    with ThreadPoolExecutor(max_workers=worker_count) as executor:
        futures = {
            executor.submit(
                client.embed_text,
                bookmark_embedding_text(
                    bookmark.title, bookmark.url, bookmark.description
                ),
            ): bookmark.id
            for bookmark in bookmarks
        }

        for future in as_completed(futures):
            bookmark_id = futures[future]
            try:
                vector = future.result()
                store_embedding(by_id[bookmark_id], vector, client.embed_model)
                db.session.commit()
                stored += 1
            except Exception as exc:
                db.session.rollback()
                app.logger.warning(
                    "Failed to embed bookmark %s: %s",
                    bookmark_id,
                    exc,
                )
    return stored
