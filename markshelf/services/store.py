from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from markshelf.extensions import db
from markshelf.models import Bookmark, Category
from markshelf.services.errors import StoreError


class BookmarkStore:
    """Database access used by the ingestion pipeline.

    Every write commits on success and rolls back on failure, so a batch of
    categories or a chunk of bookmarks is stored completely or not at all.
    """

    def __init__(self, session=None):
        self.session = session or db.session

    def find_existing_urls(self, user_id: int, normalized_urls: list[str]) -> set[str]:
        if not normalized_urls:
            return set()
        rows = (
            self.session.query(Bookmark.normalized_url)
            .filter(Bookmark.user_id == user_id)
            .filter(Bookmark.normalized_url.in_(normalized_urls))
            .all()
        )
        return {row.normalized_url for row in rows}

    def load_category_map(self, user_id: int) -> dict[str, int]:
        rows = (
            self.session.query(Category.id, Category.path)
            .filter(Category.user_id == user_id)
            .all()
        )
        return {row.path: row.id for row in rows}

    def find_categories_by_path(self, user_id: int, paths: list[str]) -> dict[str, int]:
        if not paths:
            return {}
        rows = (
            self.session.query(Category.id, Category.path)
            .filter(Category.user_id == user_id)
            .filter(Category.path.in_(paths))
            .all()
        )
        return {row.path: row.id for row in rows}

    def insert_categories(self, records: list[dict]) -> dict[str, int]:
        categories = [Category(**record) for record in records]
        try:
            self.session.add_all(categories)
            self.session.flush()
            created = {category.path: category.id for category in categories}
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(_describe(exc)) from exc
        return created

    def insert_bookmarks(self, records: list[dict]) -> list[int]:
        bookmarks = [Bookmark(**record) for record in records]
        try:
            self.session.add_all(bookmarks)
            self.session.flush()
            ids = [bookmark.id for bookmark in bookmarks]
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StoreError(_describe(exc)) from exc
        return ids


def _describe(exc: SQLAlchemyError) -> str:
    original = getattr(exc, "orig", None)
    message = str(original or exc).strip()
    return message.splitlines()[0] if message else exc.__class__.__name__
