"""SQLModel-backed LiveStore"""

import threading
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from pubsync.core.errors import EntityNotFound, StoreUnavailable
from pubsync.core.models import Category, Collection, LiveEntity, MediaAsset, Post, User
from pubsync.crud.repo import LiveStore, matches_filter
from pubsync.crud.tables import CategoryRow, MediaRow, PostRow, UserRow


ROW_TYPES = {
    Collection.posts: PostRow,
    Collection.categories: CategoryRow,
    Collection.media: MediaRow,
    Collection.users: UserRow,
}

# Entity field -> row column, where the names differ.
COLUMN_NAMES = {
    Collection.categories: {"parent": "parent_id"},
    Collection.posts: {"hero_image": "hero_image_id"},
}


def _sid(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


def _iid(value: Optional[str]) -> Optional[int]:
    return None if value is None else int(value)


def _row_to_entity(collection: Collection, row) -> LiveEntity:
    if collection is Collection.posts:
        return Post(
            id=str(row.id),
            slug=row.slug,
            title=row.title,
            body_html=row.body_html,
            published_at=row.published_at,
            categories=[str(c.id) for c in row.categories],
            hero_image=_sid(row.hero_image_id),
            authors=[str(u.id) for u in row.authors],
            created_at=row.created_at,
        )
    if collection is Collection.categories:
        return Category(id=str(row.id), title=row.title, slug=row.slug, parent=_sid(row.parent_id))
    if collection is Collection.media:
        return MediaAsset(
            id=str(row.id), filename=row.filename, url=row.url,
            width=row.width, height=row.height, file_size_bytes=row.file_size_bytes,
        )
    return User(id=str(row.id), name=row.name)


class SQLStore(LiveStore):
    """LiveStore over one Session; each mutation is committed on its own.

    Access is serialized with a lock so the batch applier may call it from
    worker threads.
    """

    def __init__(self, session: Session):
        self.session = session
        self._lock = threading.RLock()

    def ping(self) -> None:
        try:
            with self._lock:
                self.session.connection().execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Database unreachable: {e}") from e

    def _get_row(self, collection: Collection, id: str):
        row = None
        try:
            row = self.session.get(ROW_TYPES[collection], int(id))
        except ValueError:
            pass
        if row is None:
            raise EntityNotFound(collection.value, id)
        return row

    def _link_rows(self, collection: Collection, ids: list[str]) -> list:
        return [self._get_row(collection, i) for i in dict.fromkeys(ids)]

    def _assign(self, collection: Collection, row, payload: dict[str, Any]) -> None:
        renames = COLUMN_NAMES.get(collection, {})
        with self.session.no_autoflush:
            for name, value in payload.items():
                if collection is Collection.posts and name == "categories":
                    row.categories = self._link_rows(Collection.categories, value)
                elif collection is Collection.posts and name == "authors":
                    row.authors = self._link_rows(Collection.users, value)
                elif name in renames:
                    setattr(row, renames[name], _iid(value))
                elif name != "id":
                    setattr(row, name, value)
        if collection is Collection.posts:
            row.updated_at = datetime.now()

    def _commit(self, collection: Collection, row) -> LiveEntity:
        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(row)
        return _row_to_entity(collection, row)

    def find(self, collection: Collection, filter: Optional[dict[str, Any]] = None) -> list[LiveEntity]:
        row_type = ROW_TYPES[collection]
        renames = COLUMN_NAMES.get(collection, {})
        stmt = select(row_type)
        rest: dict[str, Any] = {}
        for name, value in (filter or {}).items():
            column = renames.get(name, name)
            if name in ("categories", "authors") or not hasattr(row_type, column):
                rest[name] = value
                continue
            if column == "id" or column in renames.values():
                try:
                    value = _iid(value)
                except ValueError:
                    return []
            stmt = stmt.where(getattr(row_type, column) == value)
        with self._lock:
            rows = self.session.exec(stmt.order_by(row_type.id)).all()
            entities = [_row_to_entity(collection, r) for r in rows]
        return [e for e in entities if matches_filter(e, rest)]

    def create(self, collection: Collection, payload: dict[str, Any]) -> LiveEntity:
        with self._lock:
            row = ROW_TYPES[collection]()
            try:
                self._assign(collection, row, payload)
            except Exception:
                self.session.rollback()
                raise
            return self._commit(collection, row)

    def update(self, collection: Collection, id: str, payload: dict[str, Any]) -> LiveEntity:
        with self._lock:
            row = self._get_row(collection, id)
            try:
                self._assign(collection, row, payload)
            except Exception:
                self.session.rollback()
                raise
            return self._commit(collection, row)

    def delete(self, collection: Collection, id: str) -> None:
        with self._lock:
            row = self._get_row(collection, id)
            try:
                if collection is Collection.categories:
                    row.posts = []
                    for child in self.session.exec(select(CategoryRow).where(CategoryRow.parent_id == row.id)).all():
                        child.parent_id = None
                        self.session.add(child)
                elif collection is Collection.media:
                    for post in self.session.exec(select(PostRow).where(PostRow.hero_image_id == row.id)).all():
                        post.hero_image_id = None
                        self.session.add(post)
                elif collection is Collection.posts:
                    row.categories = []
                    row.authors = []
                self.session.delete(row)
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
