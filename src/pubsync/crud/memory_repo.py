"""In-process LiveStore used for tests and dry runs"""

import itertools
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

from pubsync.core.errors import EntityNotFound
from pubsync.core.models import ENTITY_TYPES, Category, Collection, LiveEntity, Post
from pubsync.crud.repo import LiveStore, matches_filter


@dataclass
class MemoryStore(LiveStore):
    _data: dict[Collection, dict[str, LiveEntity]] = field(
        default_factory=lambda: {c: {} for c in Collection}
    )
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))
    _lock: threading.RLock = field(default_factory=threading.RLock)

    def find(self, collection: Collection, filter: Optional[dict[str, Any]] = None) -> list[LiveEntity]:
        with self._lock:
            found = [e for e in self._data[collection].values() if matches_filter(e, filter or {})]
            return [e.model_copy(deep=True) for e in found]

    def get(self, collection: Collection, id: str) -> LiveEntity:
        with self._lock:
            try:
                return self._data[collection][id].model_copy(deep=True)
            except KeyError:
                raise EntityNotFound(collection.value, id) from None

    def create(self, collection: Collection, payload: dict[str, Any]) -> LiveEntity:
        with self._lock:
            if collection is Collection.posts and self.find(Collection.posts, {"slug": payload.get("slug")}):
                raise ValueError(f"post slug already exists: {payload.get('slug')}")
            new_id = str(next(self._ids))
            while new_id in self._data[collection]:
                new_id = str(next(self._ids))
            entity = ENTITY_TYPES[collection](**{**payload, "id": new_id})
            self._data[collection][entity.id] = entity
            return entity.model_copy(deep=True)

    def update(self, collection: Collection, id: str, payload: dict[str, Any]) -> LiveEntity:
        with self._lock:
            current = self._data[collection].get(id)
            if current is None:
                raise EntityNotFound(collection.value, id)
            updated = type(current).model_validate({**current.model_dump(), **payload, "id": id})
            self._data[collection][id] = updated
            return updated.model_copy(deep=True)

    def delete(self, collection: Collection, id: str) -> None:
        with self._lock:
            if self._data[collection].pop(id, None) is None:
                raise EntityNotFound(collection.value, id)
            if collection is Collection.categories:
                for post in self._data[Collection.posts].values():
                    if id in post.categories:
                        post.categories = [c for c in post.categories if c != id]
                for cat in self._data[Collection.categories].values():
                    if cat.parent == id:
                        cat.parent = None
            elif collection is Collection.media:
                for post in self._data[Collection.posts].values():
                    if post.hero_image == id:
                        post.hero_image = None

    # --- seeding helpers ---

    def add(self, entity: LiveEntity) -> LiveEntity:
        """Insert a fully-formed entity (keeps its id). Used to seed state."""
        collection = next(c for c, t in ENTITY_TYPES.items() if isinstance(entity, t))
        with self._lock:
            self._data[collection][entity.id] = entity.model_copy(deep=True)
        return entity

    def posts(self) -> list[Post]:
        return self.find(Collection.posts)

    def categories(self) -> list[Category]:
        return self.find(Collection.categories)
