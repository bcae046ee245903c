"""LiveStore: the adapter contract the engine uses for all live-state access"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pubsync.core.models import Collection, LiveEntity


def matches_filter(entity: LiveEntity, filter: dict[str, Any]) -> bool:
    """Field equality; a scalar filter value on a list field means membership."""
    for name, expected in filter.items():
        actual = getattr(entity, name, None)
        if isinstance(actual, list) and not isinstance(expected, list):
            if expected not in actual:
                return False
        elif actual != expected:
            return False
    return True


class LiveStore(ABC):
    """Sole source of truth for current state; never cached across runs.

    Payload keys mirror the entity fields (e.g. posts take 'categories' as a
    list of category ids and 'hero_image' as a media id or None).
    """

    @abstractmethod
    def find(self, collection: Collection, filter: Optional[dict[str, Any]] = None) -> list[LiveEntity]:
        """Return entities whose fields equal every filter value (all entities if no filter)."""
        raise NotImplementedError

    @abstractmethod
    def create(self, collection: Collection, payload: dict[str, Any]) -> LiveEntity:
        raise NotImplementedError

    @abstractmethod
    def update(self, collection: Collection, id: str, payload: dict[str, Any]) -> LiveEntity:
        """Apply a partial update. Raises EntityNotFound for an unknown id."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: Collection, id: str) -> None:
        """Delete an entity and detach references to it. Raises EntityNotFound."""
        raise NotImplementedError

    def ping(self) -> None:
        """Raise if the store cannot be reached."""
        self.find(Collection.users, {"id": "__ping__"})
