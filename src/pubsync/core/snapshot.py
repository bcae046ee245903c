"""Read-only view of the live store, fetched once at the start of a run"""

import logging
from dataclasses import dataclass
from functools import cached_property

from pubsync.core.errors import StoreUnavailable
from pubsync.core.models import Category, Collection, MediaAsset, Post, User
from pubsync.core.utils.identity import normalize_category_title


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveSnapshot:
    posts: tuple[Post, ...] = ()
    categories: tuple[Category, ...] = ()
    media: tuple[MediaAsset, ...] = ()
    users: tuple[User, ...] = ()

    @classmethod
    def fetch(cls, store) -> "LiveSnapshot":
        """Load every collection from store. Raises StoreUnavailable on any failure."""
        try:
            store.ping()
            snapshot = cls(
                posts=tuple(store.find(Collection.posts)),
                categories=tuple(store.find(Collection.categories)),
                media=tuple(store.find(Collection.media)),
                users=tuple(store.find(Collection.users)),
            )
        except StoreUnavailable:
            raise
        except Exception as e:
            raise StoreUnavailable(f"Live store unavailable: {e}") from e
        logger.info(
            "Live snapshot: %d posts, %d categories, %d media, %d users",
            len(snapshot.posts), len(snapshot.categories), len(snapshot.media), len(snapshot.users),
        )
        return snapshot

    @cached_property
    def category_by_id(self) -> dict[str, Category]:
        return {c.id: c for c in self.categories}

    @cached_property
    def post_by_id(self) -> dict[str, Post]:
        return {p.id: p for p in self.posts}

    def category_keys(self, post: Post) -> set[str]:
        """Normalized titles of the categories a live post is filed under."""
        return {
            normalize_category_title(self.category_by_id[c].title)
            for c in post.categories if c in self.category_by_id
        }
