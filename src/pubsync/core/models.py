"""Source-record and live-entity models shared by the sync stages"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from pubsync.core.utils.identity import media_filename


class Collection(str, Enum):
    """Live-store collections the engine reads or writes"""
    posts = "posts"
    categories = "categories"
    media = "media"
    users = "users"


# --- source records (rebuilt from the export on every run) ---

class Article(BaseModel):
    """A published post from the export."""
    kind: Literal["article"] = "article"
    external_id: str
    title: str
    slug: str
    published_at: datetime
    author_name: Optional[str] = None
    body_html: str = ""
    category_names: list[str] = []          # display names, ordered, de-duplicated
    hero_attachment_ref: Optional[str] = None


class CategoryRef(BaseModel):
    """A category name seen in the export; hierarchy is not trusted."""
    kind: Literal["category"] = "category"
    external_name: str


class Attachment(BaseModel):
    """An uploaded file from the export."""
    kind: Literal["attachment"] = "attachment"
    external_id: str
    source_url: str
    width: Optional[int] = None
    height: Optional[int] = None
    file_size_bytes: Optional[int] = None

    @property
    def filename(self) -> str:
        return media_filename(self.source_url)


SourceRecord = Annotated[Union[Article, CategoryRef, Attachment], Field(discriminator="kind")]


def record_label(record) -> str:
    """Human-readable identifier used in reports (slug, title or filename)."""
    if isinstance(record, Article):
        return record.slug or record.external_id
    if isinstance(record, CategoryRef):
        return record.external_name
    return record.filename or record.external_id


# --- live entities (durable, owned by the store) ---

class Post(BaseModel):
    id: str
    slug: str
    title: str
    body_html: str = ""
    published_at: Optional[datetime] = None
    categories: list[str] = []
    hero_image: Optional[str] = None
    authors: list[str] = []
    created_at: datetime = Field(default_factory=datetime.now)


class Category(BaseModel):
    id: str
    title: str
    slug: str = ""
    parent: Optional[str] = None


class MediaAsset(BaseModel):
    id: str
    filename: str
    url: str = ""
    width: Optional[int] = None
    height: Optional[int] = None
    file_size_bytes: Optional[int] = None

    @property
    def pixels(self) -> Optional[int]:
        if self.width and self.height:
            return self.width * self.height
        return None


class User(BaseModel):
    id: str
    name: str


LiveEntity = Union[Post, Category, MediaAsset, User]

ENTITY_TYPES: dict[Collection, type[BaseModel]] = {
    Collection.posts: Post,
    Collection.categories: Category,
    Collection.media: MediaAsset,
    Collection.users: User,
}
