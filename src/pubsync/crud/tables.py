"""Database table definitions for posts, categories, media and authors"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, String, Text
from sqlmodel import Field, Relationship, SQLModel

from pubsync.core.utils.slug import SLUG_MAX_LENGTH


class PostCategoryLink(SQLModel, table=True):
    """Many-to-many relationship between posts and categories"""
    __tablename__ = "post_categories"
    post_id: int = Field(foreign_key="posts.id", primary_key=True)
    category_id: int = Field(foreign_key="categories.id", primary_key=True)


class PostAuthorLink(SQLModel, table=True):
    """Many-to-many relationship between posts and their authors"""
    __tablename__ = "post_authors"
    post_id: int = Field(foreign_key="posts.id", primary_key=True)
    user_id: int = Field(foreign_key="users.id", primary_key=True)


class UserRow(SQLModel, table=True):
    __tablename__ = "users"
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(..., index=True, nullable=False)
    posts: List["PostRow"] = Relationship(back_populates="authors", link_model=PostAuthorLink)


class CategoryRow(SQLModel, table=True):
    """A category; parent links form the (acyclic) category tree"""
    __tablename__ = "categories"
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(..., index=True, nullable=False)
    slug: str = Field(default="", sa_column=Column(String(SLUG_MAX_LENGTH), nullable=False))
    parent_id: Optional[int] = Field(default=None, foreign_key="categories.id", nullable=True)
    posts: List["PostRow"] = Relationship(back_populates="categories", link_model=PostCategoryLink)


class MediaRow(SQLModel, table=True):
    """An uploaded media asset"""
    __tablename__ = "media"
    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str = Field(..., index=True, nullable=False)
    url: str = Field(default="", sa_column=Column(Text, nullable=False))
    width: Optional[int] = Field(default=None)
    height: Optional[int] = Field(default=None)
    file_size_bytes: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


class PostRow(SQLModel, table=True):
    """A published article"""
    __tablename__ = "posts"
    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(..., sa_column=Column(String(SLUG_MAX_LENGTH), unique=True, index=True, nullable=False))
    title: str = Field(..., sa_column=Column(Text, nullable=False))
    body_html: str = Field(default="", sa_column=Column(Text, nullable=False))
    published_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), nullable=True))
    hero_image_id: Optional[int] = Field(default=None, foreign_key="media.id", nullable=True)
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    categories: List[CategoryRow] = Relationship(back_populates="posts", link_model=PostCategoryLink)
    authors: List[UserRow] = Relationship(back_populates="posts", link_model=PostAuthorLink)
