"""Unit tests for crud/tables.py: schema definitions and constraints"""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel

from pubsync.crud.tables import CategoryRow, PostRow, UserRow


EXPECTED_TABLES = {"posts", "categories", "media", "users", "post_categories", "post_authors"}


def test_all_tables_created(engine):
    """All expected tables are present after SQLModel.metadata.create_all."""
    assert EXPECTED_TABLES.issubset(set(SQLModel.metadata.tables.keys()))


def test_post_slug_unique(session):
    """PostRow raises IntegrityError on duplicate slug."""
    session.add(PostRow(slug="dup", title="One"))
    session.flush()
    session.add(PostRow(slug="dup", title="Two"))
    with pytest.raises(IntegrityError):
        session.flush()


def test_post_links_categories_and_authors(session):
    cat = CategoryRow(title="News", slug="news")
    user = UserRow(name="Ana Pop")
    post = PostRow(slug="a", title="A", categories=[cat], authors=[user])
    session.add(post)
    session.flush()
    session.refresh(cat)
    assert [p.slug for p in cat.posts] == ["a"]
    assert [p.slug for p in user.posts] == ["a"]


def test_category_parent_link(session):
    root = CategoryRow(title="Root", slug="root")
    session.add(root)
    session.flush()
    child = CategoryRow(title="Child", slug="child", parent_id=root.id)
    session.add(child)
    session.flush()
    assert child.parent_id == root.id
