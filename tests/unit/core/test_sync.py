"""End-to-end sync runs over the in-memory store"""

import threading

import pytest

from pubsync.core.errors import StoreUnavailable
from pubsync.core.models import Category, Collection, MediaAsset, Post, User
from pubsync.core.pipeline import build_sync_plan, prune, run_sync
from pubsync.crud.memory_repo import MemoryStore


@pytest.fixture(name="export")
def export_fixture(builder):
    return (
        builder
        .category("News")
        .category("Sport")
        .attachment("20", "https://example.org/uploads/cover.jpg", width=800, height=600, filesize=5000)
        .attachment("21", "https://example.org/uploads/unused.jpg")
        .post("1", "Ziua în care am plecat", "ziua-%c3%aen-care-am-plecat", categories=["News"], thumbnail="20")
        .post("2", "Second", "second", categories=["news", "Sport"], creator="Ana Pop")
        .post("3", "Third", "third")
        .build()
    )


def test_first_run_creates_everything(export, store, uploader, settings):
    store.add(User(id="u1", name="Ana Pop"))
    report = run_sync(export, store, uploader, settings)

    assert report.errors == []
    assert report.created == 2 + 1 + 3
    assert report.skipped == 1                  # unreferenced attachment
    assert not report.fatal
    assert report.finished_at is not None

    posts = {p.slug: p for p in store.posts()}
    assert set(posts) == {"ziua-in-care-am-plecat", "second", "third"}
    [cover] = store.find(Collection.media)
    assert posts["ziua-in-care-am-plecat"].hero_image == cover.id
    assert posts["second"].authors == ["u1"]
    assert len(posts["second"].categories) == 2


def test_second_run_is_a_fixed_point(export, store, uploader, settings, fetcher):
    """Re-planning after a successful apply yields only skips."""
    run_sync(export, store, uploader, settings)
    downloads = len(fetcher.calls)

    _, plan = build_sync_plan(export, store, settings)
    assert plan.is_fixed_point

    report = run_sync(export, store, uploader, settings)
    assert (report.created, report.updated, report.relinked) == (0, 0, 0)
    assert len(fetcher.calls) == downloads


def test_existing_category_and_missing_hero(builder, store, uploader, settings):
    """Article 2128 'foo' filed under existing 'Har peste Har', hero 77 not in the export."""
    store.add(Category(id="5", title="Har peste Har", slug="har-peste-har"))
    raw = builder.post("2128", "Foo", "foo", categories=["Har peste Har"], thumbnail="77").build()

    report = run_sync(raw, store, uploader, settings)

    assert report.created == 1
    assert [c.id for c in store.categories()] == ["5"]
    [post] = store.posts()
    assert post.slug == "foo"
    assert post.categories == ["5"]
    assert post.hero_image is None
    assert [(w.identifier, w.message) for w in report.warnings] == [("foo", "hero attachment 77 not in export")]


def test_content_change_updates_in_place(builder, store, uploader, settings):
    run_sync(builder.post("1", "Title", "slug", body="<p>v1</p>").build(), store, uploader, settings)
    [before] = store.posts()

    builder.items.clear()
    report = run_sync(builder.post("99", "Title", "slug", body="<p>v2</p>").build(), store, uploader, settings)

    assert (report.created, report.updated) == (0, 1)
    [after] = store.posts()
    assert after.id == before.id
    assert after.body_html == "<p>v2</p>"


def test_fuzzy_live_slug_converges(builder, store, uploader, settings):
    store.add(Post(id="p1", slug="Ziua-In-Care", title="Ziua", body_html="<p>Body</p>"))
    raw = builder.post("1", "Ziua", "ziua-in-care").build()

    first = run_sync(raw, store, uploader, settings)
    assert first.updated == 1
    assert store.get(Collection.posts, "p1").slug == "ziua-in-care"

    _, plan = build_sync_plan(raw, store, settings)
    assert plan.is_fixed_point


def test_existing_duplicate_media_are_reported_not_deleted(builder, store, uploader, settings):
    store.add(MediaAsset(id="m1", filename="cover.jpg", width=640, height=480))
    store.add(MediaAsset(id="m2", filename="cover-1.jpg", width=800, height=600))
    raw = (
        builder
        .attachment("20", "https://example.org/cover.jpg")
        .post("1", "A", "a", thumbnail="20")
        .build()
    )
    report = run_sync(raw, store, uploader, settings)

    [post] = store.posts()
    assert post.hero_image == "m2"
    assert [(o.id, o.reason.value) for o in report.orphans] == [("m1", "duplicate")]
    assert len(store.find(Collection.media)) == 2


def test_orphans_reported_after_sync(builder, store, uploader, settings):
    store.add(Category(id="9", title="Forgotten"))
    report = run_sync(builder.post("1", "A", "a").build(), store, uploader, settings)
    assert [(o.collection, o.id) for o in report.orphans] == [("categories", "9")]
    assert len(store.categories()) == 1


def test_protected_category_not_reported(builder, store, uploader, settings):
    store.add(Category(id="9", title="Featured"))
    settings.protected_categories = ["featured"]
    report = run_sync(builder.post("1", "A", "a").build(), store, uploader, settings)
    assert report.orphans == []


def test_failed_upload_skips_post_and_reports(export, store, uploader, settings, fetcher):
    fetcher.fail.add("https://example.org/uploads/cover.jpg")
    report = run_sync(export, store, uploader, settings)
    assert {e.identifier for e in report.errors} == {"cover.jpg", "ziua-in-care-am-plecat"}
    assert {p.slug for p in store.posts()} == {"second", "third"}

    # The next run picks up where this one failed.
    fetcher.fail.clear()
    retry = run_sync(export, store, uploader, settings)
    assert retry.created == 2
    assert retry.errors == []


# --- fatal errors and callbacks ---

def test_unreadable_export_is_fatal(store, uploader, settings):
    seen = []
    report = run_sync(b"not xml at all", store, uploader, settings, on_complete=seen.append)
    assert report.fatal
    assert report.applied == 0
    assert [e.identifier for e in report.errors] == ["run"]
    assert seen == [report]
    assert store.posts() == []


def test_unreachable_store_is_fatal(export, uploader, settings):
    class DownStore(MemoryStore):
        def ping(self):
            raise StoreUnavailable("connection refused")

    report = run_sync(export, DownStore(), uploader, settings)
    assert report.fatal
    assert "connection refused" in report.errors[0].message


def test_cancelled_before_start(export, store, uploader, settings):
    cancel = threading.Event()
    cancel.set()
    report = run_sync(export, store, uploader, settings, cancel=cancel)
    assert report.cancelled
    assert report.created == 0
    assert store.posts() == []


def test_report_serializes_to_json(export, store, uploader, settings):
    report = run_sync(export, store, uploader, settings)
    text = report.model_dump_json()
    assert '"created":6' in text.replace(" ", "")


def test_prune_requires_confirmation(builder, store, uploader, settings):
    store.add(Category(id="9", title="Forgotten"))
    run_sync(builder.post("1", "A", "a").build(), store, uploader, settings)

    dry = prune(store, settings)
    assert dry.deleted == 0
    assert len(store.categories()) == 1

    done = prune(store, settings, confirm=True)
    assert done.deleted == 1
    assert store.categories() == []
