"""tests/test_catalog.py"""
from __future__ import annotations

import typing

import pytest

from folio.catalog import ART, POSTS, DocumentStore
from folio.content import DEFAULT_SETTINGS, parse_ts
from folio.errors import MissingRequiredField, NotFound

ART_FIELDS = {
    "image": "https://cdn.test/art/x.webp",
    "medium": "Watercolor on paper",
    "dimensions": "30x40cm",
    "category": "watercolor",
}


def _publish(catalog, clock, title, **extra) -> str:
    clock.tick(minutes=1)
    return catalog.create_post(
        {"title": title, "content": "words " * 10, "status": "published", **extra}
    )


# ───────────────────────── posts ──────────────────────────────────────
def test_create_and_read_back(catalog, clock):
    post_id = catalog.create_post({"title": "Hello World", "content": "x"})
    post = catalog.post_by_id(post_id)
    assert post["id"] == post_id
    assert post["slug"] == "hello-world"
    assert post["status"] == "draft"
    assert parse_ts(post["createdAt"]) == clock.now
    assert post["createdAt"] == post["updatedAt"]


def test_create_rejects_missing_fields(catalog):
    with pytest.raises(MissingRequiredField):
        catalog.create_post({"title": "no body"})
    assert catalog.posts(published_only=False) == []


def test_listing_is_newest_first_and_filters_drafts(catalog, clock):
    _publish(catalog, clock, "One")
    clock.tick(minutes=1)
    catalog.create_post({"title": "Draft", "content": "x"})
    _publish(catalog, clock, "Two")

    assert [p["title"] for p in catalog.posts()] == ["Two", "One"]
    assert [p["title"] for p in catalog.posts(published_only=False)] == [
        "Two",
        "Draft",
        "One",
    ]


def test_scheduled_post_appears_once_due(catalog, clock):
    due = clock.now.replace(hour=18)
    catalog.create_post(
        {
            "title": "Later",
            "content": "x",
            "status": "scheduled",
            "scheduledAt": due.isoformat(),
        }
    )
    assert catalog.posts() == []
    with pytest.raises(NotFound):
        catalog.post_by_slug("later", published_only=True)

    clock.now = due
    assert [p["slug"] for p in catalog.posts()] == ["later"]
    assert catalog.post_by_slug("later", published_only=True)["status"] == "scheduled"


def test_legacy_records_read_like_current_ones(catalog, insert_raw):
    insert_raw(
        POSTS,
        {
            "title": "Old",
            "slug": "old",
            "content": "x",
            "published": True,
            "description": "from the old editor",
            "createdAt": "2024-01-01T00:00:00+00:00",
        },
    )
    post = catalog.post_by_slug("old")
    assert post["status"] == "published"
    assert post["excerpt"] == "from the old editor"
    assert post["publishedAt"] == "2024-01-01T00:00:00+00:00"
    assert "published" not in post
    assert [p["slug"] for p in catalog.posts()] == ["old"]


def test_update_is_partial(catalog, clock):
    post_id = catalog.create_post(
        {"title": "A", "content": "body", "tags": ["x"], "excerpt": "keep"}
    )
    clock.tick(hours=1)
    post = catalog.update_post(post_id, {"title": "B"})
    assert post["title"] == "B"
    assert post["content"] == "body"
    assert post["tags"] == ["x"]
    assert post["excerpt"] == "keep"
    assert post["slug"] == "a"
    assert parse_ts(post["updatedAt"]) == clock.now
    assert post["createdAt"] != post["updatedAt"]


def test_update_on_legacy_record_drops_published_flag(catalog, insert_raw):
    post_id = insert_raw(
        POSTS, {"title": "Old", "slug": "old", "content": "x", "published": True}
    )
    catalog.update_post(post_id, {"status": "draft"})
    raw = catalog.store.get_by_id(POSTS, post_id)
    assert "published" not in raw
    assert raw["status"] == "draft"


def test_published_at_survives_unpublish_and_republish(catalog, clock):
    post_id = catalog.create_post({"title": "A", "content": "x", "status": "published"})
    first = catalog.post_by_id(post_id)["publishedAt"]

    clock.tick(days=1)
    catalog.update_post(post_id, {"status": "draft"})
    clock.tick(days=1)
    post = catalog.update_post(post_id, {"status": "published"})
    assert post["publishedAt"] == first


def test_scheduled_to_published_clears_scheduled_at(catalog, clock):
    post_id = catalog.create_post(
        {
            "title": "A",
            "content": "x",
            "status": "scheduled",
            "scheduledAt": clock.now.replace(year=2027).isoformat(),
        }
    )
    post = catalog.update_post(post_id, {"status": "published"})
    assert "scheduledAt" not in post
    assert parse_ts(post["publishedAt"]) == clock.now


def test_update_and_delete_unknown_id(catalog):
    with pytest.raises(NotFound):
        catalog.update_post("nope", {"title": "x"})
    with pytest.raises(NotFound):
        catalog.delete_post("nope")


def test_delete_post(catalog):
    post_id = catalog.create_post({"title": "A", "content": "x"})
    catalog.delete_post(post_id)
    with pytest.raises(NotFound):
        catalog.post_by_id(post_id)


def test_adjacent_posts_skip_drafts(catalog, clock):
    _publish(catalog, clock, "Oldest")
    clock.tick(minutes=1)
    catalog.create_post({"title": "Hidden", "content": "x"})
    _publish(catalog, clock, "Middle")
    _publish(catalog, clock, "Newest")

    adj = catalog.adjacent_posts("middle")
    assert adj["previous"]["slug"] == "oldest"
    assert adj["next"]["slug"] == "newest"


def test_migrate_legacy_posts(catalog, insert_raw):
    insert_raw(
        POSTS, {"title": "Old", "slug": "old", "content": "x", "published": False}
    )
    catalog.create_post({"title": "New", "content": "x"})

    assert catalog.migrate_legacy_posts() == 1
    raw = catalog.store.get_by_slug(POSTS, "old")
    assert raw["status"] == "draft"
    assert "published" not in raw
    assert catalog.migrate_legacy_posts() == 0


# ───────────────────────── artworks ───────────────────────────────────
def test_artwork_lookup_by_slug_or_id(catalog):
    art_id = catalog.create_artwork({"title": "Sunset Sea", **ART_FIELDS})
    by_slug = catalog.artwork("sunset-sea")
    assert by_slug["id"] == art_id
    assert catalog.artwork(art_id)["slug"] == "sunset-sea"
    assert "updatedAt" not in by_slug


def test_artwork_update_and_delete(catalog, clock):
    catalog.create_artwork({"title": "Sunset", **ART_FIELDS})
    art = catalog.update_artwork("sunset", {"medium": "Gouache", "tags": "sea, sky"})
    assert art["medium"] == "Gouache"
    assert art["tags"] == ["sea", "sky"]
    assert art["category"] == "watercolor"

    deleted = catalog.delete_artwork("sunset")
    assert deleted["image"] == ART_FIELDS["image"]
    with pytest.raises(NotFound):
        catalog.artwork("sunset")


def test_artworks_newest_first_and_adjacent(catalog, clock):
    for title in ("First", "Second", "Third"):
        clock.tick(minutes=1)
        catalog.create_artwork({"title": title, **ART_FIELDS})
    assert [a["slug"] for a in catalog.artworks()] == ["third", "second", "first"]

    adj = catalog.adjacent_artworks("second")
    assert adj["next"]["slug"] == "third"
    assert adj["previous"]["slug"] == "first"


def test_artwork_unknown(catalog):
    with pytest.raises(NotFound):
        catalog.artwork("missing")
    assert catalog.store.get_by_id(ART, "missing") is None


# ───────────────────────── settings ───────────────────────────────────
def test_settings_default_when_absent(catalog):
    assert catalog.settings() == DEFAULT_SETTINGS


def test_settings_merge_over_defaults(catalog, clock):
    settings = catalog.update_settings({"siteName": "Elsewhere", "bogus": "x"})
    assert settings["siteName"] == "Elsewhere"
    assert settings["authorName"] == DEFAULT_SETTINGS["authorName"]
    assert "bogus" not in settings
    assert parse_ts(settings["updatedAt"]) == clock.now

    settings = catalog.update_settings({"authorEmail": "me@example.test"})
    assert settings["siteName"] == "Elsewhere"
    assert settings["authorEmail"] == "me@example.test"


# ───────────────────────── page views ─────────────────────────────────
def test_page_views_count_and_daily_series(catalog, clock):
    for _ in range(3):
        catalog.record_page_view("/blog/hello")
    catalog.record_page_view("/")
    clock.tick(days=1)
    catalog.record_page_view("/")

    views = {pv["path"]: pv["views"] for pv in catalog.page_views()}
    assert views == {"/blog/hello": 3, "/": 2}
    assert catalog.page_views()[0]["path"] == "/blog/hello"

    daily = catalog.daily_views(7)
    assert len(daily) == 7
    assert daily[-1] == {"date": clock.now.date().isoformat(), "views": 1}
    assert daily[-2]["views"] == 4
    assert sum(d["views"] for d in daily[:-2]) == 0


# ───────────────────────── module surface ─────────────────────────────
def test_store_annotations_resolve_to_builtins():
    # a method named ``list`` must not shadow the builtin in annotations
    hints = typing.get_type_hints(DocumentStore.counters)
    assert hints["return"] == list[dict]
    assert typing.get_type_hints(DocumentStore.list)["return"] == list[dict]
