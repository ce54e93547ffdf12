"""tests/test_pages.py"""
from __future__ import annotations

import itertools

import pytest

from folio.site import app

_n = itertools.count(1)


def _publish(admin, title: str, **fields) -> str:
    rv = admin.post(
        "/api/posts",
        json={"title": title, "content": "# Heading\n\nSome *markdown*.", "status": "published", **fields},
    )
    assert rv.status_code == 201
    return admin.get(f"/api/posts/{rv.get_json()['id']}").get_json()["post"]["slug"]


# ───────────────────────── smoke ────────────────────────────────────
@pytest.mark.parametrize(
    "path",
    [
        "/",             # index
        "/blog",
        "/art",
        "/about",
        "/login",        # login form
        "/rss",
        "/sitemap.xml",
        "/robots.txt",
        "/api/settings",
        "/api/auth/check",
    ],
)
def test_public_routes_ok(client, path):
    rv = client.get(path)
    assert rv.status_code == 200


def test_security_headers(client):
    rv = client.get("/")
    assert rv.headers["X-Frame-Options"] == "DENY"
    assert rv.headers["X-Content-Type-Options"] == "nosniff"


# ───────────────────────── blog pages ───────────────────────────────
def test_post_page_renders_markdown_and_neighbours(admin):
    first = _publish(admin, f"Older Story {next(_n)}")
    second = _publish(admin, f"Newer Story {next(_n)}", tags=["travel"])

    rv = admin.get(f"/blog/{first}")
    assert rv.status_code == 200
    assert b"<em>markdown</em>" in rv.data
    # the newer post is the "next" link
    assert f'/blog/{second}"'.encode() in rv.data

    rv = admin.get("/blog?tag=travel")
    assert second.encode() in rv.data
    assert first.encode() not in rv.data


def test_draft_page_only_for_admin(admin):
    rv = admin.post("/api/posts", json={"title": f"Secret {next(_n)}", "content": "x"})
    slug = admin.get(f"/api/posts/{rv.get_json()['id']}").get_json()["post"]["slug"]

    assert admin.get(f"/blog/{slug}").status_code == 200
    with app.test_client() as anon:
        rv = anon.get(f"/blog/{slug}")
        assert rv.status_code == 404
        assert b"Page not found" in rv.data


def test_art_pages(admin):
    title = f"Morning Fog {next(_n)}"
    admin.post(
        "/api/art",
        json={
            "title": title,
            "image": "https://cdn.example.test/art/fog.webp",
            "medium": "Pencil",
            "dimensions": "A5",
            "category": "sketch",
        },
    )
    slug = title.lower().replace(" ", "-")
    assert title.encode() in admin.get("/art?category=sketch").data
    rv = admin.get(f"/art/{slug}")
    assert rv.status_code == 200
    assert b"fog.webp" in rv.data


# ───────────────────────── feeds ────────────────────────────────────
def test_rss_and_sitemap_list_published_posts(admin):
    title = f"Feed Me {next(_n)}"
    slug = _publish(admin, title)

    rss = admin.get("/rss")
    assert rss.mimetype == "application/rss+xml"
    assert title.encode() in rss.data
    assert b"https://example.test/blog/" in rss.data

    sitemap = admin.get("/sitemap.xml")
    assert sitemap.mimetype == "application/xml"
    assert f"https://example.test/blog/{slug}".encode() in sitemap.data


def test_robots_points_at_sitemap(client):
    body = client.get("/robots.txt").data
    assert b"Disallow: /api/" in body
    assert b"Sitemap: https://example.test/sitemap.xml" in body


# ───────────────────────── errors ───────────────────────────────────
def test_404_custom_page(client):
    resp = client.get("/this/route/does/not/exist")
    assert resp.status_code == 404
    assert b"Page not found" in resp.data


def test_404_json_under_api(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.get_json()["kind"] == "NotFound"


def test_500_handler_renders_friendly_page(client, monkeypatch):
    def _boom():
        raise RuntimeError("kaboom!")

    monkeypatch.setitem(app.view_functions, "index", _boom)
    monkeypatch.setitem(app.config, "PROPAGATE_EXCEPTIONS", False)

    resp = client.get("/")
    assert resp.status_code == 500
    assert b"Internal Server Error" in resp.data


# ───────────────────────── cli ──────────────────────────────────────
def test_migrate_posts_command():
    result = app.test_cli_runner().invoke(args=["migrate-posts"])
    assert result.exit_code == 0
    assert "post(s) rewritten" in result.output
