"""
Catalog storage: posts, artworks, the settings singleton and page-view
counters, kept as JSON documents in sqlite.

``DocumentStore`` is the dumb CRUD layer (native order: newest first).
``Catalog`` sits on top of it and is the *only* read path, so every post and
artwork leaving it has been through ``normalize_post``/``normalize_artwork``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timedelta

from folio.content import (
    adjacent,
    artwork_changes,
    filter_published,
    iso,
    is_visible,
    merge_settings,
    new_artwork,
    new_post,
    normalize_artwork,
    normalize_post,
    post_changes,
    settings_changes,
    utc_now,
)
from folio.errors import NotFound

log = logging.getLogger(__name__)

POSTS = "posts"
ART = "art"
SETTINGS = "settings"
SETTINGS_ID = "site"

SCHEMA = """
------------------------------------------------------------
-- 1.  Documents (one row per record, JSON body)
------------------------------------------------------------
CREATE TABLE IF NOT EXISTS document (
    collection  TEXT NOT NULL,
    id          TEXT NOT NULL,
    slug        TEXT,
    created_at  TEXT,
    data        TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS idx_document_slug
    ON document(collection, slug);
CREATE INDEX IF NOT EXISTS idx_document_created
    ON document(collection, created_at);

------------------------------------------------------------
-- 2.  Counters (page views, daily views)
------------------------------------------------------------
CREATE TABLE IF NOT EXISTS counter (
    scope         TEXT NOT NULL,
    key           TEXT NOT NULL,
    views         INTEGER NOT NULL DEFAULT 0,
    last_updated  TEXT,
    PRIMARY KEY (scope, key)
);
"""


def init_schema(db: sqlite3.Connection) -> None:
    db.executescript(SCHEMA)
    db.commit()


def _row_to_doc(row) -> dict:
    doc = json.loads(row["data"])
    doc["id"] = row["id"]
    return doc


class DocumentStore:
    """
    Minimal document CRUD over the ``document`` table.

    Partial updates are applied with sqlite's ``json_patch`` so the merge
    happens inside a single UPDATE (RFC 7396: a ``null`` removes the key).
    """

    def __init__(self, db: sqlite3.Connection):
        self.db = db
        self.db.row_factory = sqlite3.Row

    def list(self, collection: str) -> list[dict]:
        rows = self.db.execute(
            "SELECT id, data FROM document WHERE collection=? "
            "ORDER BY created_at DESC, rowid DESC",
            (collection,),
        ).fetchall()
        return [_row_to_doc(r) for r in rows]

    def get_by_id(self, collection: str, doc_id: str) -> dict | None:
        row = self.db.execute(
            "SELECT id, data FROM document WHERE collection=? AND id=?",
            (collection, doc_id),
        ).fetchone()
        return _row_to_doc(row) if row else None

    def get_by_slug(self, collection: str, slug: str) -> dict | None:
        row = self.db.execute(
            "SELECT id, data FROM document WHERE collection=? AND slug=? "
            "ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (collection, slug),
        ).fetchone()
        return _row_to_doc(row) if row else None

    def create(
        self,
        collection: str,
        fields: dict,
        *,
        now: datetime,
        stamps: tuple[str, ...] = ("createdAt", "updatedAt"),
    ) -> str:
        """Insert a new document; the store assigns id and *stamps*."""
        doc_id = uuid.uuid4().hex
        doc = {k: v for k, v in fields.items() if v is not None and k != "id"}
        for key in stamps:
            doc[key] = iso(now)
        self.db.execute(
            "INSERT INTO document (collection, id, slug, created_at, data) "
            "VALUES (?,?,?,?,?)",
            (collection, doc_id, doc.get("slug"), doc.get("createdAt"), json.dumps(doc)),
        )
        self.db.commit()
        return doc_id

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        patch = json.dumps({k: v for k, v in fields.items() if k != "id"})
        cur = self.db.execute(
            """UPDATE document
                  SET data = json_patch(data, :patch),
                      slug = COALESCE(json_extract(:patch, '$.slug'), slug)
                WHERE collection = :collection AND id = :id""",
            {"patch": patch, "collection": collection, "id": doc_id},
        )
        self.db.commit()
        if cur.rowcount == 0:
            raise NotFound(f"{collection} {doc_id!r} not found")

    def replace(self, collection: str, doc_id: str, doc: dict) -> None:
        body = {k: v for k, v in doc.items() if k != "id" and v is not None}
        self.db.execute(
            "UPDATE document SET data=?, slug=? WHERE collection=? AND id=?",
            (json.dumps(body), body.get("slug"), collection, doc_id),
        )
        self.db.commit()

    def upsert(self, collection: str, doc_id: str, fields: dict) -> None:
        """Merge *fields* into a singleton document, creating it if absent."""
        self.db.execute(
            """INSERT INTO document (collection, id, slug, created_at, data)
                    VALUES (?,?,NULL,NULL,?)
               ON CONFLICT(collection, id)
                  DO UPDATE SET data = json_patch(document.data, excluded.data)""",
            (collection, doc_id, json.dumps(fields)),
        )
        self.db.commit()

    def delete(self, collection: str, doc_id: str) -> bool:
        cur = self.db.execute(
            "DELETE FROM document WHERE collection=? AND id=?", (collection, doc_id)
        )
        self.db.commit()
        return cur.rowcount > 0

    # ── counters ─────────────────────────────────────────────────────
    def increment(self, scope: str, key: str, *, now: datetime) -> None:
        """Atomic ``views += 1``; no read-modify-write in Python."""
        self.db.execute(
            """INSERT INTO counter (scope, key, views, last_updated)
                    VALUES (?,?,1,?)
               ON CONFLICT(scope, key)
                  DO UPDATE SET views = views + 1,
                                last_updated = excluded.last_updated""",
            (scope, key, iso(now)),
        )
        self.db.commit()

    def counters(self, scope: str) -> list[dict]:
        rows = self.db.execute(
            "SELECT key, views, last_updated FROM counter WHERE scope=? "
            "ORDER BY views DESC, key",
            (scope,),
        ).fetchall()
        return [dict(r) for r in rows]


class Catalog:
    """
    Posts, artworks, settings and counters for one request.

    *clock* is called once per write/read that needs "now"; tests hand in
    a fixed or stepping clock instead of the wall clock.
    """

    def __init__(self, db: sqlite3.Connection, *, clock=utc_now):
        self.store = DocumentStore(db)
        self.clock = clock

    ###########################################################################
    # Posts
    ###########################################################################
    def posts(self, *, published_only: bool = True, now: datetime | None = None):
        posts = [normalize_post(p) for p in self.store.list(POSTS)]
        if published_only:
            posts = filter_published(posts, now or self.clock())
        return posts

    def post_by_id(self, post_id: str) -> dict:
        raw = self.store.get_by_id(POSTS, post_id)
        if raw is None:
            raise NotFound(f"Post {post_id!r} not found")
        return normalize_post(raw)

    def post_by_slug(
        self, slug: str, *, published_only: bool = False, now: datetime | None = None
    ) -> dict:
        raw = self.store.get_by_slug(POSTS, slug)
        post = normalize_post(raw) if raw else None
        if post and published_only and not is_visible(post, now or self.clock()):
            post = None
        if post is None:
            raise NotFound(f"Post {slug!r} not found")
        return post

    def adjacent_posts(self, slug: str, *, now: datetime | None = None) -> dict:
        """Neighbours among the *visible* posts (older = previous)."""
        return adjacent(self.posts(now=now), slug)

    def create_post(self, fields: dict) -> str:
        now = self.clock()
        doc = new_post(fields, now)
        post_id = self.store.create(POSTS, doc, now=now)
        log.info("created post %s (%s, %s)", post_id, doc["slug"], doc["status"])
        return post_id

    def update_post(self, post_id: str, fields: dict) -> dict:
        existing = self.post_by_id(post_id)
        changes = post_changes(existing, fields, self.clock())
        self.store.update(POSTS, post_id, changes)
        return self.post_by_id(post_id)

    def delete_post(self, post_id: str) -> None:
        if not self.store.delete(POSTS, post_id):
            raise NotFound(f"Post {post_id!r} not found")

    def migrate_legacy_posts(self) -> int:
        """
        Rewrite every stored post in canonical form.  Returns how many
        documents actually changed.
        """
        changed = 0
        for raw in self.store.list(POSTS):
            canon = normalize_post(raw)
            if canon != raw:
                self.store.replace(POSTS, raw["id"], canon)
                changed += 1
        return changed

    ###########################################################################
    # Artworks
    ###########################################################################
    def artworks(self) -> list[dict]:
        return [normalize_artwork(a) for a in self.store.list(ART)]

    def artwork(self, slug_or_id: str) -> dict:
        """Look up by slug first, then by id."""
        raw = self.store.get_by_slug(ART, slug_or_id) or self.store.get_by_id(
            ART, slug_or_id
        )
        if raw is None:
            raise NotFound(f"Artwork {slug_or_id!r} not found")
        return normalize_artwork(raw)

    def adjacent_artworks(self, slug: str) -> dict:
        return adjacent(self.artworks(), slug)

    def create_artwork(self, fields: dict) -> str:
        doc = new_artwork(fields)
        art_id = self.store.create(ART, doc, now=self.clock(), stamps=("createdAt",))
        log.info("created artwork %s (%s)", art_id, doc["slug"])
        return art_id

    def update_artwork(self, slug_or_id: str, fields: dict) -> dict:
        existing = self.artwork(slug_or_id)
        changes = artwork_changes(existing, fields)
        if changes:
            self.store.update(ART, existing["id"], changes)
        return normalize_artwork(self.store.get_by_id(ART, existing["id"]))

    def delete_artwork(self, slug_or_id: str) -> dict:
        """Delete the record; its stored image is left for the caller."""
        existing = self.artwork(slug_or_id)
        self.store.delete(ART, existing["id"])
        return existing

    ###########################################################################
    # Settings
    ###########################################################################
    def settings(self) -> dict:
        stored = self.store.get_by_id(SETTINGS, SETTINGS_ID) or {}
        stored.pop("id", None)
        return merge_settings(stored)

    def update_settings(self, fields: dict) -> dict:
        changes = settings_changes(fields)
        changes["updatedAt"] = iso(self.clock())
        self.store.upsert(SETTINGS, SETTINGS_ID, changes)
        return self.settings()

    ###########################################################################
    # Page views
    ###########################################################################
    def record_page_view(self, path: str) -> None:
        now = self.clock()
        self.store.increment("page", path, now=now)
        self.store.increment("day", now.date().isoformat(), now=now)

    def page_views(self) -> list[dict]:
        return [
            {"path": c["key"], "views": c["views"], "lastUpdated": c["last_updated"]}
            for c in self.store.counters("page")
        ]

    def daily_views(self, days: int = 7) -> list[dict]:
        """Oldest → newest, missing days filled with 0."""
        seen = {c["key"]: c["views"] for c in self.store.counters("day")}
        today = self.clock().date()
        out = []
        for back in range(days - 1, -1, -1):
            day = (today - timedelta(days=back)).isoformat()
            out.append({"date": day, "views": seen.get(day, 0)})
        return out
