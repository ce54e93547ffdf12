"""
tests/conftest.py
"""
from __future__ import annotations

import datetime as _dt
import itertools
import json
import sqlite3
import uuid
from pathlib import Path
from typing import Generator

import pytest
from flask.testing import FlaskClient
from pytest import MonkeyPatch

from folio.catalog import Catalog, init_schema
from folio.media import MediaStore
from folio.site import app, init_db

CSRF = "test-token"


@pytest.fixture(scope="session")
def _tmp_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """One temp file for the whole test session (faster than per-test)."""
    return tmp_path_factory.mktemp("data") / "test.sqlite3"


@pytest.fixture(scope="session", autouse=True)
def _configure_app(_tmp_db_path: Path) -> None:
    """Configure the Flask app *once* before the first test runs."""
    app.config.update(
        TESTING=True,
        DATABASE=str(_tmp_db_path),
        SITE_URL="https://example.test",
    )
    with app.app_context():
        init_db()


@pytest.fixture
def client() -> Generator[FlaskClient, None, None]:
    """A test client inside an application context."""
    with app.test_client() as client:
        with app.app_context():
            yield client


@pytest.fixture
def admin(client) -> FlaskClient:
    """Same client, with a logged-in session and a known CSRF token."""
    with client.session_transaction() as sess:
        sess["logged_in"] = True
        sess["csrf"] = CSRF
    client.environ_base["HTTP_X_CSRFTOKEN"] = CSRF
    return client


@pytest.fixture(autouse=True, scope="session")
def _stepping_clock():
    """
    Patch folio.site.utc_now for the whole session so every call returns
    an ever-increasing timestamp (2099-01-01 + 1 s per call).
    """
    from folio import site

    counter = itertools.count()
    base = _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc)

    def _fake_now():
        return base + _dt.timedelta(seconds=next(counter))

    mp = MonkeyPatch()
    mp.setattr(site, "utc_now", _fake_now)
    yield
    mp.undo()


# ───────────────────────── catalog on a private db ─────────────────────
class Clock:
    """Manually advanced clock for catalog tests."""

    def __init__(self, start: _dt.datetime):
        self.now = start

    def __call__(self) -> _dt.datetime:
        return self.now

    def tick(self, **delta) -> _dt.datetime:
        self.now += _dt.timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> Clock:
    return Clock(_dt.datetime(2026, 2, 10, 12, 0, tzinfo=_dt.timezone.utc))


@pytest.fixture
def catalog(clock) -> Generator[Catalog, None, None]:
    """A Catalog over a throw-away in-memory database."""
    db = sqlite3.connect(":memory:")
    init_schema(db)
    yield Catalog(db, clock=clock)
    db.close()


@pytest.fixture
def insert_raw(catalog):
    """Store a document exactly as given, bypassing the write-side rules."""

    def _insert(collection: str, doc: dict) -> str:
        doc = dict(doc)
        doc_id = str(doc.pop("id", None) or uuid.uuid4().hex)
        created = doc.get("createdAt")
        catalog.store.db.execute(
            "INSERT INTO document (collection, id, slug, created_at, data) "
            "VALUES (?,?,?,?,?)",
            (
                collection,
                doc_id,
                doc.get("slug"),
                created if isinstance(created, str) else None,
                json.dumps(doc),
            ),
        )
        catalog.store.db.commit()
        return doc_id

    return _insert


# ───────────────────────── R2 stand-in ─────────────────────────────────
class RecordingS3:
    """Enough of the boto3 S3 client for the upload routes."""

    def __init__(self):
        self.puts = []
        self.deleted = []

    def put_object(self, **kw):
        self.puts.append(kw)

    def delete_object(self, **kw):
        self.deleted.append(kw["Key"])

    def list_objects_v2(self, **kw):
        return {
            "Contents": [
                {
                    "Key": "art/a.webp",
                    "Size": 3,
                    "LastModified": _dt.datetime(2099, 1, 1, tzinfo=_dt.timezone.utc),
                }
            ],
            "IsTruncated": False,
        }


@pytest.fixture
def fake_r2(monkeypatch) -> RecordingS3:
    """Point folio.site at an in-memory bucket served from cdn.example.test."""
    from folio import site

    s3 = RecordingS3()
    store = MediaStore(s3, "bucket", "https://cdn.example.test")
    monkeypatch.setattr(site, "get_media", lambda: store)
    return s3
