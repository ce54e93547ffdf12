"""
tests/test_auth.py
"""
from __future__ import annotations

import itertools
import time
from contextlib import contextmanager
from typing import Iterator

from flask.testing import FlaskClient

from folio.site import _create_admin, _rotate_token, app, get_db, signer


# ───────────────────────── helpers ────────────────────────────────────
def _fresh_token() -> str:
    """Return a valid one-time login token, creating the admin row if needed."""
    with app.app_context():
        db = get_db()
        if not db.execute("SELECT 1 FROM user LIMIT 1").fetchone():
            return _create_admin(db, username="tester")
        return _rotate_token(db)


_ip_counter = itertools.count(1)


@contextmanager
def _new_client() -> Iterator[FlaskClient]:
    """
    A fresh client with its own REMOTE_ADDR so the per-IP rate limit never
    bleeds between tests.
    """
    ip = f"10.0.0.{next(_ip_counter)}"
    with app.test_client() as c, app.app_context():
        c.environ_base["REMOTE_ADDR"] = ip
        yield c


def _login(client, token: str, follow=True):
    return client.post("/login", data={"token": token}, follow_redirects=follow)


# ───────────────────────── tests ──────────────────────────────────────
def test_successful_login():
    with _new_client() as c:
        rv = _login(c, _fresh_token())
        assert rv.status_code == 200
        with c.session_transaction() as sess:
            assert sess["logged_in"] is True
            assert sess["csrf"]
        check = c.get("/api/auth/check").get_json()
        assert check["authenticated"] is True
        with c.session_transaction() as sess:
            assert check["csrf"] == sess["csrf"]


def test_anonymous_check():
    with _new_client() as c:
        assert c.get("/api/auth/check").get_json() == {"authenticated": False}


def test_token_is_single_use():
    tok = _fresh_token()
    with _new_client() as c:
        _login(c, tok)
    with _new_client() as c:
        _login(c, tok, follow=False)
        with c.session_transaction() as sess:
            assert "logged_in" not in sess


def test_token_expired(monkeypatch):
    tok = _fresh_token()
    real_time = time.time
    monkeypatch.setattr(time, "time", lambda: real_time() + 70)

    with _new_client() as c:
        rv = _login(c, tok, follow=False)
        assert rv.status_code == 200
        with c.session_transaction() as sess:
            assert "logged_in" not in sess


def test_token_forged():
    bad = signer.sign("evil-payload").decode()[:-1] + "x"

    with _new_client() as c:
        rv = _login(c, bad, follow=False)
        assert rv.status_code == 200
        with c.session_transaction() as sess:
            assert "logged_in" not in sess


def test_login_rate_limited():
    with _new_client() as c:
        codes = [_login(c, "nope", follow=False).status_code for _ in range(6)]
    assert codes[:5] == [200] * 5
    assert codes[5] == 429


def test_logout_clears_session(admin):
    admin.get("/logout")
    with admin.session_transaction() as sess:
        assert "logged_in" not in sess
