"""
Pure content rules: slugs, the post/artwork canonical shape, time-gated
visibility, write-side field preparation and collection helpers.

Nothing in here touches sqlite, R2 or Flask. Every timestamp is passed in
explicitly so callers (and tests) control the clock.
"""

import math
import re
from datetime import datetime, timezone

from folio.errors import (
    InvalidEnumValue,
    InvalidFieldValue,
    MissingRequiredField,
)

################################################################################
# Constants
################################################################################
POST_STATUSES = ("draft", "published", "scheduled")
LANGS = ("en", "vi")
DEFAULT_LANG = "vi"
DEFAULT_AUTHOR = "Giang Hai Son"
ART_CATEGORIES = ("watercolor", "digital", "sketch")
TIMESTAMP_FIELDS = ("createdAt", "updatedAt", "publishedAt", "scheduledAt")
WORDS_PER_MINUTE = 200

DEFAULT_SETTINGS = {
    "siteName": "gianghaison.me",
    "siteDescription": "Making useful things with code & AI",
    "authorName": DEFAULT_AUTHOR,
    "authorEmail": "hello@gianghaison.me",
    "githubUrl": "https://github.com/gianghaison",
}
SETTINGS_FIELDS = tuple(DEFAULT_SETTINGS)

_TRUTHY = {"1", "true", "yes", "on"}
_SLUG_STRIP_RE = re.compile(r"[^a-z0-9\s-]")
_WS_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")


# -------------------------------------------------------------------------
# Time helpers
# -------------------------------------------------------------------------
def utc_now() -> datetime:
    """Return an *aware* datetime in UTC."""
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_ts(value) -> datetime | None:
    """
    Best-effort conversion of a stored timestamp into an aware datetime.

    Accepts ISO strings (``Z`` suffix included), datetimes, epoch seconds and
    the ``{"seconds": …}`` shape older exports carry. Anything else → None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, dict) and "seconds" in value:
        try:
            dt = datetime.fromtimestamp(float(value["seconds"]), timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            dt = datetime.fromtimestamp(value, timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _coerce_ts(value):
    """Canonical ISO string for a parseable timestamp, otherwise as-is."""
    if isinstance(value, str) or value is None:
        return value
    dt = parse_ts(value)
    return iso(dt) if dt else value


def _require_ts(field: str, value) -> datetime:
    dt = parse_ts(value)
    if dt is None:
        raise InvalidFieldValue(field, f"cannot parse timestamp {value!r}")
    return dt


################################################################################
# Slugs
################################################################################
def slugify(title: str | None) -> str:
    """
    Lower-case, drop everything outside ``[a-z0-9 -]``, turn whitespace runs
    into hyphens and collapse/trim hyphens.  "" stays "".
    """
    s = _SLUG_STRIP_RE.sub("", (title or "").lower())
    s = _WS_RE.sub("-", s)
    s = _DASHES_RE.sub("-", s)
    return s.strip("-")


################################################################################
# Normalization (read boundary)
################################################################################
def _truthy(value) -> bool:
    if value is True:
        return True
    if isinstance(value, (int, str)) and not isinstance(value, bool):
        return str(value).strip().lower() in _TRUTHY
    return False


def clean_tags(raw) -> list[str]:
    """
    Accept a list or a comma-separated string; strip, drop blanks and
    duplicates while keeping the first-seen order for display.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    out: list[str] = []
    for tag in raw:
        if tag is None:
            continue
        tag = str(tag).strip()
        if tag and tag not in out:
            out.append(tag)
    return out


def normalize_post(raw: dict) -> dict:
    """
    Reconcile a stored post (legacy ``published`` boolean / ``description``
    alias, or the current ``status`` schema) into the canonical shape.

    Never raises; applying it twice is the same as applying it once.
    """
    post = dict(raw)
    legacy_published = post.pop("published", None)
    legacy_description = post.pop("description", None)

    post["excerpt"] = post.get("excerpt") or legacy_description or ""

    if post.get("status") not in POST_STATUSES:
        post["status"] = "published" if _truthy(legacy_published) else "draft"

    post["title"] = post.get("title") or ""
    post["content"] = post.get("content") or ""
    post["slug"] = post.get("slug") or slugify(post["title"])
    post["tags"] = clean_tags(post.get("tags"))
    post["author"] = post.get("author") or DEFAULT_AUTHOR
    if post.get("lang") not in LANGS:
        post["lang"] = DEFAULT_LANG

    for key in TIMESTAMP_FIELDS:
        if key in post:
            post[key] = _coerce_ts(post[key])

    # backfill from createdAt, never "now": migrated records keep their order
    if (
        post["status"] == "published"
        and not post.get("publishedAt")
        and post.get("createdAt")
    ):
        post["publishedAt"] = post["createdAt"]
    return post


def normalize_artwork(raw: dict) -> dict:
    art = dict(raw)
    art["title"] = art.get("title") or ""
    art["slug"] = art.get("slug") or slugify(art["title"])
    art["description"] = art.get("description") or ""
    art["tags"] = clean_tags(art.get("tags"))
    for key in ("image", "medium", "dimensions"):
        art[key] = art.get(key) or ""
    if "createdAt" in art:
        art["createdAt"] = _coerce_ts(art["createdAt"])
    return art


def merge_settings(stored: dict | None) -> dict:
    """Defaults first, stored values on top (``None`` never wins)."""
    out = dict(DEFAULT_SETTINGS)
    for k, v in (stored or {}).items():
        if v is not None:
            out[k] = _coerce_ts(v) if k == "updatedAt" else v
    return out


################################################################################
# Visibility
################################################################################
def is_visible(post: dict, now: datetime) -> bool:
    """
    Published, or scheduled with ``scheduledAt <= now``.  Drafts never.
    Evaluated on every read; nothing about it is stored.
    """
    status = post.get("status")
    if status == "published":
        return True
    if status == "scheduled":
        when = parse_ts(post.get("scheduledAt"))
        return when is not None and when <= now
    return False


def display_date(post: dict) -> str:
    """``publishedAt`` when set, otherwise ``createdAt`` (ISO string)."""
    return post.get("publishedAt") or post.get("createdAt") or ""


def reading_time(content: str | None) -> int:
    words = len((content or "").split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


################################################################################
# Write-side preparation
################################################################################
def _status_from(fields: dict) -> str | None:
    """
    ``status`` wins when present; a legacy ``published`` flag maps to
    published/draft; neither → None (caller decides the default).
    """
    status = fields.get("status")
    if status is not None:
        if status not in POST_STATUSES:
            raise InvalidEnumValue("status", status, POST_STATUSES)
        return status
    if fields.get("published") is not None:
        return "published" if _truthy(fields["published"]) else "draft"
    return None


def _check_lang(value) -> str:
    if value not in LANGS:
        raise InvalidEnumValue("lang", value, LANGS)
    return value


def new_post(fields: dict, now: datetime) -> dict:
    """
    Validate *fields* and build the document for a brand-new post.

    ``createdAt``/``updatedAt`` are left to the store.
    """
    title = str(fields.get("title") or "").strip()
    content = str(fields.get("content") or "")
    missing = [k for k, v in (("title", title), ("content", content.strip())) if not v]
    if missing:
        raise MissingRequiredField(*missing)

    slug = str(fields.get("slug") or "").strip() or slugify(title)
    if not slug:
        raise MissingRequiredField("slug")

    status = _status_from(fields) or "draft"
    post = {
        "title": title,
        "slug": slug,
        "content": content,
        "excerpt": fields.get("excerpt") or fields.get("description") or "",
        "tags": clean_tags(fields.get("tags")),
        "author": fields.get("author") or DEFAULT_AUTHOR,
        "lang": _check_lang(fields["lang"]) if fields.get("lang") else DEFAULT_LANG,
        "status": status,
    }

    if status == "scheduled":
        if not fields.get("scheduledAt"):
            raise MissingRequiredField("scheduledAt")
        when = _require_ts("scheduledAt", fields["scheduledAt"])
        if when <= now:
            raise InvalidFieldValue("scheduledAt", "must be in the future")
        post["scheduledAt"] = iso(when)
    elif status == "published":
        post["publishedAt"] = iso(now)
    return post


def post_changes(existing: dict, fields: dict, now: datetime) -> dict:
    """
    Turn a partial update into the exact set of fields to write.

    *existing* is the canonical record.  Keys absent from *fields* are left
    alone; a ``None`` value in the result means "remove from the document".
    """
    changes: dict = {}

    if "title" in fields:
        title = str(fields["title"] or "").strip()
        if not title:
            raise MissingRequiredField("title")
        changes["title"] = title
    if "slug" in fields:
        changes["slug"] = str(fields["slug"] or "").strip() or slugify(
            changes.get("title") or existing.get("title")
        )
        if not changes["slug"]:
            raise MissingRequiredField("slug")
    if "content" in fields:
        changes["content"] = str(fields["content"] or "")
    if "excerpt" in fields or "description" in fields:
        changes["excerpt"] = fields.get("excerpt", fields.get("description")) or ""
        changes["description"] = None
    if "tags" in fields:
        changes["tags"] = clean_tags(fields["tags"])
    if "author" in fields:
        changes["author"] = fields["author"] or DEFAULT_AUTHOR
    if "lang" in fields:
        changes["lang"] = _check_lang(fields["lang"])

    status = _status_from(fields)
    if status is not None:
        changes["status"] = status
        changes["published"] = None  # status is authoritative from here on
        if status == "published" and not existing.get("publishedAt"):
            changes["publishedAt"] = iso(now)
        if status != "scheduled":
            changes["scheduledAt"] = None

    effective = status or existing.get("status")
    if effective == "scheduled":
        if "scheduledAt" in fields:
            if not fields["scheduledAt"]:
                raise MissingRequiredField("scheduledAt")
            changes["scheduledAt"] = iso(_require_ts("scheduledAt", fields["scheduledAt"]))
        elif not existing.get("scheduledAt"):
            raise MissingRequiredField("scheduledAt")

    changes["updatedAt"] = iso(now)
    return changes


ART_REQUIRED = ("title", "image", "medium", "dimensions", "category")


def _check_category(value) -> str:
    if value not in ART_CATEGORIES:
        raise InvalidEnumValue("category", value, ART_CATEGORIES)
    return value


def new_artwork(fields: dict) -> dict:
    missing = [k for k in ART_REQUIRED if not str(fields.get(k) or "").strip()]
    if missing:
        raise MissingRequiredField(*missing)
    title = str(fields["title"]).strip()
    slug = str(fields.get("slug") or "").strip() or slugify(title)
    if not slug:
        raise MissingRequiredField("slug")
    return {
        "title": title,
        "slug": slug,
        "image": fields["image"],
        "medium": fields["medium"],
        "dimensions": fields["dimensions"],
        "description": fields.get("description") or "",
        "category": _check_category(fields["category"]),
        "tags": clean_tags(fields.get("tags")),
    }


def artwork_changes(existing: dict, fields: dict) -> dict:
    """Artworks have no update/publish lifecycle: no timestamps are stamped."""
    changes: dict = {}
    for key in ("title", "image", "medium", "dimensions"):
        if key in fields:
            val = str(fields[key] or "").strip()
            if not val:
                raise MissingRequiredField(key)
            changes[key] = val
    if "slug" in fields:
        changes["slug"] = str(fields["slug"] or "").strip() or slugify(
            changes.get("title") or existing.get("title")
        )
        if not changes["slug"]:
            raise MissingRequiredField("slug")
    if "description" in fields:
        changes["description"] = fields["description"] or ""
    if "category" in fields:
        changes["category"] = _check_category(fields["category"])
    if "tags" in fields:
        changes["tags"] = clean_tags(fields["tags"])
    return changes


def settings_changes(fields: dict) -> dict:
    return {k: str(fields[k]) for k in SETTINGS_FIELDS if fields.get(k) is not None}


################################################################################
# Collection helpers (input is newest-first, as the store returns it)
################################################################################
def filter_published(posts, now: datetime) -> list[dict]:
    return [p for p in posts if is_visible(p, now)]


def collect_tags(posts) -> list[str]:
    return sorted({t for p in posts for t in (p.get("tags") or [])})


def collect_categories(artworks) -> list[str]:
    return sorted({a["category"] for a in artworks if a.get("category")})


def adjacent(collection, slug: str) -> dict:
    """
    ``previous`` is the older neighbour (index + 1), ``next`` the newer one
    (index - 1).  Unknown slug → both None.
    """
    items = list(collection)
    idx = next((i for i, it in enumerate(items) if it.get("slug") == slug), None)
    if idx is None:
        return {"previous": None, "next": None}
    return {
        "previous": items[idx + 1] if idx + 1 < len(items) else None,
        "next": items[idx - 1] if idx > 0 else None,
    }
