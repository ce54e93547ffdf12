#!/usr/bin/env python3
"""
Portfolio, blog and art gallery in one Flask app.

Public pages are rendered server-side; the admin panel talks to the JSON
API under /api.  Storage: sqlite (catalog) + Cloudflare R2 (media).
"""

import logging
import os
import secrets
import sqlite3
from collections import defaultdict, deque
from datetime import datetime
from functools import wraps
from html import escape
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from time import time
from typing import DefaultDict

import click
import markdown
from flask import (
    Flask,
    Response,
    abort,
    flash,
    g,
    jsonify,
    redirect,
    render_template_string,
    request,
    session,
    url_for,
)
from itsdangerous import BadSignature, SignatureExpired, TimestampSigner
from markupsafe import Markup
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.security import check_password_hash as verify_token
from werkzeug.security import generate_password_hash as hash_token

from folio.catalog import Catalog, init_schema
from folio.content import (
    ART_CATEGORIES,
    LANGS,
    POST_STATUSES,
    SETTINGS_FIELDS,
    collect_categories,
    collect_tags,
    display_date,
    iso,
    is_visible,
    parse_ts,
    reading_time,
    utc_now,
)
from folio.errors import (
    FolioError,
    InvalidEnumValue,
    InvalidFieldValue,
    InvalidFolder,
    MissingRequiredField,
    NotFound,
    PayloadTooLarge,
)
from folio.media import FOLDERS, MediaStore, ingest_image

################################################################################
# Imports & constants
################################################################################

ROOT = Path(__file__).parent
DB_FILE = Path(os.environ.get("FOLIO_DATABASE", str(ROOT / "folio.sqlite3")))

ENV_FILE = ROOT / ".env"
SECRET_FILE = ROOT / ".secret_key"
SECRET_KEY = (
    SECRET_FILE.read_text().strip() if SECRET_FILE.exists() else secrets.token_hex(32)
)
SECRET_FILE.write_text(SECRET_KEY)
TOKEN_LEN = 48
signer = TimestampSigner(SECRET_KEY, salt="login-token")

R2_ENV_KEYS = (
    "R2_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "R2_BUCKET",
    "R2_PUBLIC_BASE",
    "R2_ENDPOINT",
)
R2_REQUIRED_KEYS = (
    "R2_ACCOUNT_ID",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "R2_BUCKET",
)
# above the 10 MiB image cap so the pipeline reports oversize images itself
REQUEST_MAX_BYTES = 32 * 1024 * 1024
RECENT_POSTS = 5
RECENT_ART = 6
FEED_SIZE = 50
RFC2822_FMT = "%a, %d %b %Y %H:%M:%S %z"
SAFE_METHODS = {"GET", "HEAD", "OPTIONS", "TRACE"}

try:
    __version__ = version("folio")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"


################################################################################
# App + template filters
################################################################################
app = Flask(__name__)
app.url_map.strict_slashes = False
app.config.update(
    SECRET_KEY=SECRET_KEY,
    DATABASE=str(DB_FILE),
    SITE_URL=os.environ.get("FOLIO_SITE_URL", ""),
    MAX_CONTENT_LENGTH=REQUEST_MAX_BYTES,
)
app.config.update(
    SESSION_COOKIE_SAMESITE="Lax",
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SECURE=True,
)
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

logging.basicConfig(
    level=os.environ.get("FOLIO_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

MD_EXTENSION_CONFIGS = {
    "pymdownx.highlight": {
        "guess_lang": True,
        "noclasses": True,
        "pygments_style": "nord",
    },
}
MD_EXTENSIONS = [
    "pymdownx.extra",
    "pymdownx.magiclink",
    "pymdownx.tilde",
    "pymdownx.superfences",
    "pymdownx.highlight",
    "pymdownx.betterem",
    "pymdownx.saneheaders",
]


def render_markdown_html(text: str | None) -> str:
    # fresh renderer per call: Markdown instances keep state between runs
    return markdown.Markdown(
        extensions=MD_EXTENSIONS, extension_configs=MD_EXTENSION_CONFIGS
    ).convert(text or "")


@app.template_filter("md")
def md_filter(text: str | None) -> Markup:
    return Markup(render_markdown_html(text))


@app.template_filter("day")
def day_filter(value) -> str:
    """ISO timestamp → 2026-02-10."""
    dt = parse_ts(value)
    return dt.date().isoformat() if dt else ""


###############################################################################
# Database helpers
###############################################################################
def get_db():
    if "db" not in g:
        g.db = sqlite3.connect(app.config["DATABASE"])
        g.db.row_factory = sqlite3.Row
    return g.db


def get_catalog() -> Catalog:
    """One Catalog per request; the clock is looked up at call time."""
    if "catalog" not in g:
        g.catalog = Catalog(get_db(), clock=lambda: utc_now())
    return g.catalog


@app.teardown_appcontext
def close_db(error=None):
    g.pop("catalog", None)
    db = g.pop("db", None)
    if db is not None:
        db.close()


def init_db():
    db = get_db()
    init_schema(db)
    db.executescript(
        """
        CREATE TABLE IF NOT EXISTS user (
            id          INTEGER PRIMARY KEY,
            username    TEXT UNIQUE NOT NULL,
            token_hash  TEXT
        );
        """
    )
    db.commit()


###############################################################################
# CLI – create admin + token
###############################################################################
def _create_admin(db, *, username: str) -> str:
    handle = secrets.token_urlsafe(TOKEN_LEN)
    token = signer.sign(handle).decode()
    db.execute(
        "INSERT INTO user (username, token_hash) VALUES (?,?)",
        (username, hash_token(handle)),
    )
    db.commit()
    return token


def _rotate_token(db) -> str:
    """Generate + store a *new* one-time token, return it for display."""
    handle = secrets.token_urlsafe(TOKEN_LEN)
    token = signer.sign(handle).decode()
    db.execute("UPDATE user SET token_hash=? WHERE id=1", (hash_token(handle),))
    db.commit()
    return token


@app.cli.command("init")
@click.option(
    "--username", prompt=True, help="Admin username (will be created if DB empty)"
)
def cli_init(username: str):
    """Initialise DB *and* create the admin account."""
    init_db()
    token = _create_admin(get_db(), username=username.strip())

    click.secho("\n✅  Admin created.", fg="green")
    click.echo(f"\nOne-time login token:\n\n{token}\n")
    click.echo("Paste it into the login form at /login within 1 minute.")


@app.cli.command("token")
def cli_token():
    """Rotate the admin’s one-time login token."""
    token = _rotate_token(get_db())

    click.secho("\n🔑  Fresh login token generated.\n", fg="yellow")
    click.echo(f"{token}\n")
    click.echo("Paste it into the login form at /login within 1 minute.")


@app.cli.command("migrate-posts")
def cli_migrate_posts():
    """Rewrite legacy posts (published flag, description) in canonical form."""
    init_db()
    changed = get_catalog().migrate_legacy_posts()
    click.secho(f"\n✅  {changed} post(s) rewritten.", fg="green")


###############################################################################
# Config helpers (R2)
###############################################################################
def _read_env_file() -> dict[str, str]:
    env = {}
    if not ENV_FILE.exists():
        return env
    for ln in ENV_FILE.read_text().splitlines():
        ln = ln.strip()
        if not ln or ln.startswith("#") or "=" not in ln:
            continue
        k, v = ln.split("=", 1)
        env[k.strip()] = v.strip()
    return env


def r2_config() -> dict[str, str]:
    env_file = _read_env_file()
    cfg = {k: (os.environ.get(k) or env_file.get(k) or "").strip() for k in R2_ENV_KEYS}
    return {k: v for k, v in cfg.items() if v}


def r2_is_configured(cfg: dict[str, str] | None = None) -> bool:
    cfg = cfg or r2_config()
    return all(cfg.get(k) for k in R2_REQUIRED_KEYS)


def get_media() -> MediaStore | None:
    """The R2 store, or None while credentials are missing."""
    cfg = r2_config()
    if not r2_is_configured(cfg):
        return None
    return MediaStore.from_config(cfg)


def _require_media() -> MediaStore:
    media = get_media()
    if media is None:
        resp = jsonify({"error": "Image uploads are not configured."})
        resp.status_code = 400
        abort(resp)
    return media


###############################################################################
# Authentication
###############################################################################
def validate_token(token: str, max_age: int = 60) -> bool:
    """
    • Unsigned  age-check in *one* step (`max_age` seconds).
    • Compare the payload (“handle”) against the hashed copy in the DB.
    """
    try:
        handle = signer.unsign(token, max_age=max_age).decode()
    except SignatureExpired:
        return False
    except BadSignature:
        return False

    row = get_db().execute("SELECT token_hash FROM user LIMIT 1").fetchone()
    return bool(row and row["token_hash"] and verify_token(row["token_hash"], handle))


def is_authenticated() -> bool:
    return bool(session.get("logged_in"))


def login_required() -> None:
    if not is_authenticated():
        abort(403)


def rate_limit(max_requests: int, window: int = 60):
    hits: DefaultDict[str, deque] = defaultdict(deque)

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            now = time()
            # left-most entry after ProxyFix = real client
            ip = (
                request.access_route[0] if request.access_route else request.remote_addr
            ) or "unknown"

            dq = hits[ip]
            while dq and now - dq[0] > window:
                dq.popleft()

            if len(dq) >= max_requests:
                retry_after = int(window - (now - dq[0]))
                return Response(
                    "Too many requests – try again later.",
                    status=429,
                    headers={"Retry-After": str(retry_after)},
                )

            dq.append(now)
            return view(*args, **kwargs)

        return wrapped

    return decorator


def _csrf_token() -> str:
    """One token per session (rotates when the cookie does)."""
    return session.get("csrf", "")


@app.before_request
def csrf_protect():
    if request.method in SAFE_METHODS:
        return
    # anonymous writes (login, page-view beacons) carry no session token
    if not session.get("logged_in"):
        return
    token = session.get("csrf", "")
    sent = request.form.get("csrf") or request.headers.get("X-CSRFToken", "")
    if not token or not secrets.compare_digest(token, sent):
        abort(403)


@app.after_request
def sec_headers(resp):
    resp.headers.update(
        {
            "X-Frame-Options": "DENY",
            "X-Content-Type-Options": "nosniff",
            "Referrer-Policy": "strict-origin-when-cross-origin",
        }
    )
    return resp


@app.route("/login", methods=["GET", "POST"])
@rate_limit(max_requests=5, window=60)
def login():
    token = request.form.get("token", "").strip()

    if request.method == "POST" and token and validate_token(token):
        # burn the token right away
        db = get_db()
        db.execute(
            "UPDATE user SET token_hash=? WHERE id=1",
            (hash_token(secrets.token_hex(16)),),
        )
        db.commit()

        session.clear()
        session.permanent = True
        session["logged_in"] = True
        session["csrf"] = secrets.token_hex(16)
        app.logger.info("admin signed in from %s", request.remote_addr)
        return redirect(url_for("admin_dashboard"))

    return render(TEMPL_LOGIN, page_title="login")


@app.route("/logout")
def logout():
    session.clear()
    return redirect(url_for("index"))


@app.route("/api/auth/check")
def auth_check():
    """The admin client reads its CSRF token from here."""
    if not is_authenticated():
        return {"authenticated": False}
    return {"authenticated": True, "csrf": _csrf_token()}


###############################################################################
# Templates
###############################################################################
def wrap(body: str) -> str:
    """Glue prolog + page-specific body + epilog."""
    return TEMPL_PROLOG + body + TEMPL_EPILOG


def render(template: str, **ctx):
    return render_template_string(
        template,
        site=get_catalog().settings(),
        csrf_token=_csrf_token,
        logged_in=is_authenticated(),
        **ctx,
    )


TEMPL_PROLOG = """
<!doctype html>
<html lang="{{ lang or 'en' }}">
<title>{% if page_title %}{{ page_title }} | {% endif %}{{ site.siteName }}</title>
<meta name="viewport" content="width=device-width, initial-scale=1">
<meta charset="utf-8">
<meta name="description" content="{{ site.siteDescription }}">
<link rel="alternate" type="application/rss+xml"
      href="{{ url_for('rss') }}" title="{{ site.siteName }} – RSS">
<style>
html{font-size:62.5%;font-family:"JetBrains Mono","Fira Code",monospace}
body{font-size:1.6rem;line-height:1.6;max-width:60rem;margin:auto;color:#e5e5e5;background:#0a0a0a;padding:13px}
a{color:#e5e5e5;text-decoration:underline;text-decoration-color:transparent;text-underline-offset:.18em}
a:hover{color:#4ade80;text-decoration-color:#4ade80}
h1,h2,h3{line-height:1.2;margin-top:2.5rem;margin-bottom:1.2rem}
pre{background:#1e1e1e;padding:1em;overflow-x:auto}
code{background:#1e1e1e;padding:0 .4em}
pre>code{padding:0}
img{max-width:100%;height:auto}
blockquote{margin:0 0 2rem;padding:.6em 1em;border-left:4px solid #4ade80;background:#1e1e1e}
.muted{color:#6b7280;font-size:.85em}
.tag{display:inline-block;margin-right:.6em;color:#4ade80;text-decoration:none}
.grid{display:grid;grid-template-columns:repeat(auto-fill,minmax(16rem,1fr));gap:1.2rem}
.card{border:1px solid #1e1e1e;padding:.8rem}
nav.pager{display:flex;justify-content:space-between;margin-top:3rem;border-top:1px solid #1e1e1e;padding-top:1rem}
header nav a{margin-right:1.2rem}
input,textarea,select{font:inherit;color:#e5e5e5;background:#141414;border:1px solid #2a2a2a;padding:.3em .5em}
label{display:block;margin:.6rem 0}
label>span{display:block;font-size:.8em;color:#6b7280}
table{width:100%;border-collapse:collapse}
td,th{text-align:left;padding:.3em .5em;border-bottom:1px solid #1e1e1e}
.toast{position:fixed;top:1rem;right:1rem;background:#323232;color:#fff;padding:.75rem 1rem;border-radius:.4rem;font-size:.9rem;max-width:24rem;z-index:999}
.inline{display:inline}
</style>
<body>
<div class="container">
  <header>
    <h1 style="margin-top:1rem;"><a href="{{ url_for('index') }}" style="color:#4ade80;">{{ site.siteName }}</a></h1>
    <p class="muted">{{ site.siteDescription }}</p>
    <nav aria-label="Primary">
      <a href="{{ url_for('blog_index') }}">blog/</a>
      <a href="{{ url_for('art_index') }}">art/</a>
      <a href="{{ url_for('about') }}">about</a>
      {% if logged_in %}
      <a href="{{ url_for('admin_dashboard') }}">admin/</a>
      <a href="{{ url_for('logout') }}">logout</a>
      {% endif %}
    </nav>
  </header>
  {% with msgs = get_flashed_messages() %}
  {% if msgs %}
    <div role="status" aria-live="polite" class="toast">{% for m in msgs %}{{ m }}{% if not loop.last %}<br>{% endif %}{% endfor %}</div>
  {% endif %}
  {% endwith %}
  <main id="main-content">
"""

TEMPL_EPILOG = """
  </main>
  <footer style="margin-top:3rem;padding-top:1rem;border-top:1px solid #1e1e1e;" class="muted">
    © {{ site.authorName }} ·
    <a href="{{ site.githubUrl }}">github</a> ·
    <a href="{{ url_for('rss') }}">rss</a> ·
    <span>v{{ version }}</span>
  </footer>
</div>
</body>
</html>
"""

app.jinja_env.globals["version"] = __version__
app.jinja_env.globals["reading_time"] = reading_time
app.jinja_env.globals["display_date"] = display_date


TEMPL_POST_LIST = """
{% for p in posts %}
  <article style="margin-bottom:2rem;">
    <h3 style="margin-bottom:.3rem;"><a href="{{ url_for('post_detail', slug=p['slug']) }}">{{ p['title'] }}</a></h3>
    <div class="muted">
      {{ display_date(p)|day }} · reading: {{ reading_time(p['content']) }} min
      {% for t in p['tags'] %}<a class="tag" href="{{ url_for('blog_index', tag=t) }}">#{{ t }}</a>{% endfor %}
    </div>
    {% if p['excerpt'] %}<p>{{ p['excerpt'] }}</p>{% endif %}
  </article>
{% else %}
  <p class="muted">$ ls blog/ → (empty). First post coming soon.</p>
{% endfor %}
"""

TEMPL_ART_GRID = """
<div class="grid">
{% for a in artworks %}
  <a class="card" href="{{ url_for('art_detail', slug=a['slug']) }}">
    <img src="{{ a['image'] }}" alt="{{ a['title'] }}" loading="lazy">
    <div>{{ a['title'] }}</div>
    <div class="muted">{{ a['category'] }} · {{ a['medium'] }}</div>
  </a>
{% else %}
  <p class="muted">$ ls art/ → (empty)</p>
{% endfor %}
</div>
"""

TEMPL_INDEX = wrap(
    """
<h2>$ ls blog/ --recent</h2>
"""
    + TEMPL_POST_LIST
    + """
<h2>$ ls art/ --recent</h2>
"""
    + TEMPL_ART_GRID
)

TEMPL_BLOG = wrap(
    """
<h2># blog{% if tag %} <span class="muted">#{{ tag }}</span>{% endif %}</h2>
<p>
  <a class="tag" href="{{ url_for('blog_index') }}">all</a>
  {% for t in tags %}<a class="tag" href="{{ url_for('blog_index', tag=t) }}">#{{ t }}</a>{% endfor %}
</p>
"""
    + TEMPL_POST_LIST
)

TEMPL_POST = wrap("""
<article>
  <h2>{{ post['title'] }}</h2>
  <div class="muted">
    {{ display_date(post)|day }} · {{ reading_time(post['content']) }} min read · {{ post['author'] }}
    {% if post['status'] != 'published' %} · <strong>{{ post['status'] }}</strong>{% endif %}
  </div>
  <p>{% for t in post['tags'] %}<a class="tag" href="{{ url_for('blog_index', tag=t) }}">#{{ t }}</a>{% endfor %}</p>
  <div class="e-content">{{ post['content']|md }}</div>
</article>
<nav class="pager">
  <span>{% if adj['previous'] %}← <a href="{{ url_for('post_detail', slug=adj['previous']['slug']) }}">{{ adj['previous']['title'] }}</a>{% endif %}</span>
  <span>{% if adj['next'] %}<a href="{{ url_for('post_detail', slug=adj['next']['slug']) }}">{{ adj['next']['title'] }}</a> →{% endif %}</span>
</nav>
""")

TEMPL_ART = wrap(
    """
<h2># art{% if category %} <span class="muted">{{ category }}</span>{% endif %}</h2>
<p>
  <a class="tag" href="{{ url_for('art_index') }}">all</a>
  {% for c in categories %}<a class="tag" href="{{ url_for('art_index', category=c) }}">{{ c }}</a>{% endfor %}
</p>
"""
    + TEMPL_ART_GRID
)

TEMPL_ART_DETAIL = wrap("""
<article>
  <h2>{{ art['title'] }}</h2>
  <img src="{{ art['image'] }}" alt="{{ art['title'] }}">
  <div class="muted">{{ art['category'] }} · {{ art['medium'] }} · {{ art['dimensions'] }} · {{ art['createdAt']|day }}</div>
  {% if art['description'] %}<p>{{ art['description'] }}</p>{% endif %}
  <p>{% for t in art['tags'] %}<span class="tag">#{{ t }}</span>{% endfor %}</p>
</article>
<nav class="pager">
  <span>{% if adj['previous'] %}← <a href="{{ url_for('art_detail', slug=adj['previous']['slug']) }}">{{ adj['previous']['title'] }}</a>{% endif %}</span>
  <span>{% if adj['next'] %}<a href="{{ url_for('art_detail', slug=adj['next']['slug']) }}">{{ adj['next']['title'] }}</a> →{% endif %}</span>
</nav>
""")

TEMPL_ABOUT = wrap("""
<h2>$ whoami</h2>
<p>{{ site.authorName }}: {{ site.siteDescription }}</p>
<ul>
  <li>email: <a href="mailto:{{ site.authorEmail }}">{{ site.authorEmail }}</a></li>
  <li>github: <a href="{{ site.githubUrl }}">{{ site.githubUrl }}</a></li>
</ul>
""")

TEMPL_LOGIN = wrap("""
<h2>$ login</h2>
<form method="post">
  {% if csrf_token() %}
  <input type="hidden" name="csrf" value="{{ csrf_token() }}">
  {% endif %}
  <input id="token" name="token" type="password" autocomplete="current-password"
         placeholder="token" style="width:100%;">
  <button type="submit" style="margin-top:1rem;">Sign in with Token</button>
</form>
""")

TEMPL_404 = wrap("""
<h2>Page not found</h2>
<p>The URL you asked for doesn’t exist.
   <a href="{{ url_for('index') }}">Back to the front page</a>.</p>
""")

TEMPL_500 = wrap("""
<h2>Internal Server Error</h2>
<p>Our fault, not yours. Please try again in a minute.</p>
""")


###############################################################################
# Public pages
###############################################################################
@app.route("/")
def index():
    cat = get_catalog()
    return render(
        TEMPL_INDEX,
        posts=cat.posts()[:RECENT_POSTS],
        artworks=cat.artworks()[:RECENT_ART],
    )


@app.route("/blog")
def blog_index():
    posts = get_catalog().posts()
    tags = collect_tags(posts)
    tag = request.args.get("tag", "").strip()
    if tag:
        posts = [p for p in posts if tag in p["tags"]]
    return render(TEMPL_BLOG, posts=posts, tags=tags, tag=tag, page_title="blog")


@app.route("/blog/<slug>")
def post_detail(slug):
    cat = get_catalog()
    # the admin may preview drafts; everyone else only sees visible posts
    post = cat.post_by_slug(slug, published_only=not is_authenticated())
    return render(
        TEMPL_POST,
        post=post,
        adj=cat.adjacent_posts(slug),
        page_title=post["title"],
        lang=post["lang"],
    )


@app.route("/art")
def art_index():
    artworks = get_catalog().artworks()
    categories = collect_categories(artworks)
    category = request.args.get("category", "").strip()
    if category:
        artworks = [a for a in artworks if a.get("category") == category]
    return render(
        TEMPL_ART,
        artworks=artworks,
        categories=categories,
        category=category,
        page_title="art",
    )


@app.route("/art/<slug>")
def art_detail(slug):
    cat = get_catalog()
    art = cat.artwork(slug)
    return render(
        TEMPL_ART_DETAIL,
        art=art,
        adj=cat.adjacent_artworks(art["slug"]),
        page_title=art["title"],
    )


@app.route("/about")
def about():
    return render(TEMPL_ABOUT, page_title="about")


def _site_url() -> str:
    return (app.config.get("SITE_URL") or request.url_root).rstrip("/")


def _rfc2822(value) -> str:
    dt = parse_ts(value)
    return dt.strftime(RFC2822_FMT) if dt else ""


@app.route("/rss")
def rss():
    cat = get_catalog()
    site = cat.settings()
    base = _site_url()
    items = []
    for p in cat.posts()[:FEED_SIZE]:
        link = f"{base}{url_for('post_detail', slug=p['slug'])}"
        cat_xml = "".join(f"<category>{escape(t)}</category>" for t in p["tags"])
        items.append(
            f"""
        <item>
          <title>{escape(p['title'])}</title>
          <link>{link}</link>
          <guid isPermaLink="true">{link}</guid>
          <pubDate>{_rfc2822(display_date(p))}</pubDate>
          {cat_xml}
          <description><![CDATA[{render_markdown_html(p['content'])}]]></description>
        </item>"""
        )

    xml = f"""<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0"
     xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>{escape(site['siteName'])}</title>
    <link>{base}</link>
    <description>{escape(site['siteDescription'])}</description>
    <lastBuildDate>{_rfc2822(utc_now())}</lastBuildDate>
    <atom:link href="{base}{url_for('rss')}"
               rel="self"
               type="application/rss+xml" />
    {"".join(items)}
  </channel>
</rss>"""
    return app.response_class(xml, mimetype="application/rss+xml")


@app.route("/sitemap.xml")
def sitemap():
    cat = get_catalog()
    base = _site_url()
    now = iso(utc_now())
    urls = [
        (base, now, "weekly", "1.0"),
        (f"{base}/about", now, "monthly", "0.8"),
        (f"{base}/blog", now, "daily", "0.9"),
        (f"{base}/art", now, "weekly", "0.9"),
    ]
    for p in cat.posts():
        urls.append(
            (
                f"{base}{url_for('post_detail', slug=p['slug'])}",
                p.get("updatedAt") or display_date(p),
                "monthly",
                "0.7",
            )
        )
    for a in cat.artworks():
        urls.append(
            (f"{base}{url_for('art_detail', slug=a['slug'])}", a.get("createdAt"), "monthly", "0.6")
        )

    body = "".join(
        f"<url><loc>{escape(loc)}</loc>"
        + (f"<lastmod>{escape(str(mod))}</lastmod>" if mod else "")
        + f"<changefreq>{freq}</changefreq><priority>{prio}</priority></url>"
        for loc, mod, freq, prio in urls
    )
    xml = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{body}</urlset>"
    )
    return app.response_class(xml, mimetype="application/xml")


@app.route("/robots.txt")
def robots():
    rules = f"User-agent: *\nAllow: /\nDisallow: /api/\n\nSitemap: {_site_url()}/sitemap.xml\n"
    return (
        Response(rules, mimetype="text/plain"),
        200,
        {"Cache-Control": "public, max-age=86400"},
    )


###############################################################################
# Admin panel
###############################################################################
# validation failures re-render the form; NotFound still goes to the 404 page
FORM_ERRORS = (MissingRequiredField, InvalidEnumValue, InvalidFieldValue)
ADMIN_TOP_PAGES = 10


@app.template_filter("dtlocal")
def dtlocal_filter(value) -> str:
    """ISO timestamp → value for <input type=datetime-local> (UTC)."""
    dt = parse_ts(value)
    return dt.strftime("%Y-%m-%dT%H:%M") if dt else ""


def _post_form() -> dict:
    f = request.form
    fields = {
        "title": f.get("title", "").strip(),
        "content": f.get("content", ""),
        "excerpt": f.get("excerpt", "").strip(),
        "tags": f.get("tags", ""),
    }
    # blank optional inputs mean "leave as is / use the default"
    for key in ("slug", "lang", "status", "scheduledAt"):
        val = f.get(key, "").strip()
        if val:
            fields[key] = val
    return fields


def _artwork_form() -> dict:
    f = request.form
    fields = {
        k: f.get(k, "").strip()
        for k in ("title", "image", "medium", "dimensions", "category", "description")
    }
    fields["tags"] = f.get("tags", "")
    slug = f.get("slug", "").strip()
    if slug:
        fields["slug"] = slug
    return fields


def _ingest_upload(folder: str) -> dict | None:
    """Run the optional ``file`` form field through the image pipeline."""
    f = request.files.get("file")
    if f is None or not f.filename:
        return None
    media = get_media()
    if media is None:
        raise FolioError("Image uploads are not configured.")
    return ingest_image(f.read(), f.filename, folder, media, now=utc_now())


@app.route("/admin")
def admin_dashboard():
    login_required()
    cat = get_catalog()
    summary = analytics_summary(cat)
    peak = max([d["views"] for d in summary["dailyViews"]] + [1])
    return render(
        TEMPL_ADMIN,
        stats=summary["stats"],
        daily=summary["dailyViews"],
        peak=peak,
        top_pages=summary["pageViews"][:ADMIN_TOP_PAGES],
        recent=cat.posts(published_only=False)[:RECENT_POSTS],
        r2_configured=r2_is_configured(),
        page_title="admin",
    )


@app.route("/admin/posts")
def admin_posts():
    login_required()
    posts = get_catalog().posts(published_only=False)
    status = request.args.get("status", "")
    if status in POST_STATUSES:
        posts = [p for p in posts if p["status"] == status]
    return render(
        TEMPL_ADMIN_POSTS,
        posts=posts,
        status=status,
        statuses=POST_STATUSES,
        now=utc_now(),
        is_visible=is_visible,
        page_title="posts",
    )


@app.route("/admin/posts/new", methods=["GET", "POST"])
@app.route("/admin/posts/<post_id>", methods=["GET", "POST"])
def admin_post_editor(post_id=None):
    login_required()
    cat = get_catalog()
    post = cat.post_by_id(post_id) if post_id else None

    if request.method == "POST":
        fields = _post_form()
        try:
            if post is None:
                post_id = cat.create_post(fields)
                flash("Post created.")
            else:
                cat.update_post(post_id, fields)
                flash("Post saved.")
        except FORM_ERRORS as exc:
            flash(exc.message)
            return (
                render(
                    TEMPL_ADMIN_POST_EDITOR,
                    post={**(post or {}), **fields},
                    post_id=post_id,
                    statuses=POST_STATUSES,
                    langs=LANGS,
                    page_title="edit post",
                ),
                400,
            )
        return redirect(url_for("admin_post_editor", post_id=post_id), code=303)

    return render(
        TEMPL_ADMIN_POST_EDITOR,
        post=post or {"status": "draft", "lang": "vi"},
        post_id=post_id,
        statuses=POST_STATUSES,
        langs=LANGS,
        page_title="edit post" if post else "new post",
    )


@app.route("/admin/posts/<post_id>/delete", methods=["POST"])
def admin_delete_post(post_id):
    login_required()
    get_catalog().delete_post(post_id)
    flash("Post deleted.")
    return redirect(url_for("admin_posts"), code=303)


@app.route("/admin/art")
def admin_art():
    login_required()
    return render(
        TEMPL_ADMIN_ART, artworks=get_catalog().artworks(), page_title="art"
    )


@app.route("/admin/art/new", methods=["GET", "POST"])
@app.route("/admin/art/<art_id>", methods=["GET", "POST"])
def admin_art_editor(art_id=None):
    login_required()
    cat = get_catalog()
    art = cat.artwork(art_id) if art_id else None

    if request.method == "POST":
        fields = _artwork_form()
        try:
            uploaded = _ingest_upload("art")
            if uploaded:
                fields["image"] = uploaded["url"]
            if art is None:
                art_id = cat.create_artwork(fields)
                flash("Artwork created.")
            else:
                cat.update_artwork(art["id"], fields)
                flash("Artwork saved.")
        except FolioError as exc:
            if isinstance(exc, NotFound):
                raise
            flash(exc.message)
            return (
                render(
                    TEMPL_ADMIN_ART_EDITOR,
                    art={**(art or {}), **fields},
                    art_id=art_id,
                    categories=ART_CATEGORIES,
                    page_title="edit artwork",
                ),
                400,
            )
        return redirect(url_for("admin_art_editor", art_id=art_id), code=303)

    return render(
        TEMPL_ADMIN_ART_EDITOR,
        art=art or {},
        art_id=art["id"] if art else None,
        categories=ART_CATEGORIES,
        page_title="edit artwork" if art else "new artwork",
    )


@app.route("/admin/art/<art_id>/delete", methods=["POST"])
def admin_delete_artwork(art_id):
    login_required()
    art = get_catalog().delete_artwork(art_id)
    flash(f"Artwork deleted. Its image is still at {art['image']}")
    return redirect(url_for("admin_art"), code=303)


@app.route("/admin/media", methods=["GET", "POST"])
def admin_media():
    login_required()
    folder = request.values.get("folder", "")

    if request.method == "POST":
        try:
            if folder not in FOLDERS:
                raise InvalidFolder(folder, FOLDERS)
            result = _ingest_upload(folder)
            if result is None:
                raise MissingRequiredField("file")
            flash(
                f"Uploaded {result['key']} "
                f"({result['original']['size']} → {result['processed']['size']} bytes)"
            )
        except FolioError as exc:
            flash(exc.message)
        return redirect(url_for("admin_media", folder=folder), code=303)

    media = get_media()
    files = []
    if media is not None:
        try:
            files = media.list(f"{folder}/" if folder in FOLDERS else None)
        except FolioError as exc:
            flash(exc.message)
    return render(
        TEMPL_ADMIN_MEDIA,
        files=files,
        folder=folder,
        folders=FOLDERS,
        configured=media is not None,
        page_title="media",
    )


@app.route("/admin/media/delete", methods=["POST"])
def admin_delete_media():
    login_required()
    key = request.form.get("key", "").strip()
    media = get_media()
    if not key or media is None:
        abort(400)
    flash("File deleted." if media.delete(key) else "Failed to delete file.")
    return redirect(url_for("admin_media", folder=request.form.get("folder", "")), code=303)


@app.route("/admin/settings", methods=["GET", "POST"])
def admin_settings():
    login_required()
    cat = get_catalog()

    if request.method == "POST" and request.form.get("action") == "rotate_token":
        session["one_time_token"] = _rotate_token(get_db())
        return redirect(url_for("admin_settings") + "#new-token", code=303)

    if request.method == "POST":
        cat.update_settings(
            {k: request.form[k].strip() for k in SETTINGS_FIELDS if request.form.get(k)}
        )
        flash("Settings saved.")
        return redirect(url_for("admin_settings"), code=303)

    return render(
        TEMPL_ADMIN_SETTINGS,
        fields=SETTINGS_FIELDS,
        new_token=session.pop("one_time_token", None),
        r2_configured=r2_is_configured(),
        page_title="settings",
    )


TEMPL_ADMIN_NAV = """
<nav aria-label="Admin" style="margin:1rem 0;">
  <a class="tag" href="{{ url_for('admin_dashboard') }}">dashboard</a>
  <a class="tag" href="{{ url_for('admin_posts') }}">posts</a>
  <a class="tag" href="{{ url_for('admin_art') }}">art</a>
  <a class="tag" href="{{ url_for('admin_media') }}">media</a>
  <a class="tag" href="{{ url_for('admin_settings') }}">settings</a>
</nav>
"""

TEMPL_CSRF = """
{% if csrf_token() %}<input type="hidden" name="csrf" value="{{ csrf_token() }}">{% endif %}
"""

TEMPL_ADMIN = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>$ stats</h2>
<table>
  <tr><th>posts</th><td>{{ stats.totalPosts }}</td>
      <th>published</th><td>{{ stats.publishedPosts }}</td></tr>
  <tr><th>drafts</th><td>{{ stats.draftPosts }}</td>
      <th>scheduled</th><td>{{ stats.scheduledPosts }}</td></tr>
  <tr><th>artworks</th><td>{{ stats.totalArt }}</td>
      <th>page views</th><td>{{ stats.totalViews }}</td></tr>
</table>
{% if not r2_configured %}<p class="muted">R2 is not configured: uploads are disabled.</p>{% endif %}

<h2>$ views --last 7d</h2>
<table>
{% for d in daily %}
  <tr><td>{{ d.date }}</td>
      <td style="width:60%;"><span style="display:inline-block;height:.8em;background:#4ade80;width:{{ (100 * d.views / peak)|round(1) }}%;"></span></td>
      <td>{{ d.views }}</td></tr>
{% endfor %}
</table>

<h2>$ top pages</h2>
<table>
{% for pv in top_pages %}
  <tr><td><a href="{{ pv.path }}">{{ pv.path }}</a></td><td>{{ pv.views }}</td></tr>
{% else %}
  <tr><td class="muted">no views yet</td></tr>
{% endfor %}
</table>

<h2>$ recent posts</h2>
<ul>
{% for p in recent %}
  <li><a href="{{ url_for('admin_post_editor', post_id=p['id']) }}">{{ p['title'] }}</a>
      <span class="muted">{{ p['status'] }}</span></li>
{% endfor %}
</ul>
<p><a href="{{ url_for('admin_post_editor') }}">+ new post</a> · <a href="{{ url_for('admin_art_editor') }}">+ new artwork</a></p>
"""
)

TEMPL_ADMIN_POSTS = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>$ ls posts/{% if status %} --status={{ status }}{% endif %}</h2>
<p>
  <a class="tag" href="{{ url_for('admin_posts') }}">all</a>
  {% for s in statuses %}<a class="tag" href="{{ url_for('admin_posts', status=s) }}">{{ s }}</a>{% endfor %}
  · <a href="{{ url_for('admin_post_editor') }}">+ new post</a>
</p>
<table>
{% for p in posts %}
  <tr>
    <td><a href="{{ url_for('admin_post_editor', post_id=p['id']) }}">{{ p['title'] }}</a>
        <div class="muted">/blog/{{ p['slug'] }} · {{ p['lang'] }}</div></td>
    <td>{{ p['status'] }}
        {% if p['status'] == 'scheduled' %}
          <div class="muted">{{ p['scheduledAt']|dtlocal }} UTC{% if is_visible(p, now) %} (live){% endif %}</div>
        {% endif %}</td>
    <td class="muted">{{ p['updatedAt']|day }}</td>
    <td>
      <form method="post" class="inline" action="{{ url_for('admin_delete_post', post_id=p['id']) }}"
            onsubmit="return confirm('Delete this post?');">
        """
    + TEMPL_CSRF
    + """
        <button type="submit">delete</button>
      </form>
    </td>
  </tr>
{% else %}
  <tr><td class="muted">no posts</td></tr>
{% endfor %}
</table>
"""
)

TEMPL_ADMIN_POST_EDITOR = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>{% if post_id %}$ edit {{ post.get('slug', '') }}{% else %}$ new post{% endif %}</h2>
<form method="post">
  """
    + TEMPL_CSRF
    + """
  <label><span>Title</span>
    <input name="title" value="{{ post.get('title', '') }}" style="width:100%;" placeholder="Post title..."></label>
  <label><span>Slug (blank = from title)</span>
    <input name="slug" value="{{ post.get('slug', '') }}" style="width:100%;"></label>
  <label><span>Tags (comma separated)</span>
    <input name="tags" style="width:100%;" placeholder="ai, dev, tools"
           value="{% if post.get('tags') is string %}{{ post['tags'] }}{% else %}{{ (post.get('tags') or [])|join(', ') }}{% endif %}"></label>
  <label><span>Excerpt</span>
    <input name="excerpt" value="{{ post.get('excerpt', '') }}" style="width:100%;" placeholder="Short description..."></label>
  <label><span>Content (markdown)</span>
    <textarea name="content" rows="18" style="width:100%;" placeholder="Write your post in markdown...">{{ post.get('content', '') }}</textarea></label>
  <div style="display:flex;gap:1.2rem;flex-wrap:wrap;">
    <label><span>Language</span>
      <select name="lang">
        {% for l in langs %}<option value="{{ l }}"{% if post.get('lang') == l %} selected{% endif %}>{{ l }}</option>{% endfor %}
      </select></label>
    <label><span>Status</span>
      <select name="status">
        {% for s in statuses %}<option value="{{ s }}"{% if post.get('status') == s %} selected{% endif %}>{{ s }}</option>{% endfor %}
      </select></label>
    <label><span>Publish at (UTC, scheduled only)</span>
      <input type="datetime-local" name="scheduledAt" value="{{ post.get('scheduledAt')|dtlocal }}"></label>
  </div>
  <button type="submit">Save</button>
  {% if post_id and post.get('slug') %}
    · <a href="{{ url_for('post_detail', slug=post['slug']) }}">preview</a>
  {% endif %}
</form>
{% if post.get('publishedAt') %}<p class="muted">first published {{ post['publishedAt']|day }}</p>{% endif %}
"""
)

TEMPL_ADMIN_ART = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>$ ls art/</h2>
<p><a href="{{ url_for('admin_art_editor') }}">+ new artwork</a></p>
<table>
{% for a in artworks %}
  <tr>
    <td><img src="{{ a['image'] }}" alt="" style="width:6rem;"></td>
    <td><a href="{{ url_for('admin_art_editor', art_id=a['id']) }}">{{ a['title'] }}</a>
        <div class="muted">{{ a['category'] }} · {{ a['medium'] }} · {{ a['createdAt']|day }}</div></td>
    <td>
      <form method="post" class="inline" action="{{ url_for('admin_delete_artwork', art_id=a['id']) }}"
            onsubmit="return confirm('Delete this artwork?');">
        """
    + TEMPL_CSRF
    + """
        <button type="submit">delete</button>
      </form>
    </td>
  </tr>
{% else %}
  <tr><td class="muted">no artworks</td></tr>
{% endfor %}
</table>
"""
)

TEMPL_ADMIN_ART_EDITOR = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>{% if art_id %}$ edit {{ art.get('slug', '') }}{% else %}$ new artwork{% endif %}</h2>
<form method="post" enctype="multipart/form-data">
  """
    + TEMPL_CSRF
    + """
  <label><span>Title</span>
    <input name="title" value="{{ art.get('title', '') }}" style="width:100%;"></label>
  <label><span>Slug (blank = from title)</span>
    <input name="slug" value="{{ art.get('slug', '') }}" style="width:100%;"></label>
  <label><span>Image URL</span>
    <input name="image" value="{{ art.get('image', '') }}" style="width:100%;"></label>
  <label><span>…or upload a new image (stored under art/)</span>
    <input type="file" name="file" accept="image/*"></label>
  {% if art.get('image') %}<img src="{{ art['image'] }}" alt="" style="max-width:16rem;">{% endif %}
  <label><span>Medium</span>
    <input name="medium" value="{{ art.get('medium', '') }}" style="width:100%;" placeholder="Watercolor on paper"></label>
  <label><span>Dimensions</span>
    <input name="dimensions" value="{{ art.get('dimensions', '') }}" style="width:100%;" placeholder="30x40cm"></label>
  <label><span>Category</span>
    <select name="category">
      {% for c in categories %}<option value="{{ c }}"{% if art.get('category') == c %} selected{% endif %}>{{ c }}</option>{% endfor %}
    </select></label>
  <label><span>Tags (comma separated)</span>
    <input name="tags" style="width:100%;"
           value="{% if art.get('tags') is string %}{{ art['tags'] }}{% else %}{{ (art.get('tags') or [])|join(', ') }}{% endif %}"></label>
  <label><span>Description</span>
    <textarea name="description" rows="4" style="width:100%;">{{ art.get('description', '') }}</textarea></label>
  <button type="submit">Save</button>
</form>
"""
)

TEMPL_ADMIN_MEDIA = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>$ ls media/{{ folder }}</h2>
{% if not configured %}
  <p class="muted">Image uploads are not configured. Set the R2_* keys in the environment or folio/.env.</p>
{% else %}
<form method="post" enctype="multipart/form-data">
  """
    + TEMPL_CSRF
    + """
  <select name="folder">
    {% for f in folders %}<option value="{{ f }}"{% if folder == f %} selected{% endif %}>{{ f }}</option>{% endfor %}
  </select>
  <input type="file" name="file" accept="image/*">
  <button type="submit">Upload</button>
</form>
<p>
  <a class="tag" href="{{ url_for('admin_media') }}">all</a>
  {% for f in folders %}<a class="tag" href="{{ url_for('admin_media', folder=f) }}">{{ f }}</a>{% endfor %}
</p>
<div class="grid">
{% for obj in files %}
  <div class="card">
    <a href="{{ obj.url }}"><img src="{{ obj.url }}" alt="" loading="lazy"></a>
    <div class="muted">{{ obj.key }} · {{ (obj.size / 1024)|round(1) }} KB</div>
    <input value="{{ obj.url }}" readonly style="width:100%;" onclick="this.select()">
    <form method="post" action="{{ url_for('admin_delete_media') }}"
          onsubmit="return confirm('Delete this file?');">
      """
    + TEMPL_CSRF
    + """
      <input type="hidden" name="key" value="{{ obj.key }}">
      <input type="hidden" name="folder" value="{{ folder }}">
      <button type="submit">delete</button>
    </form>
  </div>
{% else %}
  <p class="muted">(empty)</p>
{% endfor %}
</div>
{% endif %}
"""
)

TEMPL_ADMIN_SETTINGS = wrap(
    TEMPL_ADMIN_NAV
    + """
<h2>$ settings</h2>
<form method="post">
  """
    + TEMPL_CSRF
    + """
  {% for f in fields %}
  <label><span>{{ f }}</span>
    <input name="{{ f }}" value="{{ site[f] }}" style="width:100%;"></label>
  {% endfor %}
  <button type="submit">Save</button>
</form>
<p class="muted">R2: {{ "configured" if r2_configured else "not configured" }}</p>

<h2 id="new-token">$ login token</h2>
{% if new_token %}
  <p>New one-time token (valid for 1 minute):</p>
  <pre>{{ new_token }}</pre>
{% endif %}
<form method="post">
  """
    + TEMPL_CSRF
    + """
  <input type="hidden" name="action" value="rotate_token">
  <button type="submit">Generate a new login token</button>
</form>
"""
)


###############################################################################
# JSON API – posts
###############################################################################
def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.route("/api/posts", methods=["GET"])
def api_posts():
    published_only = request.args.get("published") != "false"
    if not published_only:
        login_required()
    return {"posts": get_catalog().posts(published_only=published_only)}


@app.route("/api/posts", methods=["POST"])
def api_create_post():
    login_required()
    post_id = get_catalog().create_post(_json_body())
    return {"id": post_id, "message": "Post created successfully"}, 201


@app.route("/api/posts/<post_id>", methods=["GET"])
def api_post(post_id):
    cat = get_catalog()
    post = cat.post_by_id(post_id)
    if not is_authenticated() and not is_visible(post, utc_now()):
        raise NotFound(f"Post {post_id!r} not found")
    return {"post": post}


@app.route("/api/posts/<post_id>", methods=["PUT"])
def api_update_post(post_id):
    login_required()
    post = get_catalog().update_post(post_id, _json_body())
    return {"message": "Post updated successfully", "post": post}


@app.route("/api/posts/<post_id>", methods=["DELETE"])
def api_delete_post(post_id):
    login_required()
    get_catalog().delete_post(post_id)
    return {"message": "Post deleted successfully"}


###############################################################################
# JSON API – art
###############################################################################
@app.route("/api/art", methods=["GET"])
def api_artworks():
    artworks = get_catalog().artworks()
    return {"artworks": artworks, "categories": collect_categories(artworks)}


@app.route("/api/art", methods=["POST"])
def api_create_artwork():
    login_required()
    art_id = get_catalog().create_artwork(_json_body())
    return {"id": art_id, "message": "Artwork created successfully"}, 201


@app.route("/api/art/<slug>", methods=["GET"])
def api_artwork(slug):
    cat = get_catalog()
    art = cat.artwork(slug)
    return {"artwork": art, "adjacent": cat.adjacent_artworks(art["slug"])}


@app.route("/api/art/<slug>", methods=["PUT"])
def api_update_artwork(slug):
    login_required()
    art = get_catalog().update_artwork(slug, _json_body())
    return {"message": "Artwork updated successfully", "artwork": art}


@app.route("/api/art/<slug>", methods=["DELETE"])
def api_delete_artwork(slug):
    login_required()
    art = get_catalog().delete_artwork(slug)
    # the image stays in R2; DELETE /api/upload?key=… removes it
    return {"message": "Artwork deleted successfully", "image": art["image"]}


###############################################################################
# JSON API – settings
###############################################################################
@app.route("/api/settings", methods=["GET"])
def api_settings():
    return {"settings": get_catalog().settings()}


@app.route("/api/settings", methods=["PUT"])
def api_update_settings():
    login_required()
    settings = get_catalog().update_settings(_json_body())
    return {"message": "Settings updated successfully", "settings": settings}


###############################################################################
# JSON API – media
###############################################################################
@app.route("/api/upload", methods=["POST"])
def api_upload():
    login_required()
    folder = request.form.get("folder") or "blog"
    if folder not in FOLDERS:
        raise InvalidFolder(folder, FOLDERS)
    media = _require_media()

    f = request.files.get("file")
    if f is None or not f.filename:
        raise MissingRequiredField("file")

    result = ingest_image(f.read(), f.filename, folder, media, now=utc_now())
    return result, 201


@app.route("/api/upload", methods=["GET"])
def api_list_uploads():
    login_required()
    media = _require_media()
    folder = request.args.get("folder") or None
    files = media.list(f"{folder}/" if folder else None)
    for obj in files:
        if isinstance(obj["lastModified"], datetime):
            obj["lastModified"] = iso(obj["lastModified"])
    return {"files": files, "folders": list(FOLDERS)}


@app.route("/api/upload", methods=["DELETE"])
def api_delete_upload():
    login_required()
    media = _require_media()
    key = request.args.get("key", "").strip()
    if not key:
        raise MissingRequiredField("key")
    if not media.delete(key):
        return {"error": "Failed to delete file"}, 502
    return {"message": "File deleted successfully"}


###############################################################################
# JSON API – analytics
###############################################################################
@app.route("/api/analytics", methods=["POST"])
def api_track():
    path = str(_json_body().get("path") or "").strip()
    if not path:
        raise MissingRequiredField("path")
    get_catalog().record_page_view(path)
    return {"message": "Page view recorded"}


@app.route("/api/analytics", methods=["GET"])
def api_analytics():
    login_required()
    return analytics_summary(get_catalog())


def analytics_summary(cat: Catalog) -> dict:
    """Raw counters plus post/art counts, shared by the API and the dashboard."""
    now = utc_now()
    page_views = cat.page_views()
    posts = cat.posts(published_only=False)
    visible = sum(1 for p in posts if is_visible(p, now))
    return {
        "pageViews": page_views,
        "dailyViews": cat.daily_views(7),
        "stats": {
            "totalPosts": len(posts),
            "publishedPosts": visible,
            "draftPosts": sum(1 for p in posts if p["status"] == "draft"),
            "scheduledPosts": sum(
                1 for p in posts if p["status"] == "scheduled" and not is_visible(p, now)
            ),
            "totalArt": len(cat.artworks()),
            "totalViews": sum(pv["views"] for pv in page_views),
        },
    }


###############################################################################
# Error pages
###############################################################################
def _wants_json() -> bool:
    return request.path.startswith("/api/")


@app.errorhandler(FolioError)
def folio_error(exc: FolioError):
    if isinstance(exc, NotFound) and not _wants_json():
        return render(TEMPL_404, page_title="not found"), 404
    if exc.status >= 500:
        app.logger.error("%s: %s", exc.kind, exc.message)
    return jsonify(exc.to_dict()), exc.status


@app.errorhandler(RequestEntityTooLarge)
def too_large(exc):
    err = PayloadTooLarge(f"Request exceeds {REQUEST_MAX_BYTES // (1024 * 1024)}MB")
    return jsonify(err.to_dict()), err.status


@app.errorhandler(404)
def not_found(exc):
    """Site-wide “Not Found” page."""
    if _wants_json():
        return jsonify(NotFound("Not found").to_dict()), 404
    return render(TEMPL_404, page_title="not found"), 404


@app.errorhandler(500)
def internal_error(exc):
    app.logger.error("unhandled error on %s: %s", request.path, exc)
    if _wants_json():
        return jsonify({"error": "Internal server error"}), 500
    return render(TEMPL_500), 500


###############################################################################
# main
###############################################################################
if __name__ == "__main__":
    with app.app_context():
        init_db()
    app.run(debug=True)
