"""HTML shell pages, sitemap and robots rendering."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from html import escape
from textwrap import dedent
from typing import Any, Iterable
from urllib.parse import quote
from xml.sax.saxutils import escape as xml_escape

from .config import Settings


PAGE_TEMPLATE = dedent(
    """
<!DOCTYPE html>
<html lang="id">
<head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__TITLE__</title>
    <meta name="description" content="__DESCRIPTION__" />
    <link rel="canonical" href="__URL__" />
    <meta property="og:site_name" content="__SITE_NAME__" />
    <meta property="og:title" content="__TITLE__" />
    <meta property="og:description" content="__DESCRIPTION__" />
    <meta property="og:url" content="__URL__" />
    <meta property="og:image" content="__IMAGE__" />
    <meta name="twitter:card" content="summary_large_image" />
__STYLESHEET__
</head>
<body data-page="__PAGE__">
    <main id="pan-root"></main>
    <script id="pan-state" type="application/json">__STATE__</script>
__PAGE_SCRIPT__
</body>
</html>
"""
).strip()

PLACEHOLDER_RE = re.compile(r"__[A-Z_]+__")

SITEMAP_ENTRY = dedent(
    """
  <url>
    <loc>{loc}</loc>
    <changefreq>{changefreq}</changefreq>
    <priority>{priority}</priority>
  </url>"""
)


@dataclass(slots=True)
class PageMeta:
    """Head metadata for a rendered page."""

    title: str
    description: str
    url: str
    image: str
    site_name: str


def build_meta(
    settings: Settings,
    base_url: str,
    *,
    path: str,
    title: str | None = None,
    description: str | None = None,
    image: str | None = None,
) -> PageMeta:
    resolved_title = (
        f"{title} • {settings.app_name}"
        if title
        else f"{settings.app_name} • {settings.site_tagline}"
    )
    resolved_description = description or (
        f"{settings.app_name} – streaming drama pilihanmu dengan pengalaman premium."
    )
    normalized_path = path if path.startswith("/") else f"/{path}"
    return PageMeta(
        title=resolved_title,
        description=resolved_description[:160],
        url=f"{base_url.rstrip('/')}{normalized_path}",
        image=image or f"{base_url.rstrip('/')}/public/img/og.png",
        site_name=settings.app_name,
    )


def _state_json(state: dict[str, Any]) -> str:
    # Keep "</script>" inside string values from closing the tag.
    return json.dumps(state, ensure_ascii=False).replace("</", "<\\/")


def render_page(
    page: str,
    meta: PageMeta,
    state: dict[str, Any],
    *,
    asset_prefix: str | None = None,
) -> str:
    """Return the shell HTML for ``page`` with its initial state embedded.

    Stylesheet and page script tags are emitted only when ``asset_prefix``
    names the mount point of the static asset directory.
    """

    stylesheet = script = ""
    if asset_prefix:
        prefix = escape(asset_prefix.rstrip("/"))
        stylesheet = f'    <link rel="stylesheet" href="{prefix}/css/app.css" />'
        script = f'    <script src="{prefix}/js/{escape(page)}.js" defer></script>'

    replacements = {
        "__TITLE__": escape(meta.title),
        "__DESCRIPTION__": escape(meta.description),
        "__URL__": escape(meta.url),
        "__IMAGE__": escape(meta.image),
        "__SITE_NAME__": escape(meta.site_name),
        "__PAGE__": escape(page),
        "__STATE__": _state_json(state),
        "__STYLESHEET__": stylesheet,
        "__PAGE_SCRIPT__": script,
    }
    # Single pass, so placeholder-like text inside values is left alone.
    return PLACEHOLDER_RE.sub(
        lambda match: replacements.get(match.group(0), match.group(0)), PAGE_TEMPLATE
    )


def render_sitemap(base_url: str, book_ids: Iterable[str]) -> str:
    base = base_url.rstrip("/")
    entries = [
        (f"{base}/", "daily", "1.0"),
        (f"{base}/browse?classify=terbaru", "daily", "0.8"),
    ]
    seen: set[str] = set()
    for book_id in book_ids:
        if not book_id or book_id in seen:
            continue
        seen.add(book_id)
        entries.append((f"{base}/detail/{quote(book_id, safe='')}", "weekly", "0.7"))

    body = "".join(
        SITEMAP_ENTRY.format(loc=xml_escape(loc), changefreq=changefreq, priority=priority)
        for loc, changefreq, priority in entries
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        f"{body}\n</urlset>"
    )


def render_robots(base_url: str) -> str:
    return f"User-agent: *\nAllow: /\nSitemap: {base_url.rstrip('/')}/sitemap.xml\n"
