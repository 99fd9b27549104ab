"""Tests for page, sitemap and robots rendering."""

from __future__ import annotations

from app.web import build_meta, render_page, render_robots, render_sitemap
from conftest import build_settings


def test_build_meta_defaults() -> None:
    meta = build_meta(build_settings(APP_NAME="PanStream"), "https://pan.example.com/", path="detail/1")

    assert meta.title == "PanStream • Luxury streaming experience"
    assert meta.url == "https://pan.example.com/detail/1"
    assert meta.image == "https://pan.example.com/public/img/og.png"


def test_render_page_escapes_meta_and_state() -> None:
    meta = build_meta(
        build_settings(APP_NAME="PanStream"),
        "https://pan.example.com",
        path="/",
        title='Love & "War"',
    )

    html = render_page("home", meta, {"name": "</script><b>", "note": "__TITLE__"})

    assert "<title>Love &amp; &quot;War&quot; • PanStream</title>" in html
    assert "</script><b>" not in html
    assert '"note": "__TITLE__"' in html
    assert "<script src=" not in html
    assert "stylesheet" not in html


def test_render_page_links_assets_under_prefix() -> None:
    meta = build_meta(build_settings(), "https://pan.example.com", path="/watch/1/2")

    html = render_page("watch", meta, {}, asset_prefix="/public/")

    assert '<link rel="stylesheet" href="/public/css/app.css" />' in html
    assert '<script src="/public/js/watch.js" defer></script>' in html


def test_render_sitemap_deduplicates_ids() -> None:
    xml = render_sitemap("https://pan.example.com/", ["1", "", "1", "a b"])

    assert xml.count("/detail/1</loc>") == 1
    assert "https://pan.example.com/detail/a%20b" in xml
    assert "<loc>https://pan.example.com/browse?classify=terbaru</loc>" in xml


def test_render_robots() -> None:
    assert render_robots("https://pan.example.com/").endswith(
        "Sitemap: https://pan.example.com/sitemap.xml\n"
    )
