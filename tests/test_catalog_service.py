"""Tests for the catalog service: caching, fan-out, detail and playback."""

from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from app.errors import PreconditionError, UpstreamError
from app.services.cache import ResponseCache
from app.services.catalog import CatalogService
from app.services.upstream import UpstreamClient
from conftest import build_settings

BASE_URL = "https://api.example.com/api"

Handler = Callable[[httpx.Request], httpx.Response]


def card(book_id: str, cover: str = "") -> dict[str, Any]:
    return {"bookId": book_id, "bookName": f"Title {book_id}", "coverWap": cover}


class Harness:
    """Builds a service over a mock transport and records upstream requests."""

    def __init__(self, handler: Handler, **settings: Any) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler
        self.settings = build_settings(**settings)
        self.cache = ResponseCache()
        self.cover_cache = ResponseCache()

    def _record(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    async def __aenter__(self) -> CatalogService:
        self._client = httpx.AsyncClient(
            transport=httpx.MockTransport(self._record), base_url=BASE_URL
        )
        upstream = UpstreamClient(self.settings, self._client)
        return CatalogService(self.settings, upstream, self.cache, self.cover_cache)

    async def __aexit__(self, *exc: object) -> None:
        await self._client.aclose()


@pytest.mark.anyio("asyncio")
async def test_home_fan_out_tolerates_one_failed_section() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/trending"):
            raise httpx.ReadTimeout("slow", request=request)
        name = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"data": [card(f"{name}-1", "https://c.example.com/a.jpg")]})

    async with Harness(handler) as service:
        page = await service.home()

    assert page.failed == ("trending",)
    assert page.sections["trending"] == ()
    assert [c.id for c in page.sections["latest"]] == ["latest-1"]
    assert [c.id for c in page.sections["foryou"]] == ["foryou-1"]
    assert [c.id for c in page.sections["random"]] == ["randomdrama-1"]
    assert page.hero is not None and page.hero.id == "latest-1"


@pytest.mark.anyio("asyncio")
async def test_listing_is_cached_per_parameters() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        page = request.url.params["page"]
        return httpx.Response(200, json=[card(f"p{page}")])

    harness = Harness(handler)
    async with harness as service:
        first = await service.browse("terbaru", 1)
        again = await service.browse("terbaru", 1)
        second = await service.browse("terbaru", 2)

    assert [c.id for c in first] == [c.id for c in again] == ["p1"]
    assert [c.id for c in second] == ["p2"]
    assert len(harness.requests) == 2


@pytest.mark.anyio("asyncio")
async def test_ttl_hint_from_payload_is_used() -> None:
    now = [0.0]
    harness = Harness(lambda _: httpx.Response(200, json={"data": [card("1")], "ttl": 5}))
    harness.cache = ResponseCache(clock=lambda: now[0])

    async with harness as service:
        await service.latest()
        now[0] = 4.0
        await service.latest()
        now[0] = 5.0
        await service.latest()

    assert len(harness.requests) == 2


@pytest.mark.anyio("asyncio")
async def test_blank_search_skips_upstream() -> None:
    harness = Harness(lambda _: httpx.Response(200, json=[card("1")]))

    async with harness as service:
        assert await service.search("   ") == []
        results = await service.search(" love ")

    assert [c.id for c in results] == ["1"]
    assert harness.requests[0].url.params["query"] == "love"
    assert len(harness.requests) == 1


@pytest.mark.anyio("asyncio")
async def test_transient_failures_are_retried() -> None:
    responses = [httpx.Response(502), httpx.Response(200, json=[card("1")])]
    harness = Harness(lambda _: responses.pop(0), UPSTREAM_RETRIES=2)

    async with harness as service:
        cards = await service.trending()

    assert [c.id for c in cards] == ["1"]
    assert len(harness.requests) == 2


@pytest.mark.anyio("asyncio")
async def test_listing_failure_surfaces_typed_error() -> None:
    harness = Harness(lambda _: httpx.Response(404), UPSTREAM_RETRIES=2)

    async with harness as service:
        with pytest.raises(UpstreamError):
            await service.vip()

    assert len(harness.requests) == 1


@pytest.mark.anyio("asyncio")
async def test_detail_scenario_and_episode_fallback() -> None:
    detail_payload = {
        "data": {
            "book": {
                "bookId": "123",
                "bookName": "Test",
                "chapterList": [
                    {"id": "e1", "unlock": True, "mp4": "http://x/a.mp4"},
                    {"id": "", "unlock": False},
                ],
            }
        }
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/detail"):
            return httpx.Response(200, json=detail_payload)
        return httpx.Response(404)

    harness = Harness(handler)
    async with harness as service:
        detail, episodes = await service.get_title("123")
        sources = await service.get_sources("123", "e1")

    assert detail.id == "123"
    assert detail.name == "Test"
    assert [episode.id for episode in episodes] == ["e1"]
    assert [source.label for source in sources.sources] == ["MP4"]
    assert sources.best == "http://x/a.mp4"
    assert harness.requests[0].url.params["bookId"] == "123"


@pytest.mark.anyio("asyncio")
async def test_sources_without_playable_urls_are_empty() -> None:
    payload = [{"chapterId": "e1", "mp4": "", "m3u8Url": "https://x.example/a.m3u8", "m3u8Flag": False}]
    harness = Harness(lambda _: httpx.Response(200, json=payload))

    async with harness as service:
        sources = await service.get_sources("1", "e1")
        with pytest.raises(LookupError):
            await service.get_sources("1", "missing")

    assert sources.sources == ()
    assert sources.best == ""


@pytest.mark.anyio("asyncio")
async def test_missing_ids_are_preconditions() -> None:
    harness = Harness(lambda _: httpx.Response(200, json={}))

    async with harness as service:
        with pytest.raises(PreconditionError):
            await service.get_detail("  ")
        with pytest.raises(PreconditionError):
            await service.get_playback("")

    assert harness.requests == []


@pytest.mark.anyio("asyncio")
async def test_playback_cache_never_outlives_signed_url() -> None:
    now = [0.0]
    payload = {
        "data": {"id": 1, "episode": 2, "video": {"video_720": "https://v.example.com/720.mp4"}, "expires_in": 10},
        "ttl": 300,
    }
    harness = Harness(lambda _: httpx.Response(200, json=payload))
    harness.cache = ResponseCache(clock=lambda: now[0])

    async with harness as service:
        info = await service.get_playback("abc", 2)
        now[0] = 9.0
        await service.get_playback("abc", 2)
        now[0] = 10.0
        await service.get_playback("abc", 2)

    assert info.best == "https://v.example.com/720.mp4"
    assert harness.requests[0].url.path == "/api/play/abc"
    assert harness.requests[0].url.params["ep"] == "2"
    assert len(harness.requests) == 2


@pytest.mark.anyio("asyncio")
async def test_cover_repair_backfills_limited_cards_and_reuses_cover_cache() -> None:
    listing = [card("a"), card("b", "not-a-url"), card("c"), card("ok", "https://c.example.com/ok.jpg")]

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/detail"):
            book_id = request.url.params["bookId"]
            if book_id == "b":
                return httpx.Response(500)
            return httpx.Response(
                200, json={"data": {"book": {"bookId": book_id, "cover": f"https://c.example.com/{book_id}.jpg"}}}
            )
        return httpx.Response(200, json={"data": listing})

    harness = Harness(handler, COVER_REPAIR_LIMIT=2)
    async with harness as service:
        cards = await service.latest()
        detail_calls = [r for r in harness.requests if r.url.path.endswith("/detail")]
        assert sorted(r.url.params["bookId"] for r in detail_calls) == ["a", "b"]

        harness.cache.clear()
        again = await service.latest()

    covers = {c.id: c.cover_url for c in cards}
    assert covers == {
        "a": "https://c.example.com/a.jpg",
        "b": "not-a-url",
        "c": "",
        "ok": "https://c.example.com/ok.jpg",
    }
    assert {c.id: c.cover_url for c in again}["a"] == "https://c.example.com/a.jpg"
    assert harness.cover_cache.get("a") == "https://c.example.com/a.jpg"


@pytest.mark.anyio("asyncio")
async def test_language_is_forwarded_and_part_of_cache_key() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        lang = request.url.params.get("lang", "none")
        return httpx.Response(200, json=[card(f"{lang}-1")])

    harness = Harness(handler, UPSTREAM_LANGUAGE="id")
    async with harness as service:
        english = await service.search("love", lang="en")
        again = await service.search("love", lang="en")
        default = await service.search("love")
        trending = await service.trending(lang="en")

    assert [c.id for c in english] == ["en-1"]
    assert again == english
    assert [c.id for c in default] == ["id-1"]
    assert [c.id for c in trending] == ["en-1"]
    assert [request.url.params["lang"] for request in harness.requests] == ["en", "id", "en"]


@pytest.mark.anyio("asyncio")
async def test_languages_are_normalized_and_cached() -> None:
    payload = {"data": [{"code": "en", "name": "English"}, "id", {"code": "en"}, {"name": "?"}]}
    harness = Harness(lambda _: httpx.Response(200, json=payload))

    async with harness as service:
        languages = await service.languages()
        await service.languages()

    assert [(language.code, language.name) for language in languages] == [
        ("en", "English"),
        ("id", "id"),
    ]
    assert harness.paths() == ["/api/languages"]


@pytest.mark.anyio("asyncio")
async def test_episodes_by_code_reads_numbered_entries() -> None:
    payload = {
        "data": [
            {"id": 11, "episode": 1, "locked": False},
            {"id": 12, "episode": 2, "locked": True},
            {"episode": 3, "locked": True},
        ],
        "ttl": 60,
    }
    harness = Harness(lambda _: httpx.Response(200, json=payload))

    async with harness as service:
        episodes = await service.get_episodes_by_code("77", lang="en")
        request_count = len(harness.requests)
        with pytest.raises(PreconditionError):
            await service.get_episodes_by_code(" ")

    assert [episode.id for episode in episodes] == ["11", "12"]
    assert [episode.unlocked for episode in episodes] == [True, False]
    assert [episode.display_name for episode in episodes] == ["EP 1", "EP 2"]
    assert request_count == 1
    assert harness.paths() == ["/api/episodes/77"]
    assert harness.requests[0].url.params["lang"] == "en"


@pytest.mark.anyio("asyncio")
async def test_title_requests_detail_once_when_chapter_list_is_empty() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/allepisode"):
            return httpx.Response(200, json={"data": []})
        return httpx.Response(
            200, json={"data": {"book": {"bookId": "9", "chapterList": [{"chapterId": "c1"}]}}}
        )

    harness = Harness(handler)
    async with harness as service:
        detail, episodes = await service.get_title("9")

    assert detail.id == "9"
    assert [episode.id for episode in episodes] == ["c1"]
    assert sorted(harness.paths()) == ["/api/allepisode", "/api/detail"]
