"""Entry point for the FastAPI-powered PanStream site."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from .config import Settings, settings
from .errors import MissingCredentialError, PreconditionError, UpstreamError
from .models import CatalogCard
from .sections import HOME_SECTION_MAP, SITEMAP_SECTION_KEYS
from .services.cache import ResponseCache
from .services.catalog import CatalogService
from .services.upstream import UpstreamClient
from .web import PageMeta, build_meta, render_page, render_robots, render_sitemap

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)

T = TypeVar("T")

STATIC_PREFIX = "/public"

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    upstream_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.upstream_api_url),
            timeout=httpx.Timeout(settings.upstream_timeout_seconds, connect=10.0),
            follow_redirects=True,
        )
    )
    if settings.upstream_requires_token and not settings.upstream_token:
        logger.warning(
            "UPSTREAM_TOKEN is not set; upstream-backed endpoints will be unavailable"
        )

    upstream = UpstreamClient(settings, upstream_http_client)
    catalog_service = CatalogService(
        settings,
        upstream,
        ResponseCache(max_entries=settings.cache_max_entries),
        ResponseCache(max_entries=settings.cache_max_entries),
    )
    fastapi_app.state.catalog_service = catalog_service

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Drama streaming catalog backed by an upstream content API",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    mount_static(fastapi_app, settings)
    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


def _base_url(request: Request, app_settings: Settings) -> str:
    if app_settings.site_url is not None:
        return str(app_settings.site_url).rstrip("/")
    return str(request.base_url).rstrip("/")


def _cards_payload(cards: list[CatalogCard] | tuple[CatalogCard, ...]) -> list[dict[str, Any]]:
    return [card.to_payload() for card in cards]


def _upstream_failure(exc: Exception, resource: str) -> HTTPException:
    """Map fetch-layer errors to the HTTP error the UI can offer a retry for."""

    if isinstance(exc, MissingCredentialError):
        return HTTPException(
            status_code=503, detail={"error": "upstream_not_configured", "retryable": False}
        )
    if isinstance(exc, PreconditionError):
        return HTTPException(status_code=400, detail={"error": str(exc), "retryable": False})
    return HTTPException(
        status_code=502, detail={"error": f"{resource}_unavailable", "retryable": True}
    )


async def _degrading_listing(
    fetch: Callable[[], Awaitable[list[T]]], label: str
) -> tuple[list[T], bool]:
    """Run a listing fetch, degrading any upstream failure to an empty list."""

    try:
        return await fetch(), True
    except (UpstreamError, PreconditionError) as exc:
        logger.warning("Listing %s degraded to empty: %s", label, exc)
        return [], False


def mount_static(fastapi_app: FastAPI, app_settings: Settings) -> bool:
    """Serve the front-end assets under ``/public`` when the directory exists."""

    static_dir = app_settings.static_dir
    if not static_dir.is_dir():
        logger.info("Static directory %s not found; pages render without assets", static_dir)
        fastapi_app.state.asset_prefix = None
        return False
    fastapi_app.mount(STATIC_PREFIX, StaticFiles(directory=static_dir), name="public")
    fastapi_app.state.asset_prefix = STATIC_PREFIX
    return True


def register_routes(fastapi_app: FastAPI) -> None:
    def page_response(
        page: str, meta: PageMeta, state: dict[str, Any], status_code: int = 200
    ) -> HTMLResponse:
        asset_prefix = getattr(fastapi_app.state, "asset_prefix", None)
        return HTMLResponse(
            render_page(page, meta, state, asset_prefix=asset_prefix),
            status_code=status_code,
        )

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/languages")
    async def api_languages() -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        languages, ok = await _degrading_listing(service.languages, "languages")
        return JSONResponse(
            {
                "languages": [language.to_payload() for language in languages],
                "upstream": {"ok": ok},
            }
        )

    @fastapi_app.get("/api/home")
    async def api_home(lang: str | None = Query(default=None)) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        page = await service.home(lang=lang)
        return JSONResponse(page.to_payload())

    @fastapi_app.get("/api/browse")
    async def api_browse(
        classify: str = Query(default="terbaru"),
        page: int = Query(default=1, ge=1),
        lang: str | None = Query(default=None),
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        cards, ok = await _degrading_listing(
            lambda: service.browse(classify, page, lang), f"browse:{classify}:{page}"
        )
        return JSONResponse(
            {
                "classify": classify,
                "page": page,
                "items": _cards_payload(cards),
                "upstream": {"ok": ok},
            }
        )

    @fastapi_app.get("/api/search")
    async def api_search(
        q: str = Query(default=""), lang: str | None = Query(default=None)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        query = q.strip()
        cards, ok = await _degrading_listing(lambda: service.search(query, lang), "search")
        return JSONResponse(
            {"query": query, "items": _cards_payload(cards), "upstream": {"ok": ok}}
        )

    @fastapi_app.get("/api/detail/{book_id}")
    async def api_detail(
        book_id: str, lang: str | None = Query(default=None)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            detail = await service.get_detail(book_id, lang)
        except (UpstreamError, PreconditionError) as exc:
            raise _upstream_failure(exc, "detail") from exc
        return JSONResponse(detail.to_payload())

    @fastapi_app.get("/api/episodes/{book_id}")
    async def api_episodes(
        book_id: str, lang: str | None = Query(default=None)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            episodes = await service.get_episodes(book_id, lang)
        except (UpstreamError, PreconditionError) as exc:
            raise _upstream_failure(exc, "episodes") from exc
        return JSONResponse(
            {"bookId": book_id, "episodes": [episode.to_payload() for episode in episodes]}
        )

    @fastapi_app.get("/api/shows/{code}/episodes")
    async def api_show_episodes(
        code: str, lang: str | None = Query(default=None)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            episodes = await service.get_episodes_by_code(code, lang)
        except (UpstreamError, PreconditionError) as exc:
            raise _upstream_failure(exc, "episodes") from exc
        return JSONResponse(
            {
                "code": code,
                "lang": lang,
                "episodes": [episode.to_payload() for episode in episodes],
            }
        )

    @fastapi_app.get("/api/sources")
    async def api_sources(
        book_id: str = Query(default="", alias="bookId"),
        chapter_id: str = Query(default="", alias="chapterId"),
        lang: str | None = Query(default=None),
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            sources = await service.get_sources(book_id, chapter_id, lang)
        except LookupError as exc:
            raise HTTPException(status_code=404, detail={"error": "chapter_not_found"}) from exc
        except (UpstreamError, PreconditionError) as exc:
            raise _upstream_failure(exc, "sources") from exc
        return JSONResponse(sources.to_payload())

    @fastapi_app.get("/api/play/{code}")
    async def api_play(
        code: str,
        ep: int = Query(default=1, ge=1),
        lang: str | None = Query(default=None),
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        try:
            playback = await service.get_playback(code, ep, lang)
        except (UpstreamError, PreconditionError) as exc:
            raise _upstream_failure(exc, "playback") from exc
        return JSONResponse(playback.to_payload())

    @fastapi_app.get("/", response_class=HTMLResponse)
    async def home_page(
        request: Request, lang: str | None = Query(default=None)
    ) -> HTMLResponse:
        service = get_catalog_service(fastapi_app)
        page = await service.home(lang=lang)
        meta = build_meta(
            service.settings,
            _base_url(request, service.settings),
            path="/",
            description="Streaming drama VIP, dub indo, trending, dan rekomendasi.",
            image=page.hero.cover_url if page.hero else None,
        )
        return page_response("home", meta, {**page.to_payload(), "lang": lang})

    @fastapi_app.get("/browse", response_class=HTMLResponse)
    async def browse_page(
        request: Request,
        classify: str = Query(default="terbaru"),
        page: int = Query(default=1, ge=1),
        lang: str | None = Query(default=None),
    ) -> HTMLResponse:
        service = get_catalog_service(fastapi_app)
        cards, ok = await _degrading_listing(
            lambda: service.browse(classify, page, lang), f"browse:{classify}:{page}"
        )
        meta = build_meta(
            service.settings,
            _base_url(request, service.settings),
            path=f"/browse?classify={quote(classify)}",
            title=f"Browse {classify}",
            description=f"Jelajahi dub indo ({classify}) dengan infinite scroll.",
        )
        state = {
            "classify": classify,
            "page": page,
            "lang": lang,
            "items": _cards_payload(cards),
            "upstream": {"ok": ok},
        }
        return page_response("browse", meta, state)

    @fastapi_app.get("/search", response_class=HTMLResponse)
    async def search_page(
        request: Request,
        q: str = Query(default=""),
        lang: str | None = Query(default=None),
    ) -> HTMLResponse:
        service = get_catalog_service(fastapi_app)
        query = q.strip()
        cards, ok = await _degrading_listing(lambda: service.search(query, lang), "search")
        meta = build_meta(
            service.settings,
            _base_url(request, service.settings),
            path=f"/search?q={quote(query)}" if query else "/search",
            title=f"Search: {query}" if query else "Search",
            description=f"Hasil pencarian {query}." if query else "Cari judul favoritmu.",
        )
        state = {
            "query": query,
            "lang": lang,
            "items": _cards_payload(cards),
            "upstream": {"ok": ok},
        }
        return page_response("search", meta, state)

    @fastapi_app.get("/detail/{book_id}", response_class=HTMLResponse)
    async def detail_page(
        request: Request, book_id: str, lang: str | None = Query(default=None)
    ) -> HTMLResponse:
        service = get_catalog_service(fastapi_app)
        base_url = _base_url(request, service.settings)
        try:
            detail, episodes = await service.get_title(book_id, lang)
        except (UpstreamError, PreconditionError) as exc:
            logger.warning("Detail page for %s unavailable: %s", book_id, exc)
            meta = build_meta(service.settings, base_url, path=f"/detail/{book_id}", title="Detail")
            state = {"bookId": book_id, "unavailable": True}
            return page_response("detail", meta, state, status_code=502)

        meta = build_meta(
            service.settings,
            base_url,
            path=f"/detail/{book_id}",
            title=detail.name or "Detail",
            description=detail.synopsis or None,
            image=detail.cover_url or None,
        )
        state = {
            "bookId": book_id,
            "lang": lang,
            "unavailable": False,
            "detail": detail.to_payload(),
            "episodes": [episode.to_payload() for episode in episodes],
        }
        return page_response("detail", meta, state)

    @fastapi_app.get("/watch/{book_id}/{chapter_id}", response_class=HTMLResponse)
    async def watch_page(
        request: Request,
        book_id: str,
        chapter_id: str,
        lang: str | None = Query(default=None),
    ) -> HTMLResponse:
        service = get_catalog_service(fastapi_app)
        base_url = _base_url(request, service.settings)
        path = f"/watch/{book_id}/{chapter_id}"
        try:
            detail, episodes = await service.get_title(book_id, lang)
        except (UpstreamError, PreconditionError) as exc:
            logger.warning("Watch page for %s/%s unavailable: %s", book_id, chapter_id, exc)
            meta = build_meta(service.settings, base_url, path=path, title="Watch")
            state = {"bookId": book_id, "chapterId": chapter_id, "unavailable": True}
            return page_response("watch", meta, state, status_code=502)

        current_index = next(
            (index for index, episode in enumerate(episodes) if episode.id == chapter_id),
            0,
        )
        current = episodes[current_index] if episodes else None
        meta = build_meta(
            service.settings,
            base_url,
            path=path,
            title=f"{detail.name or 'Watch'} — Episode",
            description=f"Tonton {detail.name or 'drama'} dengan pemutar premium.",
            image=detail.cover_url or None,
        )
        state = {
            "bookId": book_id,
            "chapterId": chapter_id,
            "lang": lang,
            "unavailable": False,
            "currentIndex": current_index,
            "detail": detail.to_payload(),
            "episodes": [episode.to_payload() for episode in episodes],
            "videoPath": current.primary_video_url if current else "",
        }
        return page_response("watch", meta, state)

    @fastapi_app.get("/robots.txt", response_class=PlainTextResponse)
    async def robots(request: Request) -> PlainTextResponse:
        service = get_catalog_service(fastapi_app)
        return PlainTextResponse(render_robots(_base_url(request, service.settings)))

    @fastapi_app.get("/sitemap.xml")
    async def sitemap(request: Request) -> Response:
        service = get_catalog_service(fastapi_app)
        definitions = tuple(HOME_SECTION_MAP[key] for key in SITEMAP_SECTION_KEYS)
        page = await service.home(definitions)
        book_ids = [card.id for card in page.all_cards()]
        return Response(
            render_sitemap(_base_url(request, service.settings), book_ids), media_type="application/xml"
        )


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
