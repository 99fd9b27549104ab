"""Catalog service combining the upstream client, cache and normalizers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Mapping, TypeVar
from urllib.parse import quote

from ..config import Settings
from ..errors import PreconditionError, UpstreamError
from ..models import (
    CatalogCard,
    Episode,
    HomePage,
    Language,
    PlaybackInfo,
    PlaybackSources,
    TitleDetail,
)
from ..normalizers import (
    normalize_cards,
    normalize_detail,
    normalize_episodes,
    normalize_languages,
    normalize_playback,
)
from ..sections import HOME_SECTION_MAP, HomeSectionDefinition
from .cache import MISSING, ResponseCache, build_cache_key, resolve_ttl
from .covers import CoverRepairer
from .retry import BACKOFF_CURVES, with_retry
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

HERO_SECTION_ORDER: tuple[str, ...] = ("trending", "latest")


class CatalogService:
    """Fetches, normalizes and caches everything the routes render."""

    def __init__(
        self,
        settings: Settings,
        upstream: UpstreamClient,
        cache: ResponseCache,
        cover_cache: ResponseCache | None = None,
    ) -> None:
        self._settings = settings
        self._upstream = upstream
        self._cache = cache
        self._covers = CoverRepairer(
            self.get_detail,
            cover_cache if cover_cache is not None else ResponseCache(),
            ttl_seconds=settings.cover_cache_ttl_seconds,
        )

    @property
    def settings(self) -> Settings:
        return self._settings

    async def _fetch(
        self,
        category: str,
        endpoint: str,
        params: Mapping[str, Any] | None,
        normalizer: Callable[[Any], T],
        *,
        ttl: int,
        expiry: Callable[[T], int] | None = None,
    ) -> T:
        """Return the cached normalized value or fetch, normalize and cache it."""

        key = build_cache_key(endpoint, params, namespace=category)
        cached = self._cache.get(key, MISSING)
        if cached is not MISSING:
            logger.debug("Cache hit for %s", key)
            return cached

        raw = await with_retry(
            lambda: self._upstream.fetch_json(endpoint, params),
            retries=self._settings.upstream_retries,
            backoff_base=self._settings.retry_backoff_seconds,
            backoff=BACKOFF_CURVES[self._settings.retry_backoff_curve],
        )
        value = normalizer(raw)
        expires_in = expiry(value) if expiry is not None else None
        self._cache.set(key, value, resolve_ttl(raw, ttl, expires_in=expires_in))
        return value

    async def _listing(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        *,
        ttl: int | None = None,
        repair: bool = True,
    ) -> list[CatalogCard]:
        cards = await self._fetch(
            "cards",
            endpoint,
            params,
            normalize_cards,
            ttl=ttl or self._settings.cache_ttl_seconds,
        )
        if repair and self._settings.cover_repair_limit:
            return await self.repair_covers(cards)
        return list(cards)

    async def repair_covers(
        self, cards: list[CatalogCard], limit: int | None = None
    ) -> list[CatalogCard]:
        resolved = self._settings.cover_repair_limit if limit is None else limit
        return await self._covers.repair(cards, resolved)

    async def section(
        self, definition: HomeSectionDefinition, lang: str | None = None
    ) -> list[CatalogCard]:
        return await self._listing(
            definition.endpoint, {**definition.params, "lang": self._language(lang)}
        )

    async def latest(self, lang: str | None = None) -> list[CatalogCard]:
        return await self.section(HOME_SECTION_MAP["latest"], lang)

    async def trending(self, lang: str | None = None) -> list[CatalogCard]:
        return await self.section(HOME_SECTION_MAP["trending"], lang)

    async def for_you(self, lang: str | None = None) -> list[CatalogCard]:
        return await self.section(HOME_SECTION_MAP["foryou"], lang)

    async def random_picks(self, lang: str | None = None) -> list[CatalogCard]:
        return await self.section(HOME_SECTION_MAP["random"], lang)

    async def vip(self, lang: str | None = None) -> list[CatalogCard]:
        return await self.section(HOME_SECTION_MAP["vip"], lang)

    async def browse(
        self, classify: str = "terbaru", page: int = 1, lang: str | None = None
    ) -> list[CatalogCard]:
        return await self._listing(
            "/dubindo",
            {
                "classify": classify or "terbaru",
                "page": max(1, page),
                "lang": self._language(lang),
            },
        )

    async def search(self, query: str, lang: str | None = None) -> list[CatalogCard]:
        normalized = (query or "").strip()
        if not normalized:
            return []
        return await self._listing(
            "/search",
            {"query": normalized, "lang": self._language(lang)},
            ttl=self._settings.search_cache_ttl_seconds,
        )

    async def languages(self) -> list[Language]:
        languages = await self._fetch(
            "languages",
            "/languages",
            None,
            normalize_languages,
            ttl=self._settings.languages_cache_ttl_seconds,
        )
        return list(languages)

    async def home(
        self,
        definitions: tuple[HomeSectionDefinition, ...] | None = None,
        lang: str | None = None,
    ) -> HomePage:
        """Fetch every home section concurrently; failed sections become empty."""

        resolved = definitions or self._settings.home_section_definitions
        results = await asyncio.gather(
            *(self.section(definition, lang) for definition in resolved),
            return_exceptions=True,
        )

        sections: dict[str, tuple[CatalogCard, ...]] = {}
        failed: list[str] = []
        for definition, result in zip(resolved, results):
            if isinstance(result, BaseException):
                logger.warning("Home section %s failed: %s", definition.key, result)
                failed.append(definition.key)
                sections[definition.key] = ()
            else:
                sections[definition.key] = tuple(result)

        return HomePage(sections=sections, failed=tuple(failed), hero=_pick_hero(sections))

    async def get_detail(self, book_id: str, lang: str | None = None) -> TitleDetail:
        normalized = _require_id(book_id, "bookId")
        return await self._fetch(
            "detail",
            "/detail",
            {"bookId": normalized, "lang": self._language(lang)},
            lambda raw: normalize_detail(raw, fallback_id=normalized),
            ttl=self._settings.detail_cache_ttl_seconds,
        )

    async def _chapter_list(self, book_id: str, lang: str | None) -> list[Episode]:
        try:
            episodes = await self._fetch(
                "episodes",
                "/allepisode",
                {"bookId": book_id, "lang": self._language(lang)},
                normalize_episodes,
                ttl=self._settings.detail_cache_ttl_seconds,
            )
        except UpstreamError as exc:
            logger.info("Episode list unavailable for %s, using detail: %s", book_id, exc)
            return []
        return list(episodes)

    async def get_episodes(self, book_id: str, lang: str | None = None) -> list[Episode]:
        """Return the chapter list, falling back to the one embedded in detail."""

        normalized = _require_id(book_id, "bookId")
        episodes = await self._chapter_list(normalized, lang)
        if episodes:
            return episodes
        detail = await self.get_detail(normalized, lang)
        return list(detail.episodes)

    async def get_title(
        self, book_id: str, lang: str | None = None
    ) -> tuple[TitleDetail, list[Episode]]:
        """Fetch detail and chapter list together; the detail doubles as fallback."""

        normalized = _require_id(book_id, "bookId")
        detail, episodes = await asyncio.gather(
            self.get_detail(normalized, lang), self._chapter_list(normalized, lang)
        )
        return detail, episodes or list(detail.episodes)

    async def get_sources(
        self, book_id: str, chapter_id: str, lang: str | None = None
    ) -> PlaybackSources:
        normalized = _require_id(chapter_id, "chapterId")
        for episode in await self.get_episodes(book_id, lang):
            if episode.id == normalized:
                return PlaybackSources.from_episode(episode)
        raise LookupError(f"Chapter {normalized} not found for {book_id}")

    async def get_episodes_by_code(self, code: str, lang: str | None = None) -> list[Episode]:
        """Return the episode list of a title addressed by its playback code."""

        normalized = _require_id(code, "code")
        return await self._fetch(
            "episodes",
            f"/episodes/{quote(normalized, safe='')}",
            {"lang": self._language(lang)},
            normalize_episodes,
            ttl=self._settings.detail_cache_ttl_seconds,
        )

    async def get_playback(
        self, code: str, episode: int = 1, lang: str | None = None
    ) -> PlaybackInfo:
        """Return signed playback URLs, cached no longer than they stay valid."""

        normalized = _require_id(code, "code")
        resolved_episode = max(1, episode)
        return await self._fetch(
            "play",
            f"/play/{quote(normalized, safe='')}",
            {"ep": resolved_episode, "lang": self._language(lang)},
            lambda raw: normalize_playback(raw, code=normalized, episode=resolved_episode),
            ttl=self._settings.playback_cache_ttl_seconds,
            expiry=lambda info: info.expires_in,
        )

    def _language(self, lang: str | None) -> str | None:
        return (lang or "").strip() or self._settings.upstream_language


def _require_id(value: str | None, name: str) -> str:
    normalized = (value or "").strip()
    if not normalized:
        raise PreconditionError(f"{name} is required")
    return normalized


def _pick_hero(sections: Mapping[str, tuple[CatalogCard, ...]]) -> CatalogCard | None:
    for key in HERO_SECTION_ORDER:
        cards = sections.get(key)
        if cards:
            return cards[0]
    for cards in sections.values():
        if cards:
            return cards[0]
    return None
