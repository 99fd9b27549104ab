"""Backfill missing listing covers from title detail records."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from ..models import CatalogCard, TitleDetail
from ..utils import is_valid_cover_url
from .cache import MISSING, ResponseCache

logger = logging.getLogger(__name__)

DetailFetcher = Callable[[str], Awaitable[TitleDetail]]


class CoverRepairer:
    """Best-effort enrichment of cards whose cover URL is unusable.

    This is the one layer where upstream failures are absorbed: a card that
    cannot be repaired keeps its original cover and the listing is still
    returned.
    """

    def __init__(
        self,
        fetch_detail: DetailFetcher,
        cover_cache: ResponseCache,
        *,
        ttl_seconds: int,
    ) -> None:
        self._fetch_detail = fetch_detail
        self._cover_cache = cover_cache
        self._ttl_seconds = ttl_seconds

    async def repair(
        self, cards: Sequence[CatalogCard], limit: int
    ) -> list[CatalogCard]:
        """Return ``cards`` with at most ``limit`` missing covers backfilled."""

        result = list(cards)
        if limit <= 0:
            return result

        pending: list[int] = []
        for index, card in enumerate(result):
            if is_valid_cover_url(card.cover_url):
                continue
            cached = self._cover_cache.get(card.id, MISSING)
            if cached is not MISSING:
                result[index] = card.model_copy(update={"cover_url": cached})
                continue
            if len(pending) < limit:
                pending.append(index)

        if not pending:
            return result

        covers = await asyncio.gather(
            *(self._lookup_cover(result[index].id) for index in pending)
        )
        for index, cover in zip(pending, covers):
            if cover:
                result[index] = result[index].model_copy(update={"cover_url": cover})
        return result

    async def _lookup_cover(self, book_id: str) -> str:
        try:
            detail = await self._fetch_detail(book_id)
        except Exception as exc:
            logger.info("Cover repair skipped for %s: %s", book_id, exc)
            return ""
        if not is_valid_cover_url(detail.cover_url):
            return ""
        self._cover_cache.set(book_id, detail.cover_url, self._ttl_seconds)
        return detail.cover_url
