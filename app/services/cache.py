"""Process-local response cache with per-entry time-to-live."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

MISSING: Any = object()


@dataclass(slots=True)
class CacheEntry:
    value: Any
    expires_at: float


def build_cache_key(
    endpoint: str,
    params: Mapping[str, Any] | None = None,
    *,
    namespace: str = "GET",
) -> str:
    """Return a key that ignores parameter insertion order and empty values."""

    pairs = sorted(
        (str(name), str(value))
        for name, value in (params or {}).items()
        if value is not None and value != ""
    )
    key = f"{namespace}:{endpoint}"
    if pairs:
        key = f"{key}?{urlencode(pairs)}"
    return key


def _positive_seconds(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        seconds = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(seconds):
        return 0
    return max(0, int(seconds))


def resolve_ttl(
    payload: Any,
    default_ttl: int,
    *,
    expires_in: int | None = None,
    unknown_expiry_ttl: int = 5,
) -> int:
    """Pick the cache lifetime for ``payload``.

    A positive ``ttl`` hint in the payload wins over ``default_ttl``. When
    ``expires_in`` is supplied the resource carries its own expiry, so the
    result never exceeds it; an unknown expiry falls back to
    ``unknown_expiry_ttl``.
    """

    ttl = default_ttl
    if isinstance(payload, dict):
        hint = _positive_seconds(payload.get("ttl"))
        if hint:
            ttl = hint
    if expires_in is not None:
        ceiling = expires_in if expires_in > 0 else unknown_expiry_ttl
        ttl = min(ttl, ceiling)
    return max(1, ttl)


class ResponseCache:
    """Map of cache keys to values that expire after their TTL.

    Entries are evicted lazily on lookup. The cache is shared by coroutines on
    a single event loop and performs no awaits, so get/set never interleave.
    """

    def __init__(
        self,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive when set")
        self._entries: dict[str, CacheEntry] = {}
        self._max_entries = max_entries
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key, MISSING) is not MISSING

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for ``key`` or ``default``."""

        entry = self._entries.get(key)
        if entry is None:
            return default
        if self._clock() >= entry.expires_at:
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        """Store ``value`` under ``key`` for ``ttl_seconds``, replacing any entry."""

        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if key in self._entries:
            del self._entries[key]
        elif self._max_entries is not None and len(self._entries) >= self._max_entries:
            self._make_room(self._max_entries)
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _make_room(self, max_entries: int) -> None:
        self.purge_expired()
        while len(self._entries) >= max_entries:
            oldest = next(iter(self._entries))
            logger.debug("Cache full, evicting %s", oldest)
            del self._entries[oldest]
