"""Tests for the response cache and its key/TTL helpers."""

from __future__ import annotations

import time

import pytest

from app.services.cache import MISSING, ResponseCache, build_cache_key, resolve_ttl


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def test_set_then_get_returns_value() -> None:
    cache = ResponseCache()
    cache.set("k", {"data": [1, 2]}, 30)

    assert cache.get("k") == {"data": [1, 2]}
    assert "k" in cache


def test_value_unavailable_once_ttl_elapses() -> None:
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("k", "v", 5)

    clock.advance(4.9)
    assert cache.get("k") == "v"

    clock.advance(0.1)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_value_unavailable_after_real_sleep() -> None:
    cache = ResponseCache()
    cache.set("k", "v", 1)

    time.sleep(1.1)

    assert cache.get("k", MISSING) is MISSING


def test_falsy_values_are_distinguishable_from_absence() -> None:
    cache = ResponseCache()
    cache.set("empty", [], 10)

    assert cache.get("empty", MISSING) == []
    assert cache.get("other", MISSING) is MISSING


def test_set_overwrites_existing_entry() -> None:
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("k", "old", 1)
    cache.set("k", "new", 60)

    clock.advance(30)

    assert cache.get("k") == "new"


@pytest.mark.parametrize("ttl", [0, -1])
def test_set_rejects_non_positive_ttl(ttl: int) -> None:
    with pytest.raises(ValueError):
        ResponseCache().set("k", "v", ttl)


def test_max_entries_evicts_expired_then_oldest() -> None:
    clock = FakeClock()
    cache = ResponseCache(max_entries=2, clock=clock)
    cache.set("short", 1, 1)
    cache.set("long", 2, 100)
    clock.advance(2)

    cache.set("third", 3, 100)
    assert cache.get("long") == 2
    assert cache.get("third") == 3

    cache.set("fourth", 4, 100)
    assert cache.get("long") is None
    assert cache.get("fourth") == 4


def test_purge_expired_counts_removed_entries() -> None:
    clock = FakeClock()
    cache = ResponseCache(clock=clock)
    cache.set("a", 1, 1)
    cache.set("b", 2, 10)
    clock.advance(5)

    assert cache.purge_expired() == 1
    assert len(cache) == 1


def test_cache_key_ignores_parameter_order() -> None:
    assert build_cache_key("ep", {"lang": "en", "code": "7"}) == build_cache_key(
        "ep", {"code": "7", "lang": "en"}
    )


def test_cache_key_ignores_empty_values_and_separates_namespaces() -> None:
    assert build_cache_key("/search", {"query": "love", "page": None, "x": ""}) == (
        "GET:/search?query=love"
    )
    assert build_cache_key("/detail", {"bookId": 1}, namespace="detail") != build_cache_key(
        "/detail", {"bookId": 1}, namespace="episodes"
    )


def test_resolve_ttl_prefers_positive_hint() -> None:
    assert resolve_ttl({"ttl": 45}, 180) == 45
    assert resolve_ttl({"ttl": "0"}, 180) == 180
    assert resolve_ttl({"ttl": "soon"}, 180) == 180
    assert resolve_ttl([1, 2], 180) == 180


def test_resolve_ttl_bounds_playback_by_expiry() -> None:
    assert resolve_ttl({}, 120, expires_in=30) == 30
    assert resolve_ttl({}, 120, expires_in=600) == 120
    assert resolve_ttl({"ttl": 300}, 120, expires_in=60) == 60
    assert resolve_ttl({}, 120, expires_in=0) == 5


@pytest.mark.parametrize("hint", [float("inf"), float("nan"), "1e400", 10**400, -float("inf")])
def test_resolve_ttl_ignores_non_finite_hints(hint: object) -> None:
    assert resolve_ttl({"ttl": hint}, 180) == 180
    assert resolve_ttl({"ttl": hint}, 120, expires_in=30) == 30
