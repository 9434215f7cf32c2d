"""Tests for the two-tier query cache."""

from __future__ import annotations

from typing import Any

import pytest

from app.services.query_cache import QueryCache, dump_records, load_records
from app.storage import LocalStorage


class DictStore:
    def __init__(self) -> None:
        self.data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    async def clear(self, prefix: str | None = None) -> None:
        for key in list(self.data):
            if prefix is None or key.startswith(prefix):
                del self.data[key]


@pytest.mark.anyio
async def test_entry_expires_after_ttl(clock) -> None:
    cache = QueryCache(default_ttl_ms=300_000, clock=clock)
    await cache.set("trending-page-1", ["a"])

    clock.advance(299_999)
    assert await cache.get("trending-page-1") == ["a"]

    clock.advance(2)
    assert await cache.get("trending-page-1") is None


@pytest.mark.anyio
async def test_expired_entry_is_available_when_explicitly_allowed(clock) -> None:
    cache = QueryCache(default_ttl_ms=1_000, clock=clock)
    await cache.set("key", "value")
    clock.advance(5_000)

    entry = await cache.get_entry("key", allow_expired=True)

    assert entry is not None
    assert entry.value == "value"
    assert not entry.is_fresh(clock.now)


@pytest.mark.anyio
async def test_per_entry_ttl_overrides_default(clock) -> None:
    cache = QueryCache(default_ttl_ms=1_000, clock=clock)
    await cache.set("long", 1, ttl_ms=10_000)
    clock.advance(5_000)

    assert await cache.get("long") == 1


@pytest.mark.anyio
async def test_persistent_tier_repopulates_memory(clock) -> None:
    store = DictStore()
    first = QueryCache(store=store, namespace="search:", clock=clock)
    await first.set("search-matrix", [1, 2])

    assert "search:search-matrix" in store.data

    second = QueryCache(store=store, namespace="search:", clock=clock)
    assert await second.get("search-matrix") == [1, 2]

    store.data.clear()
    assert await second.get("search-matrix") == [1, 2]


@pytest.mark.anyio
async def test_expired_persistent_entry_is_purged(clock) -> None:
    store = DictStore()
    cache = QueryCache(default_ttl_ms=1_000, store=store, clock=clock)
    await cache.set("key", "value")
    clock.advance(1_000)

    assert await cache.get("key") is None
    assert store.data == {}


@pytest.mark.anyio
async def test_clear_only_touches_own_namespace(clock) -> None:
    store = DictStore()
    search = QueryCache(store=store, namespace="search:", clock=clock)
    recommendations = QueryCache(store=store, namespace="recommendations:", clock=clock)
    await search.set("search-matrix", [1])
    await recommendations.set("recommendations-603", [2])

    await search.clear()

    assert await search.get("search-matrix") is None
    assert await recommendations.get("recommendations-603") == [2]
    assert list(store.data) == ["recommendations:recommendations-603"]


@pytest.mark.anyio
async def test_cache_survives_restart_with_local_storage(tmp_path, clock) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'local.db'}"
    storage = LocalStorage.from_url(url)
    await storage.initialise()
    try:
        await QueryCache(store=storage, namespace="search:", clock=clock).set(
            "search-matrix", ["cached"]
        )
    finally:
        await storage.dispose()

    reopened = LocalStorage.from_url(url)
    await reopened.initialise()
    try:
        cache = QueryCache(store=reopened, namespace="search:", clock=clock)
        assert await cache.get("search-matrix") == ["cached"]
    finally:
        await reopened.dispose()


def test_load_records_rejects_malformed_payloads(make_movie) -> None:
    movies = [make_movie(603, "The Matrix")]

    assert load_records(dump_records(movies)) == movies
    assert load_records({"not": "a list"}) is None
    assert load_records([{"title": "missing id"}]) is None
