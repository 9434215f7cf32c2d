"""Tests for the curated feed proxy and its stale-on-error cache."""

from __future__ import annotations

from datetime import date

import httpx
import pytest

from app.config import Settings
from app.services.feeds import FeedService, FeedUnavailableError, one_month_before


class FlakyTMDB:
    def __init__(self) -> None:
        self.fail = False
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            return httpx.Response(503, json={"status_message": "down"})
        return httpx.Response(
            200, json={"results": [{"id": len(self.requests), "title": "Movie"}]}
        )


def _service(http_client: httpx.AsyncClient, clock) -> FeedService:
    settings = Settings(_env_file=None, TMDB_API_KEY="tmdb-key")  # type: ignore[arg-type]
    return FeedService(settings, http_client, clock=clock)


def _client(upstream: FlakyTMDB) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(upstream.handler),
        base_url="https://tmdb.example.com/3",
    )


def test_one_month_before_clamps_to_month_end() -> None:
    assert one_month_before(date(2024, 3, 31)) == date(2024, 2, 29)
    assert one_month_before(date(2024, 1, 15)) == date(2023, 12, 15)


@pytest.mark.anyio
async def test_fresh_cache_avoids_refetch(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        first = await service.fetch_feed("trending")
        clock.advance(299_999)
        second = await service.fetch_feed("trending")

    assert first == second
    assert len(upstream.requests) == 1
    assert upstream.requests[0].url.path == "/3/trending/movie/week"
    assert upstream.requests[0].url.params["api_key"] == "tmdb-key"


@pytest.mark.anyio
async def test_expired_cache_is_refreshed(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        await service.fetch_feed("top-rated")
        clock.advance(300_000)
        refreshed = await service.fetch_feed("top-rated")

    assert refreshed == [{"id": 2, "title": "Movie"}]
    assert [request.url.path for request in upstream.requests] == [
        "/3/movie/top_rated",
        "/3/movie/top_rated",
    ]


@pytest.mark.anyio
async def test_stale_copy_is_served_when_upstream_fails(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        original = await service.fetch_feed("trending", page=2)
        clock.advance(400_000)
        upstream.fail = True
        served = await service.fetch_feed("trending", page=2)

    assert served == original
    assert len(upstream.requests) == 2


@pytest.mark.anyio
async def test_failure_without_cache_raises(clock) -> None:
    upstream = FlakyTMDB()
    upstream.fail = True
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        with pytest.raises(FeedUnavailableError):
            await service.fetch_feed("trending")


@pytest.mark.anyio
async def test_pages_are_cached_separately(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        await service.fetch_feed("trending", page=1)
        await service.fetch_feed("trending", page=2)

    assert [request.url.params["page"] for request in upstream.requests] == ["1", "2"]


@pytest.mark.anyio
async def test_new_releases_cover_the_last_month(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        await service.fetch_feed("new-releases")

    request = upstream.requests[0]
    assert request.url.path == "/3/discover/movie"
    assert request.url.params["primary_release_date.gte"] == "2023-10-14"
    assert request.url.params["primary_release_date.lte"] == "2023-11-14"
    assert request.url.params["sort_by"] == "release_date.desc"


@pytest.mark.anyio
async def test_unknown_feed_is_rejected(clock) -> None:
    upstream = FlakyTMDB()
    async with _client(upstream) as http_client:
        service = _service(http_client, clock)

        with pytest.raises(KeyError):
            await service.fetch_feed("upcoming")

    assert upstream.requests == []
