"""Server-side proxy for the curated TMDB feeds."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable

import httpx

from ..config import Settings
from ..models import FEED_NAMES
from ..utils import cache_key, now_ms
from .query_cache import QueryCache

logger = logging.getLogger(__name__)


class FeedUnavailableError(RuntimeError):
    """Raised when a feed cannot be fetched and nothing is cached for it."""


def one_month_before(day: date) -> date:
    year, month = (day.year, day.month - 1) if day.month > 1 else (day.year - 1, 12)
    last_day = calendar.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last_day))


class FeedService:
    """Fetches trending, new-release and top-rated lists with a short cache.

    When a live fetch fails, any cached copy is served regardless of its age;
    the error is raised only when no copy exists at all.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        cache: QueryCache | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._clock = clock
        self._cache = cache or QueryCache(
            default_ttl_ms=settings.feed_cache_ttl_ms, clock=clock
        )

    async def fetch_feed(self, feed: str, page: int = 1) -> list[dict[str, Any]]:
        if feed not in FEED_NAMES:
            raise KeyError(f"Unknown feed: {feed}")

        key = cache_key(f"{feed}-page", page)
        entry = await self._cache.get_entry(key, allow_expired=True)
        if entry is not None and entry.is_fresh(self._cache.now()):
            return entry.value

        try:
            results = await self._fetch_live(feed, page)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error fetching %s from TMDB: %s", key, exc)
            if entry is not None:
                logger.warning("Serving stale cache for %s", key)
                return entry.value
            raise FeedUnavailableError(f"Feed {feed} is unavailable") from exc

        await self._cache.set(key, results)
        return results

    async def _fetch_live(self, feed: str, page: int) -> list[dict[str, Any]]:
        endpoint, params = self._endpoint(feed)
        query = {
            **params,
            "page": page,
            "api_key": self._settings.tmdb_api_key or "",
            "language": self._settings.catalog_language,
        }
        response = await self._client.get(endpoint, params=query)
        response.raise_for_status()
        data = response.json()
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ValueError(f"TMDB returned no results array for {feed}")
        return results

    def _endpoint(self, feed: str) -> tuple[str, dict[str, Any]]:
        if feed == "trending":
            return "/trending/movie/week", {}
        if feed == "top-rated":
            return "/movie/top_rated", {}
        today = datetime.fromtimestamp(self._clock() / 1_000, tz=timezone.utc).date()
        return "/discover/movie", {
            "primary_release_date.gte": one_month_before(today).isoformat(),
            "primary_release_date.lte": today.isoformat(),
            "sort_by": "release_date.desc",
        }
