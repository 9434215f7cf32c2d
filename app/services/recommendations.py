"""Watchlist-driven movie recommendations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Iterable, Protocol, Sequence

from ..config import Settings
from ..models import MovieId, MovieRecord, normalize_movie_id
from ..utils import cache_key
from .query_cache import QueryCache, dump_records, load_records

logger = logging.getLogger(__name__)


class RecommendationSource(Protocol):
    async def get_recommendations(self, movie_id: MovieId | str) -> list[MovieRecord]: ...

    async def discover_by_genre(self, genre_id: int) -> list[MovieRecord]: ...

    def resolve_genre_id(self, name: str | None) -> int: ...


class RecommendationEngine:
    """Suggests movies related to the most recent watchlist additions.

    Strategies run in order until enough candidates accumulate: first the
    per-movie recommendations of the newest watchlist entries, then a
    popularity-sorted discover list for a random watchlist genre. Results
    never repeat a normalized id and never include watched movies.
    """

    def __init__(
        self,
        source: RecommendationSource,
        cache: QueryCache,
        *,
        limit: int = 10,
        seed_count: int = 3,
        min_candidates: int = 3,
        cache_ttl_ms: int | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._source = source
        self._cache = cache
        self._limit = limit
        self._seed_count = seed_count
        self._min_candidates = min_candidates
        self._cache_ttl_ms = cache_ttl_ms
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        source: RecommendationSource,
        cache: QueryCache,
        *,
        rng: random.Random | None = None,
    ) -> "RecommendationEngine":
        return cls(
            source,
            cache,
            limit=settings.recommendation_limit,
            seed_count=settings.recommendation_seed_count,
            min_candidates=settings.recommendation_min_candidates,
            cache_ttl_ms=settings.query_cache_ttl_ms,
            rng=rng,
        )

    async def recommend(
        self, watchlist: Sequence[MovieRecord], query: str = ""
    ) -> list[MovieRecord]:
        """Return up to ``limit`` suggestions for a watchlist ordered by add time."""

        if query.strip() or not watchlist:
            return []

        watched = {entry.normalized_id for entry in watchlist}
        seen: set[str] = set()
        candidates: list[MovieRecord] = []

        def collect(records: Iterable[MovieRecord]) -> None:
            for record in records:
                if not record.is_displayable():
                    continue
                normalized = record.normalized_id
                if normalized in watched or normalized in seen:
                    continue
                seen.add(normalized)
                candidates.append(record)

        seeds = list(watchlist[-self._seed_count:])
        batches = await asyncio.gather(
            *(self._recommendations_for(entry.id) for entry in seeds)
        )
        for batch in batches:
            collect(batch)

        if len(candidates) < self._min_candidates:
            genre = self._pick_genre(watchlist)
            genre_id = self._source.resolve_genre_id(genre)
            logger.debug(
                "Only %s cascade candidates, discovering genre %s (%s)",
                len(candidates),
                genre,
                genre_id,
            )
            collect(await self._discover(genre_id))

        return candidates[: self._limit]

    async def invalidate(self, movie_id: MovieId | str) -> None:
        """Forget cached recommendations seeded by ``movie_id``."""

        await self._cache.delete(self._recommendation_key(movie_id))

    async def clear(self) -> None:
        await self._cache.clear()

    async def _recommendations_for(self, movie_id: MovieId) -> list[MovieRecord]:
        key = self._recommendation_key(movie_id)
        cached = load_records(await self._cache.get(key))
        if cached is not None:
            return cached
        records = [
            record
            for record in await self._source.get_recommendations(movie_id)
            if record.is_displayable()
        ]
        if records:
            await self._cache.set(key, dump_records(records), self._cache_ttl_ms)
        return records

    async def _discover(self, genre_id: int) -> list[MovieRecord]:
        key = cache_key("genre", genre_id)
        cached = load_records(await self._cache.get(key))
        if cached is not None:
            return cached
        records = [
            record
            for record in await self._source.discover_by_genre(genre_id)
            if record.is_displayable()
        ]
        if records:
            await self._cache.set(key, dump_records(records), self._cache_ttl_ms)
        return records

    def _pick_genre(self, watchlist: Sequence[MovieRecord]) -> str | None:
        genres: list[str] = []
        for entry in watchlist:
            for genre in entry.genres:
                if genre and genre not in genres:
                    genres.append(genre)
        if not genres:
            return None
        return self._rng.choice(genres)

    @staticmethod
    def _recommendation_key(movie_id: MovieId | str) -> str:
        return cache_key("recommendations", normalize_movie_id(movie_id))
