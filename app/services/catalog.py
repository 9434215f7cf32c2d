"""Catalog adapter combining TMDB and OMDb behind one interface."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from ..models import DetailedMovieRecord, MovieId, MovieRecord, MovieSource
from .omdb import OMDBClient
from .tmdb import TMDBClient, resolve_genre_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ConnectivityStatus:
    status: str
    message: str


class CatalogAdapter:
    """Stable entry point for every catalog lookup the client performs.

    Identifiers may be given as ``MovieId`` instances or their string form.
    IMDb-keyed ids are resolved to TMDB ids before list lookups; detail
    lookups for IMDb ids go through OMDb when it is configured.
    """

    def __init__(self, tmdb: TMDBClient, omdb: OMDBClient | None = None):
        self._tmdb = tmdb
        self._omdb = omdb

    async def search(self, title: str, year: str | int | None = None) -> list[MovieRecord]:
        title = (title or "").strip()
        if not title:
            return []
        return await self._tmdb.search(title, year)

    async def get_details(self, movie_id: MovieId | str) -> DetailedMovieRecord | None:
        parsed = self._parse(movie_id)
        if parsed is None:
            return None
        if parsed.source is MovieSource.IMDB and self._omdb is not None and self._omdb.enabled:
            return await self._omdb.get_details(parsed.native_id)
        tmdb_id = await self._resolve_tmdb_id(parsed)
        if tmdb_id is None:
            return None
        return await self._tmdb.get_details(tmdb_id)

    async def get_similar(self, movie_id: MovieId | str) -> list[MovieRecord]:
        tmdb_id = await self._resolve_tmdb_id(self._parse(movie_id))
        if tmdb_id is None:
            return []
        return await self._tmdb.get_similar(tmdb_id)

    async def get_recommendations(self, movie_id: MovieId | str) -> list[MovieRecord]:
        tmdb_id = await self._resolve_tmdb_id(self._parse(movie_id))
        if tmdb_id is None:
            return []
        return await self._tmdb.get_recommendations(tmdb_id)

    async def discover_by_genre(self, genre_id: int) -> list[MovieRecord]:
        return await self._tmdb.discover_by_genre(genre_id)

    def resolve_genre_id(self, name: str | None) -> int:
        return resolve_genre_id(name)

    async def find_by_external_id(self, imdb_id: str) -> int | None:
        return await self._tmdb.find_by_external_id(imdb_id)

    async def check_connectivity(self) -> dict[str, ConnectivityStatus]:
        """Probe both upstream services and report a status per service."""

        probes = {"tmdb": self._tmdb.probe()}
        if self._omdb is not None:
            probes["omdb"] = self._omdb.probe()
        outcomes = await asyncio.gather(*probes.values())
        return {
            name: ConnectivityStatus("success" if ok else "error", message)
            for name, (ok, message) in zip(probes, outcomes)
        }

    async def _resolve_tmdb_id(self, movie_id: MovieId | None) -> int | None:
        if movie_id is None:
            return None
        if movie_id.tmdb_id is not None:
            return movie_id.tmdb_id
        tmdb_id = await self._tmdb.find_by_external_id(movie_id.native_id)
        if tmdb_id is None:
            logger.info("No TMDB match for %s", movie_id)
        return tmdb_id

    @staticmethod
    def _parse(movie_id: MovieId | str) -> MovieId | None:
        try:
            return MovieId.parse(movie_id)
        except ValueError:
            logger.warning("Ignoring unrecognised movie id %r", movie_id)
            return None
