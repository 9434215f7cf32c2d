"""Helper client for IMDb-keyed lookups through the OMDb API."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from ..config import Settings
from ..models import NO_IMAGE, DetailedMovieRecord, MovieId
from ..utils import parse_runtime_minutes, parse_year, split_names

logger = logging.getLogger(__name__)


class OMDBClient:
    """Wrapper around the OMDb ``?i=`` and ``?s=`` endpoints.

    OMDb reports failures with ``{"Response": "False", "Error": ...}`` and a
    200 status, so both that shape and HTTP errors are treated as misses.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._settings.omdb_api_key)

    async def get_details(self, imdb_id: str) -> DetailedMovieRecord | None:
        payload = await self._get({"i": imdb_id, "plot": "full"})
        if payload is None:
            return None
        try:
            movie_id = MovieId.parse(str(payload.get("imdbID") or imdb_id))
        except ValueError:
            logger.warning("OMDb returned an unusable id for %s", imdb_id)
            return None
        title = payload.get("Title")
        if not title:
            return None

        return DetailedMovieRecord(
            id=movie_id,
            title=str(title),
            year=parse_year(payload.get("Year")) or "N/A",
            poster_url=self._poster(payload.get("Poster")),
            genres=split_names(payload.get("Genre")),
            overview=self._text(payload.get("Plot")),
            runtime_minutes=parse_runtime_minutes(payload.get("Runtime")),
            rating=self._float(payload.get("imdbRating")),
            release_date_iso=self._iso_date(payload.get("Released")),
            cast=split_names(payload.get("Actors")),
            director=self._text(payload.get("Director")),
            writers=split_names(payload.get("Writer")),
            imdb_id=movie_id.native_id,
        )

    async def probe(self) -> tuple[bool, str]:
        payload = await self._get({"s": "action", "type": "movie", "page": 1})
        if payload is None:
            return False, "Connection failed"
        search = payload.get("Search")
        shown = len(search) if isinstance(search, list) else 0
        return True, f"Found {payload.get('totalResults') or '?'} results, showing {shown}"

    async def _get(self, params: dict[str, Any]) -> dict[str, Any] | None:
        if not self.enabled:
            logger.info("OMDb API key missing, skipping lookup")
            return None
        query = {"apikey": self._settings.omdb_api_key, **params}
        try:
            response = await self._client.get("/", params=query)
        except httpx.HTTPError as exc:
            logger.warning("OMDb request failed: %s", exc)
            return None
        if response.status_code >= 400:
            logger.warning("OMDb request returned %s", response.status_code)
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON OMDb response")
            return None
        if not isinstance(data, dict):
            return None
        if str(data.get("Response", "True")).lower() == "false":
            logger.info("OMDb lookup failed: %s", data.get("Error") or "unknown error")
            return None
        return data

    @staticmethod
    def _text(value: Any) -> str | None:
        if not isinstance(value, str) or value.strip() in {"", "N/A"}:
            return None
        return value.strip()

    @staticmethod
    def _poster(value: Any) -> str:
        if isinstance(value, str) and value.startswith("http"):
            return value
        return NO_IMAGE

    @staticmethod
    def _float(value: Any) -> float | None:
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _iso_date(value: Any) -> str | None:
        if not isinstance(value, str):
            return None
        try:
            return datetime.strptime(value.strip(), "%d %b %Y").date().isoformat()
        except ValueError:
            return None
