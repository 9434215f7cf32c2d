"""Client for The Movie Database (TMDB) catalog endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..config import Settings
from ..models import (
    NO_IMAGE,
    DetailedMovieRecord,
    MovieId,
    MovieRecord,
)
from ..utils import parse_year

logger = logging.getLogger(__name__)

DEFAULT_GENRE_ID = 18

TMDB_GENRES: dict[str, int] = {
    "Action": 28,
    "Adventure": 12,
    "Animation": 16,
    "Comedy": 35,
    "Crime": 80,
    "Documentary": 99,
    "Drama": 18,
    "Family": 10751,
    "Fantasy": 14,
    "History": 36,
    "Horror": 27,
    "Music": 10402,
    "Mystery": 9648,
    "Romance": 10749,
    "Science Fiction": 878,
    "TV Movie": 10770,
    "Thriller": 53,
    "War": 10752,
    "Western": 37,
}
GENRE_NAMES: dict[int, str] = {genre_id: name for name, genre_id in TMDB_GENRES.items()}

MAX_CAST = 10


def resolve_genre_id(name: str | None) -> int:
    """Map a genre name onto its TMDB id, defaulting to Drama."""

    if name:
        wanted = name.strip().casefold()
        for genre_name, genre_id in TMDB_GENRES.items():
            if genre_name.casefold() == wanted:
                return genre_id
    return DEFAULT_GENRE_ID


def build_image_url(path: str | None, base_url: str) -> str:
    if not path:
        return NO_IMAGE
    if path.startswith("http"):
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"


def convert_tmdb_movie(item: Any, *, image_base_url: str) -> MovieRecord | None:
    """Convert a TMDB list result into a movie record.

    Items without a poster, a title or a parseable release year are dropped.
    """

    if not isinstance(item, dict):
        return None
    native_id = item.get("id")
    title = item.get("title") or item.get("name")
    poster_path = item.get("poster_path")
    year = parse_year(item.get("release_date") or item.get("first_air_date"))
    if not isinstance(native_id, int) or isinstance(native_id, bool):
        return None
    if not title or not poster_path or not year:
        return None

    genre_ids = item.get("genre_ids")
    if not isinstance(genre_ids, list):
        genre_ids = []
    genres = [
        GENRE_NAMES[genre_id]
        for genre_id in genre_ids
        if isinstance(genre_id, int) and genre_id in GENRE_NAMES
    ]
    return MovieRecord(
        id=MovieId.tmdb(native_id),
        title=str(title),
        year=year,
        poster_url=build_image_url(poster_path, image_base_url),
        genres=genres,
    )


class TMDBClient:
    """Client responsible for querying TMDB and normalising its payloads.

    Every failure (transport errors, non-success statuses, malformed JSON) is
    logged and reported as an empty result so callers never need their own
    error handling.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def search(self, title: str, year: str | int | None = None) -> list[MovieRecord]:
        """Search movies by title, optionally restricted to a release year."""

        params: dict[str, Any] = {
            "query": title,
            "include_adult": "false",
            "page": 1,
        }
        if year:
            params["year"] = year
        return self._convert_results(await self._get("/search/movie", params))

    async def get_details(self, tmdb_id: int) -> DetailedMovieRecord | None:
        payload = await self._get(
            f"/movie/{tmdb_id}",
            {"append_to_response": "credits,external_ids"},
        )
        if payload is None:
            return None
        try:
            return self._convert_details(payload)
        except (AttributeError, TypeError, ValueError):
            logger.warning("Malformed TMDB details payload for %s", tmdb_id, exc_info=True)
            return None

    async def get_similar(self, tmdb_id: int) -> list[MovieRecord]:
        return self._convert_results(
            await self._get(f"/movie/{tmdb_id}/similar", {"page": 1})
        )

    async def get_recommendations(self, tmdb_id: int) -> list[MovieRecord]:
        return self._convert_results(
            await self._get(f"/movie/{tmdb_id}/recommendations", {"page": 1})
        )

    async def discover_by_genre(self, genre_id: int, *, page: int = 1) -> list[MovieRecord]:
        """Return popular movies in a genre."""

        params = {
            "with_genres": genre_id,
            "sort_by": "popularity.desc",
            "page": page,
        }
        return self._convert_results(await self._get("/discover/movie", params))

    async def find_by_external_id(self, imdb_id: str) -> int | None:
        """Resolve an IMDb identifier to its TMDB movie id."""

        if not imdb_id:
            return None
        payload = await self._get(f"/find/{imdb_id}", {"external_source": "imdb_id"})
        if payload is None:
            return None
        matches = payload.get("movie_results")
        if not isinstance(matches, list) or not matches:
            return None
        first = matches[0]
        if isinstance(first, dict) and isinstance(first.get("id"), int):
            return first["id"]
        return None

    async def probe(self) -> tuple[bool, str]:
        """Fetch the popular list to check connectivity."""

        payload = await self._get("/movie/popular", {"page": 1})
        if payload is None:
            return False, "Connection failed"
        results = payload.get("results")
        count = len(results) if isinstance(results, list) else 0
        return True, f"Retrieved {count} popular movies"

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any] | None:
        query = {
            "api_key": self._settings.tmdb_api_key,
            "language": self._settings.catalog_language,
            **params,
        }
        try:
            response = await self._client.get(
                endpoint, params=query, headers={"Accept": "application/json"}
            )
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", endpoint, exc)
            return None
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s returned %s: %s",
                endpoint,
                response.status_code,
                response.text,
            )
            return None
        try:
            data = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON TMDB response for %s", endpoint)
            return None
        if not isinstance(data, dict):
            logger.warning("Unexpected TMDB response structure for %s", endpoint)
            return None
        return data

    def _convert_results(self, payload: dict[str, Any] | None) -> list[MovieRecord]:
        if payload is None:
            return []
        results = payload.get("results")
        if not isinstance(results, list):
            return []
        records: list[MovieRecord] = []
        for item in results:
            try:
                record = convert_tmdb_movie(
                    item, image_base_url=self._settings.tmdb_image_url
                )
            except (AttributeError, TypeError, ValueError):
                logger.warning("Skipping malformed TMDB result: %r", item)
                continue
            if record is not None:
                records.append(record)
        return records

    def _convert_details(self, payload: dict[str, Any]) -> DetailedMovieRecord | None:
        native_id = payload.get("id")
        title = payload.get("title") or payload.get("name")
        if not isinstance(native_id, int) or not title:
            logger.warning("TMDB details payload is missing an id or title")
            return None

        genres = [
            str(genre["name"])
            for genre in payload.get("genres") or []
            if isinstance(genre, dict) and genre.get("name")
        ]
        credits = payload.get("credits")
        if not isinstance(credits, dict):
            credits = {}
        cast_members = [
            member
            for member in credits.get("cast") or []
            if isinstance(member, dict) and member.get("name")
        ]
        cast_members.sort(
            key=lambda member: member["order"] if isinstance(member.get("order"), int) else 1_000
        )
        crew = [
            member
            for member in credits.get("crew") or []
            if isinstance(member, dict) and member.get("name")
        ]
        director = next(
            (member["name"] for member in crew if member.get("job") == "Director"),
            None,
        )
        writers: list[str] = []
        for member in crew:
            if member.get("department") == "Writing" and member["name"] not in writers:
                writers.append(member["name"])

        external = payload.get("external_ids")
        if not isinstance(external, dict):
            external = {}
        runtime = payload.get("runtime")
        rating = payload.get("vote_average")
        release_date = payload.get("release_date") or None

        return DetailedMovieRecord(
            id=MovieId.tmdb(native_id),
            title=str(title),
            year=parse_year(release_date) or "N/A",
            poster_url=build_image_url(
                payload.get("poster_path"), self._settings.tmdb_image_url
            ),
            genres=genres,
            overview=payload.get("overview") or None,
            runtime_minutes=runtime if isinstance(runtime, int) and runtime > 0 else None,
            rating=float(rating) if isinstance(rating, (int, float)) else None,
            release_date_iso=release_date,
            cast=[member["name"] for member in cast_members[:MAX_CAST]],
            director=director,
            writers=writers,
            imdb_id=payload.get("imdb_id") or external.get("imdb_id"),
        )
