"""Pydantic models describing movies, watchlists and session state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

NO_IMAGE = "N/A"
UNKNOWN_YEAR = "N/A"

FeedName = Literal["trending", "new-releases", "top-rated"]
FEED_NAMES: tuple[str, ...] = ("trending", "new-releases", "top-rated")


class MovieSource(str, Enum):
    """Catalog a movie identifier originates from."""

    TMDB = "tmdb"
    IMDB = "imdb"


class MovieId(BaseModel):
    """Source-tagged movie identifier.

    TMDB ids render as ``tmdb-<id>`` and IMDb ids keep their native ``tt``
    form, which is the shape persisted by the backend. Strings and integers
    are accepted wherever a ``MovieId`` is expected.
    """

    model_config = ConfigDict(frozen=True)

    source: MovieSource
    native_id: str

    @model_validator(mode="before")
    @classmethod
    def _parse(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("Movie id must be a string or integer")
        if isinstance(value, int):
            return {"source": MovieSource.TMDB, "native_id": str(value)}
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            raise ValueError("Movie id must not be empty")
        lowered = raw.lower()
        for separator in ("-", ":"):
            prefix = f"{MovieSource.TMDB.value}{separator}"
            if lowered.startswith(prefix):
                native = raw[len(prefix):].strip()
                if not native.isdigit():
                    raise ValueError(f"Invalid TMDB id: {value!r}")
                return {"source": MovieSource.TMDB, "native_id": native}
            prefix = f"{MovieSource.IMDB.value}{separator}"
            if lowered.startswith(prefix):
                raw = raw[len(prefix):].strip()
                lowered = raw.lower()
                break
        if lowered.startswith("tt") and raw[2:].isdigit():
            return {"source": MovieSource.IMDB, "native_id": lowered}
        if raw.isdigit():
            return {"source": MovieSource.TMDB, "native_id": raw}
        raise ValueError(f"Unrecognised movie id: {value!r}")

    @model_serializer
    def _serialize(self) -> str:
        return str(self)

    def __str__(self) -> str:
        if self.source is MovieSource.TMDB:
            return f"{self.source.value}-{self.native_id}"
        return self.native_id

    @property
    def normalized(self) -> str:
        """Identifier with the source tag stripped, used for dedup only."""

        return self.native_id

    @property
    def tmdb_id(self) -> int | None:
        if self.source is MovieSource.TMDB:
            return int(self.native_id)
        return None

    @classmethod
    def parse(cls, value: "str | int | MovieId") -> "MovieId":
        if isinstance(value, MovieId):
            return value
        return cls.model_validate(value)

    @classmethod
    def tmdb(cls, native_id: int | str) -> "MovieId":
        return cls(source=MovieSource.TMDB, native_id=str(native_id))


def normalize_movie_id(value: "str | int | MovieId") -> str:
    """Return the normalized id, falling back to the raw string when unparseable."""

    try:
        return MovieId.parse(value).normalized
    except ValueError:
        return str(value).strip()


class MovieRecord(BaseModel):
    """Canonical internal movie shape shared by search, lists and recommendations."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    id: MovieId = Field(validation_alias=AliasChoices("id", "imdbID", "imdbId"))
    title: str = Field(validation_alias=AliasChoices("title", "Title"))
    year: str = Field(
        default=UNKNOWN_YEAR, validation_alias=AliasChoices("year", "Year")
    )
    poster_url: str = Field(
        default=NO_IMAGE,
        validation_alias=AliasChoices("posterUrl", "poster_url", "Poster"),
    )
    genres: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _coerce_year(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for key in ("year", "Year"):
                if isinstance(data.get(key), int):
                    data = {**data, key: str(data[key])}
        return data

    @property
    def normalized_id(self) -> str:
        return self.id.normalized

    def is_displayable(self) -> bool:
        """Return ``True`` when the record has an id, a title and a real poster."""

        poster = (self.poster_url or "").strip()
        return bool(
            str(self.id)
            and (self.title or "").strip()
            and poster
            and poster != NO_IMAGE
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DetailedMovieRecord(MovieRecord):
    """Movie record enriched with the fields shown on the detail view."""

    overview: str | None = None
    runtime_minutes: int | None = None
    rating: float | None = None
    release_date_iso: str | None = None
    cast: list[str] = Field(default_factory=list)
    director: str | None = None
    writers: list[str] = Field(default_factory=list)
    imdb_id: str | None = None


class WatchlistEntry(MovieRecord):
    """A movie the user has watched, optionally rated and reviewed."""

    runtime_minutes: int | None = Field(
        default=None, validation_alias=AliasChoices("runtimeMinutes", "runtime")
    )
    rating: float | None = Field(
        default=None, validation_alias=AliasChoices("rating", "imdbRating")
    )
    user_rating: int | None = Field(default=None, ge=1, le=10)
    user_review: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for key in ("userRating", "user_rating"):
            if cleaned.get(key) in ("", 0):
                cleaned[key] = None
        runtime = cleaned.get("runtime")
        if isinstance(runtime, str):
            digits = runtime.split(" ")[0]
            cleaned["runtime"] = int(digits) if digits.isdigit() else None
        return cleaned

    @classmethod
    def from_movie(
        cls,
        movie: MovieRecord,
        *,
        user_rating: int | None = None,
        user_review: str | None = None,
    ) -> "WatchlistEntry":
        payload = movie.model_dump(include=set(MovieRecord.model_fields))
        if isinstance(movie, DetailedMovieRecord):
            payload["runtime_minutes"] = movie.runtime_minutes
            payload["rating"] = movie.rating
        return cls.model_validate(
            {**payload, "user_rating": user_rating, "user_review": user_review}
        )


class Review(BaseModel):
    """A user's rating and comment for a movie."""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, from_attributes=True
    )

    movie_id: str
    user_id: int | None = None
    username: str
    rating: int = Field(ge=1, le=10)
    comment: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None


class AuthSession(BaseModel):
    """Persisted authentication state for the client session."""

    model_config = ConfigDict(populate_by_name=True)

    token: str
    token_expiry: int = Field(description="Expiry as epoch milliseconds.")
    username: str

    def is_active(self, now_ms: int) -> bool:
        return bool(self.token) and now_ms < self.token_expiry


@dataclass(slots=True)
class SearchState:
    """Observable state of the search controller."""

    query: str = ""
    request_generation: int = 0
    results: list[MovieRecord] = field(default_factory=list)
    is_loading: bool = False
    error: str | None = None
