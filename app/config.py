"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="MovieMuse", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=5000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_image_url: str = Field(
        default="https://image.tmdb.org/t/p/w500", alias="TMDB_IMAGE_URL"
    )
    omdb_api_key: str | None = Field(default=None, alias="OMDB_API_KEY")
    omdb_api_url: HttpUrl = Field(
        default="https://www.omdbapi.com", alias="OMDB_API_URL"
    )
    catalog_language: str = Field(default="en-US", alias="CATALOG_LANGUAGE")

    backend_api_url: HttpUrl = Field(
        default="http://localhost:5000/api", alias="BACKEND_API_URL"
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./moviemuse.db", alias="DATABASE_URL"
    )
    local_store_url: str = Field(
        default="sqlite+aiosqlite:///./moviemuse-local.db", alias="LOCAL_STORE_URL"
    )

    query_cache_seconds: int = Field(default=1_800, alias="QUERY_CACHE_TTL", ge=1)
    feed_cache_seconds: int = Field(default=300, alias="FEED_CACHE_TTL", ge=1)

    search_debounce_ms: int = Field(
        default=500, alias="SEARCH_DEBOUNCE_MS", ge=0, le=10_000
    )
    spinner_delay_ms: int = Field(
        default=150, alias="SPINNER_DELAY_MS", ge=0, le=10_000
    )
    min_query_length: int = Field(default=3, alias="MIN_QUERY_LENGTH", ge=0)

    recommendation_limit: int = Field(
        default=10, alias="RECOMMENDATION_LIMIT", ge=1, le=100
    )
    recommendation_seed_count: int = Field(
        default=3, alias="RECOMMENDATION_SEED_COUNT", ge=1, le=20
    )
    recommendation_min_candidates: int = Field(
        default=3, alias="RECOMMENDATION_MIN_CANDIDATES", ge=0
    )

    token_ttl_hours: int = Field(default=24, alias="TOKEN_TTL_HOURS", ge=1)

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", "omdb_api_key", mode="before")
    @classmethod
    def _strip_blank_keys(cls, value: object) -> object:
        """Treat blank API keys as missing."""

        if isinstance(value, str):
            value = value.strip()
            if not value:
                return None
        return value

    @field_validator("catalog_language", mode="before")
    @classmethod
    def _normalise_language(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "en-US"
        return str(value).strip()

    @field_validator("tmdb_image_url", mode="after")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def query_cache_ttl_ms(self) -> int:
        return self.query_cache_seconds * 1_000

    @property
    def feed_cache_ttl_ms(self) -> int:
        return self.feed_cache_seconds * 1_000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
