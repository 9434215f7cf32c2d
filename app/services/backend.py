"""Client for the MovieMuse backend REST API."""

from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..config import Settings
from ..models import AuthSession, MovieRecord, Review
from ..storage import AuthSessionStore
from ..utils import now_ms
from .tmdb import convert_tmdb_movie

logger = logging.getLogger(__name__)

AUTH_HEADER = "x-auth-token"


class BackendError(RuntimeError):
    """Raised when the backend rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(BackendError):
    """Raised when a call needs a valid session and none is available."""


class BackendClient:
    """Shared plumbing for authenticated backend calls.

    Authenticated requests carry the stored token in the ``x-auth-token``
    header. Error responses surface as ``BackendError`` with the server's
    ``msg`` when one is supplied; retries are left to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        auth_store: AuthSessionStore,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._auth_store = auth_store
        self._clock = clock

    async def current_session(self) -> AuthSession | None:
        return await self._auth_store.load()

    async def login(self, username: str, password: str) -> AuthSession:
        data = await self.request(
            "POST", "/auth/login", json={"username": username, "password": password}
        )
        if not isinstance(data, dict) or not data.get("token"):
            raise BackendError("Login response did not include a token")

        expiry = data.get("expiresAt")
        if not isinstance(expiry, int):
            expiry = self._clock() + self._settings.token_ttl_hours * 3_600_000
        session = AuthSession(
            token=str(data["token"]),
            token_expiry=expiry,
            username=str(data.get("username") or username),
        )
        await self._auth_store.save(session)
        logger.info("Logged in as %s", session.username)
        return session

    async def signup(self, username: str, password: str) -> dict[str, Any]:
        data = await self.request(
            "POST", "/auth/signup", json={"username": username, "password": password}
        )
        return data if isinstance(data, dict) else {}

    async def logout(self) -> None:
        await self._auth_store.clear()

    async def get_reviews(self, movie_id: str) -> list[Review]:
        data = await self.request("GET", f"/reviews/{self._quote(movie_id)}")
        return parse_model_list(data, Review, what="reviews")

    async def post_review(
        self, movie_id: str, rating: int, comment: str = ""
    ) -> tuple[Review, str]:
        data = await self.request(
            "POST",
            f"/reviews/{self._quote(movie_id)}",
            json={"rating": rating, "comment": comment},
            authenticated=True,
        )
        if not isinstance(data, dict) or not isinstance(data.get("review"), dict):
            raise BackendError("Unexpected review payload")
        return Review.model_validate(data["review"]), str(data.get("message") or "")

    async def fetch_feed(self, feed: str, page: int = 1) -> list[MovieRecord]:
        """Return a curated feed converted to displayable movie records."""

        data = await self.request("GET", f"/movies/{feed}", params={"page": page})
        if not isinstance(data, list):
            raise BackendError("Unexpected feed payload")
        records: list[MovieRecord] = []
        for item in data:
            record = convert_tmdb_movie(item, image_base_url=self._settings.tmdb_image_url)
            if record is not None and record.is_displayable():
                records.append(record)
        return records

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        authenticated: bool = False,
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        if authenticated:
            session = await self._auth_store.load()
            if session is None:
                raise AuthenticationError("Not authenticated", 401)
            headers[AUTH_HEADER] = session.token

        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.warning("Backend %s %s failed: %s", method, path, exc)
            raise BackendError(f"Backend request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None

        if response.status_code >= 400:
            message = self._error_message(data) or response.text or "An error occurred"
            logger.warning(
                "Backend %s %s returned %s: %s", method, path, response.status_code, message
            )
            if response.status_code == 401:
                raise AuthenticationError(message, response.status_code)
            raise BackendError(message, response.status_code)
        return data

    @staticmethod
    def _error_message(data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        for key in ("msg", "message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @staticmethod
    def _quote(value: str) -> str:
        return quote(str(value), safe="")


def parse_model_list(data: Any, model: type, *, what: str) -> list[Any]:
    """Validate a backend list payload, raising ``BackendError`` on bad shapes."""

    if not isinstance(data, list):
        raise BackendError(f"Unexpected {what} payload")
    try:
        return [model.model_validate(item) for item in data]
    except ValidationError as exc:
        raise BackendError(f"Malformed {what} payload") from exc
