"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.models import MovieId, MovieRecord  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, milliseconds: int) -> None:
        self.now += milliseconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def build_movie(
    native_id: int | str,
    title: str | None = None,
    *,
    genres: tuple[str, ...] = (),
    poster: bool = True,
) -> MovieRecord:
    movie_id = MovieId.parse(native_id)
    return MovieRecord(
        id=movie_id,
        title=title or f"Movie {movie_id.native_id}",
        year="2001",
        poster_url=f"https://image.example.com/{movie_id.native_id}.jpg" if poster else "N/A",
        genres=list(genres),
    )


@pytest.fixture
def make_movie() -> Callable[..., MovieRecord]:
    return build_movie


class FakeCatalog:
    """In-memory stand-in for the catalog adapter.

    Searches for a title registered in ``gates`` block until the gate is set,
    which lets tests control the order in which responses arrive.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.search_results: dict[str, list[MovieRecord]] = {}
        self.recommendations: dict[str, list[MovieRecord]] = {}
        self.discover: dict[int, list[MovieRecord]] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.search_error: Exception | None = None

    async def search(self, title: str, year: str | int | None = None) -> list[MovieRecord]:
        self.calls.append(f"search:{title}")
        gate = self.gates.get(title)
        if gate is not None:
            await gate.wait()
        if self.search_error is not None:
            raise self.search_error
        return list(self.search_results.get(title, []))

    async def get_recommendations(self, movie_id: MovieId | str) -> list[MovieRecord]:
        normalized = MovieId.parse(movie_id).normalized
        self.calls.append(f"recommendations:{normalized}")
        return list(self.recommendations.get(normalized, []))

    async def discover_by_genre(self, genre_id: int) -> list[MovieRecord]:
        self.calls.append(f"discover:{genre_id}")
        return list(self.discover.get(genre_id, []))

    def resolve_genre_id(self, name: str | None) -> int:
        from app.services.tmdb import resolve_genre_id

        return resolve_genre_id(name)


@pytest.fixture
def fake_catalog() -> FakeCatalog:
    return FakeCatalog()


class FakeBackendServer:
    """Minimal in-memory implementation of the backend REST surface."""

    def __init__(self, token: str = "valid-token") -> None:
        self.token = token
        self.watchlist: list[dict[str, Any]] = []
        self.reviews: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: tuple[int, dict[str, Any]] | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with is not None:
            status, body = self.fail_with
            return httpx.Response(status, json=body)

        path = request.url.path.removeprefix("/api")
        if path == "/auth/login":
            body = json.loads(request.content)
            if body.get("password") != "secret":
                return httpx.Response(400, json={"msg": "Invalid credentials"})
            return httpx.Response(
                200,
                json={"token": self.token, "username": body["username"]},
            )
        if path.startswith("/reviews/") and request.method == "GET":
            return httpx.Response(200, json=self.reviews.get(path.split("/")[-1], []))

        if request.headers.get("x-auth-token") != self.token:
            return httpx.Response(401, json={"msg": "No valid token, authorization denied"})

        if path == "/watchlist" and request.method == "GET":
            return httpx.Response(200, json=self.watchlist)
        if path == "/watchlist/add":
            entry = json.loads(request.content)
            for index, existing in enumerate(self.watchlist):
                if existing["id"] == entry["id"]:
                    self.watchlist[index] = entry
                    break
            else:
                self.watchlist.append(entry)
            return httpx.Response(200, json=self.watchlist)
        if path.startswith("/watchlist/remove/"):
            movie_id = path.rsplit("/", 1)[-1]
            self.watchlist = [entry for entry in self.watchlist if entry["id"] != movie_id]
            return httpx.Response(200, json=self.watchlist)
        if path.startswith("/reviews/") and request.method == "POST":
            movie_id = path.split("/")[-1]
            body = json.loads(request.content)
            review = {
                "movieId": movie_id,
                "username": "neo",
                "rating": body["rating"],
                "comment": body["comment"],
            }
            self.reviews.setdefault(movie_id, []).append(review)
            return httpx.Response(200, json={"review": review, "message": "Review added successfully"})
        return httpx.Response(404, json={"msg": "Not found"})


@pytest.fixture
def backend_server() -> FakeBackendServer:
    return FakeBackendServer()
