"""Authenticated watchlist operations against the backend."""

from __future__ import annotations

from urllib.parse import quote

from ..models import MovieId, WatchlistEntry
from .backend import BackendClient, parse_model_list


class WatchlistClient:
    """List, add and remove watchlist entries.

    Every call returns the server's full resulting list. Re-adding an id
    replaces the existing entry in place; the backend enforces that.
    """

    def __init__(self, backend: BackendClient):
        self._backend = backend

    async def list(self) -> list[WatchlistEntry]:
        data = await self._backend.request("GET", "/watchlist", authenticated=True)
        return parse_model_list(data, WatchlistEntry, what="watchlist")

    async def add(self, entry: WatchlistEntry) -> list[WatchlistEntry]:
        data = await self._backend.request(
            "POST", "/watchlist/add", json=entry.to_payload(), authenticated=True
        )
        return parse_model_list(data, WatchlistEntry, what="watchlist")

    async def remove(self, movie_id: MovieId | str) -> list[WatchlistEntry]:
        path = f"/watchlist/remove/{quote(str(movie_id), safe='')}"
        data = await self._backend.request("DELETE", path, authenticated=True)
        return parse_model_list(data, WatchlistEntry, what="watchlist")
