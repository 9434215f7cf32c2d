"""Client-side composition of search, watchlist and recommendations."""

from __future__ import annotations

import logging
import random
from typing import Callable

from ..config import Settings
from ..models import MovieId, MovieRecord, SearchState, WatchlistEntry
from ..storage import LocalStorage
from ..utils import now_ms
from .backend import AuthenticationError, BackendClient, BackendError
from .catalog import CatalogAdapter
from .query_cache import QueryCache
from .recommendations import RecommendationEngine
from .search import SearchController
from .watchlist import WatchlistClient

logger = logging.getLogger(__name__)


class MovieSession:
    """Owns the per-session caches and controllers and the state built on them.

    While logged out the watchlist lives only in memory; logging in replaces
    it with the server's list instead of merging. Backend failures propagate
    to the caller, which is responsible for reverting any optimistic state of
    its own.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: CatalogAdapter,
        backend: BackendClient,
        *,
        storage: LocalStorage | None = None,
        clock: Callable[[], int] = now_ms,
        rng: random.Random | None = None,
    ) -> None:
        self._backend = backend
        self.catalog = catalog
        self.search_cache = QueryCache(
            default_ttl_ms=settings.query_cache_ttl_ms,
            store=storage,
            namespace="search:",
            clock=clock,
        )
        self.recommendation_cache = QueryCache(
            default_ttl_ms=settings.query_cache_ttl_ms,
            store=storage,
            namespace="recommendations:",
            clock=clock,
        )
        self.search = SearchController.from_settings(settings, catalog, self.search_cache)
        self.recommender = RecommendationEngine.from_settings(
            settings, catalog, self.recommendation_cache, rng=rng
        )
        self.watchlist_client = WatchlistClient(backend)
        self.watchlist: list[WatchlistEntry] = []
        self.recommendations: list[MovieRecord] = []
        self.username: str | None = None
        self._recommendation_generation = 0

    @property
    def is_authenticated(self) -> bool:
        return self.username is not None

    @property
    def search_state(self) -> SearchState:
        return self.search.state

    async def start(self) -> None:
        """Restore a persisted login and load the matching watchlist."""

        session = await self._backend.current_session()
        if session is not None:
            try:
                self.watchlist = await self.watchlist_client.list()
            except AuthenticationError:
                logger.warning("Server rejected the stored session for %s", session.username)
                await self._backend.logout()
            else:
                self.username = session.username
        await self.refresh_recommendations()

    async def close(self) -> None:
        await self.search.close()

    async def login(self, username: str, password: str) -> None:
        session = await self._backend.login(username, password)
        try:
            watchlist = await self.watchlist_client.list()
        except BackendError:
            await self._backend.logout()
            raise
        if self.watchlist:
            logger.info("Discarding %s local watchlist entries on login", len(self.watchlist))
        self.username = session.username
        self.watchlist = watchlist
        await self.refresh_recommendations()

    async def logout(self) -> None:
        await self._backend.logout()
        self.username = None
        self.watchlist = []
        await self.refresh_recommendations()

    async def set_query(self, query: str, *, force: bool = False) -> None:
        self.search.set_query(query, force=force)
        if query.strip():
            self._recommendation_generation += 1
            self.recommendations = []
        else:
            await self.refresh_recommendations()

    async def add_to_watchlist(self, entry: WatchlistEntry) -> list[WatchlistEntry]:
        if self.is_authenticated:
            self.watchlist = await self.watchlist_client.add(entry)
        else:
            self.watchlist = self._upsert_local(entry)
        await self.recommender.invalidate(entry.id)
        await self.refresh_recommendations()
        return self.watchlist

    async def remove_from_watchlist(self, movie_id: MovieId | str) -> list[WatchlistEntry]:
        target = MovieId.parse(movie_id)
        if self.is_authenticated:
            self.watchlist = await self.watchlist_client.remove(target)
        else:
            self.watchlist = [
                entry for entry in self.watchlist if entry.normalized_id != target.normalized
            ]
        await self.recommender.invalidate(target)
        await self.refresh_recommendations()
        return self.watchlist

    async def refresh_recommendations(self) -> list[MovieRecord]:
        """Recompute recommendations; a newer refresh supersedes older ones."""

        self._recommendation_generation += 1
        generation = self._recommendation_generation
        results = await self.recommender.recommend(
            list(self.watchlist), self.search.state.query
        )
        if generation == self._recommendation_generation:
            self.recommendations = results
        return self.recommendations

    def _upsert_local(self, entry: WatchlistEntry) -> list[WatchlistEntry]:
        updated = list(self.watchlist)
        for index, existing in enumerate(updated):
            if existing.normalized_id == entry.normalized_id:
                updated[index] = entry
                return updated
        updated.append(entry)
        return updated
