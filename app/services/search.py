"""Debounced, cancellable movie search."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, Protocol

from ..config import Settings
from ..models import MovieRecord, SearchState
from ..utils import cache_key
from .query_cache import QueryCache, dump_records, load_records

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No results found"


class SearchBackend(Protocol):
    async def search(self, title: str, year: str | int | None = None) -> list[MovieRecord]: ...

    async def discover_by_genre(self, genre_id: int) -> list[MovieRecord]: ...


class SearchController:
    """Turns a stream of query edits into settled search results.

    Each accepted query gets a new request generation. Only the fetch task of
    the current generation may write ``results``/``is_loading``; superseded
    tasks are cancelled and anything they might still produce is dropped.
    Two submissions of the same text share no generation distinction, so the
    last writer wins between them.
    """

    def __init__(
        self,
        backend: SearchBackend,
        cache: QueryCache,
        *,
        debounce_ms: int = 500,
        spinner_delay_ms: int = 150,
        min_query_length: int = 3,
        cache_ttl_ms: int | None = None,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._debounce = debounce_ms / 1_000
        self._spinner_delay = spinner_delay_ms / 1_000
        self._min_query_length = min_query_length
        self._cache_ttl_ms = cache_ttl_ms
        self._state = SearchState()
        self._genre_id: int | None = None
        self._task: asyncio.Task[None] | None = None
        self._spinner: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(
        cls, settings: Settings, backend: SearchBackend, cache: QueryCache
    ) -> "SearchController":
        return cls(
            backend,
            cache,
            debounce_ms=settings.search_debounce_ms,
            spinner_delay_ms=settings.spinner_delay_ms,
            min_query_length=settings.min_query_length,
            cache_ttl_ms=settings.query_cache_ttl_ms,
        )

    @property
    def state(self) -> SearchState:
        """Return a snapshot of the current search state."""

        return replace(self._state, results=list(self._state.results))

    @property
    def is_fetching(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_query(self, query: str, *, force: bool = False) -> None:
        """Accept a new query; ``force`` skips the debounce and length checks."""

        if query == self._state.query and self._genre_id is None and not force:
            return

        generation = self._begin(query)
        self._genre_id = None
        text = query.strip()
        if not text or (len(text) < self._min_query_length and not force):
            self._state.results = []
            self._state.is_loading = False
            self._state.error = None
            return

        self._launch(
            generation,
            cache_key("search", text),
            lambda: self._backend.search(text),
            delay=0 if force else self._debounce,
        )

    def browse_genre(self, genre_id: int) -> None:
        """Switch to browsing popular movies of a genre."""

        if genre_id == self._genre_id and self.is_fetching:
            return
        generation = self._begin("")
        self._genre_id = genre_id
        self._launch(
            generation,
            cache_key("genre", genre_id),
            lambda: self._backend.discover_by_genre(genre_id),
            delay=0,
        )

    async def wait(self) -> SearchState:
        """Wait until the outstanding request, if any, has finished."""

        while self._task is not None and not self._task.done():
            task = self._task
            await asyncio.wait({task})
            if not task.cancelled():
                task.result()
        return self.state

    async def close(self) -> None:
        self._cancel_pending()
        await self.wait()

    def _begin(self, query: str) -> int:
        self._cancel_pending()
        self._state.query = query
        self._state.request_generation += 1
        return self._state.request_generation

    def _launch(
        self,
        generation: int,
        key: str,
        loader: Callable[[], Awaitable[list[MovieRecord]]],
        *,
        delay: float,
    ) -> None:
        self._task = asyncio.create_task(self._run(generation, key, loader, delay))
        self._spinner = asyncio.create_task(self._show_spinner(generation))

    def _cancel_pending(self) -> None:
        for task in (self._task, self._spinner):
            if task is not None and not task.done():
                task.cancel()
        self._spinner = None

    async def _run(
        self,
        generation: int,
        key: str,
        loader: Callable[[], Awaitable[list[MovieRecord]]],
        delay: float,
    ) -> None:
        if delay:
            await asyncio.sleep(delay)

        cached = load_records(await self._cache.get(key))
        if cached is not None:
            logger.debug("Serving %s from cache", key)
            self._settle(generation, cached)
            return

        try:
            records = await loader()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Search request %s failed", key)
            self._fail(generation, str(exc) or "Failed to fetch movies")
            return

        records = [record for record in records if record.is_displayable()]
        if records:
            await self._cache.set(key, dump_records(records), self._cache_ttl_ms)
        self._settle(generation, records)

    async def _show_spinner(self, generation: int) -> None:
        await asyncio.sleep(self._spinner_delay)
        if generation == self._state.request_generation and self.is_fetching:
            self._state.is_loading = True

    def _is_current(self, generation: int) -> bool:
        if generation != self._state.request_generation:
            logger.debug("Dropping stale search response (generation %s)", generation)
            return False
        return True

    def _settle(self, generation: int, records: list[MovieRecord]) -> None:
        if not self._is_current(generation):
            return
        self._stop_spinner()
        self._state.results = records
        self._state.is_loading = False
        self._state.error = None if records else NO_RESULTS_MESSAGE

    def _fail(self, generation: int, message: str) -> None:
        if not self._is_current(generation):
            return
        self._stop_spinner()
        self._state.results = []
        self._state.is_loading = False
        self._state.error = message

    def _stop_spinner(self) -> None:
        if self._spinner is not None and not self._spinner.done():
            self._spinner.cancel()
        self._spinner = None
