"""Composition root for the client-side movie session."""

from __future__ import annotations

import random
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator

import httpx

from .config import Settings, get_settings
from .services.backend import BackendClient
from .services.catalog import CatalogAdapter
from .services.omdb import OMDBClient
from .services.session import MovieSession
from .services.tmdb import TMDBClient
from .storage import AuthSessionStore, LocalStorage


@asynccontextmanager
async def open_session(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> AsyncIterator[MovieSession]:
    """Build one ``MovieSession`` with its HTTP clients and local storage.

    Everything created here is owned by the session and released on exit.
    """

    settings = settings or get_settings()

    def client(base_url: str, timeout: httpx.Timeout) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"base_url": base_url, "timeout": timeout}
        if transport is not None:
            kwargs["transport"] = transport
        return httpx.AsyncClient(**kwargs)

    async with AsyncExitStack() as exit_stack:
        tmdb_http = await exit_stack.enter_async_context(
            client(str(settings.tmdb_api_url), httpx.Timeout(20.0, connect=10.0))
        )
        omdb_http = await exit_stack.enter_async_context(
            client(str(settings.omdb_api_url), httpx.Timeout(15.0, connect=5.0))
        )
        backend_http = await exit_stack.enter_async_context(
            client(str(settings.backend_api_url), httpx.Timeout(20.0, connect=10.0))
        )

        storage = LocalStorage.from_url(settings.local_store_url)
        exit_stack.push_async_callback(storage.dispose)
        await storage.initialise()

        catalog = CatalogAdapter(
            TMDBClient(settings, tmdb_http), OMDBClient(settings, omdb_http)
        )
        backend = BackendClient(settings, backend_http, AuthSessionStore(storage))
        session = MovieSession(settings, catalog, backend, storage=storage, rng=rng)
        exit_stack.push_async_callback(session.close)

        await session.start()
        yield session
