"""Module executed when running ``python -m moviemuse``."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

import httpx
import uvicorn

from app.client import open_session
from app.config import Settings, get_settings
from app.services.catalog import ConnectivityStatus

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="moviemuse")
    commands = parser.add_subparsers(dest="command")
    serve = commands.add_parser("serve", help="Run the backend API server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    commands.add_parser("check", help="Probe TMDB and OMDb connectivity")
    search = commands.add_parser("search", help="Search the catalog by title")
    search.add_argument("query", nargs="+")
    return parser


async def check_connectivity(
    settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
) -> dict[str, ConnectivityStatus]:
    async with open_session(settings, transport=transport) as session:
        return await session.catalog.check_connectivity()


async def search_titles(
    settings: Settings, query: str, *, transport: httpx.AsyncBaseTransport | None = None
) -> list[str]:
    async with open_session(settings, transport=transport) as session:
        await session.set_query(query, force=True)
        state = await session.search.wait()
    if state.error:
        logger.info("Search for %r returned no results: %s", query, state.error)
    return [f"{movie.title} ({movie.year}) [{movie.id}]" for movie in state.results]


def main(argv: Sequence[str] | None = None) -> int:
    """Run the requested command; the API server is the default."""

    args = build_parser().parse_args(argv)
    settings = get_settings()

    if args.command in (None, "serve"):
        uvicorn.run(
            "app.main:app",
            host=getattr(args, "host", None) or settings.server_host,
            port=getattr(args, "port", None) or settings.server_port,
            reload=settings.environment == "development",
        )
        return 0

    logging.basicConfig(level=logging.INFO)
    try:
        if args.command == "check":
            statuses = asyncio.run(check_connectivity(settings))
            for name, status in statuses.items():
                print(f"{name}: {status.status} - {status.message}")
            return 0 if all(status.status == "success" for status in statuses.values()) else 1

        for line in asyncio.run(search_titles(settings, " ".join(args.query))):
            print(line)
        return 0
    except ValueError as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    raise SystemExit(main())
