from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect, text

from app import db_models  # noqa: F401
from app.database import Database, LocalBase


def _table_names(database_path) -> set[str]:
    engine = create_engine(f"sqlite:///{database_path}")
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


def test_create_all_builds_backend_tables(tmp_path) -> None:
    """The backend database holds accounts, watchlists and reviews only."""

    database_path = tmp_path / "backend.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    tables = _table_names(database_path)

    assert {"users", "auth_tokens", "watchlist_items", "reviews"} <= tables
    assert "stored_values" not in tables


def test_local_store_schema_is_separate(tmp_path) -> None:
    database_path = tmp_path / "local.db"
    database = Database(
        f"sqlite+aiosqlite:///{database_path}", metadata=LocalBase.metadata
    )
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    assert _table_names(database_path) == {"stored_values"}


def test_watchlist_items_enforce_one_row_per_movie(tmp_path) -> None:
    database_path = tmp_path / "backend.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    engine = create_engine(f"sqlite:///{database_path}")
    try:
        constraints = inspect(engine).get_unique_constraints("watchlist_items")
    finally:
        engine.dispose()

    assert any(
        set(constraint["column_names"]) == {"user_id", "movie_id"}
        for constraint in constraints
    )


def test_sqlite_connections_enforce_foreign_keys(tmp_path) -> None:
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'backend.db'}")

    async def _pragma() -> int:
        try:
            async with database.engine.connect() as connection:
                result = await connection.execute(text("PRAGMA foreign_keys"))
                return result.scalar_one()
        finally:
            await database.dispose()

    assert asyncio.run(_pragma()) == 1
