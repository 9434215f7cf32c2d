"""Persistent client-side key/value storage."""

from __future__ import annotations

import logging
from typing import Any, Callable

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from .database import Database, LocalBase
from .db_models import StoredValue
from .models import AuthSession
from .utils import now_ms

logger = logging.getLogger(__name__)


class LocalStorage:
    """Durable JSON key/value store that survives process restarts.

    Storage failures are logged and reported as misses; callers treat a
    vanished value the same as one that was never written.
    """

    def __init__(self, database: Database, *, clock: Callable[[], int] = now_ms):
        self._database = database
        self._clock = clock

    @classmethod
    def from_url(cls, url: str) -> "LocalStorage":
        return cls(Database(url, metadata=LocalBase.metadata))

    async def initialise(self) -> None:
        await self._database.create_all()

    async def dispose(self) -> None:
        await self._database.dispose()

    async def get(self, key: str) -> Any | None:
        try:
            async with self._database.session() as session:
                row = await session.get(StoredValue, key)
                return None if row is None else row.value
        except SQLAlchemyError:
            logger.warning("Local storage read failed for %s", key, exc_info=True)
            return None

    async def set(self, key: str, value: Any) -> None:
        try:
            async with self._database.session() as session:
                row = await session.get(StoredValue, key)
                if row is None:
                    session.add(
                        StoredValue(key=key, value=value, updated_at_ms=self._clock())
                    )
                else:
                    row.value = value
                    row.updated_at_ms = self._clock()
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Local storage write failed for %s", key, exc_info=True)

    async def delete(self, key: str) -> None:
        try:
            async with self._database.session() as session:
                await session.execute(delete(StoredValue).where(StoredValue.key == key))
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Local storage delete failed for %s", key, exc_info=True)

    async def clear(self, prefix: str | None = None) -> None:
        """Remove every key, or only the keys starting with ``prefix``."""

        statement = delete(StoredValue)
        if prefix:
            statement = statement.where(StoredValue.key.startswith(prefix, autoescape=True))
        try:
            async with self._database.session() as session:
                await session.execute(statement)
                await session.commit()
        except SQLAlchemyError:
            logger.warning("Local storage clear failed for %s", prefix or "*", exc_info=True)


class AuthSessionStore:
    """Persists the ``token``, ``token_expiry`` and ``username`` keys."""

    TOKEN_KEY = "token"
    EXPIRY_KEY = "token_expiry"
    USERNAME_KEY = "username"

    def __init__(self, storage: LocalStorage, *, clock: Callable[[], int] = now_ms):
        self._storage = storage
        self._clock = clock

    async def load(self) -> AuthSession | None:
        """Return the stored session, discarding it if the token has expired."""

        token = await self._storage.get(self.TOKEN_KEY)
        expiry = await self._storage.get(self.EXPIRY_KEY)
        username = await self._storage.get(self.USERNAME_KEY)
        if not token or expiry is None:
            return None
        try:
            session = AuthSession(
                token=str(token), token_expiry=int(expiry), username=str(username or "")
            )
        except (TypeError, ValueError):
            logger.warning("Discarding malformed stored session")
            await self.clear()
            return None
        if not session.is_active(self._clock()):
            logger.info("Stored session for %s has expired", session.username or "user")
            await self.clear()
            return None
        return session

    async def save(self, session: AuthSession) -> None:
        await self._storage.set(self.TOKEN_KEY, session.token)
        await self._storage.set(self.EXPIRY_KEY, session.token_expiry)
        await self._storage.set(self.USERNAME_KEY, session.username)

    async def clear(self) -> None:
        for key in (self.TOKEN_KEY, self.EXPIRY_KEY, self.USERNAME_KEY):
            await self._storage.delete(key)
