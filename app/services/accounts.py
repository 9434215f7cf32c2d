"""Accounts, watchlists and reviews persisted by the backend."""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import AuthToken, ReviewRecord, User, WatchlistItem
from ..models import MovieId, Review, WatchlistEntry
from ..utils import utcnow

logger = logging.getLogger(__name__)

MAX_PASSWORD_BYTES = 72


class AccountError(ValueError):
    """Raised for rejected signups and logins."""


@dataclass(slots=True)
class IssuedToken:
    token: str
    username: str
    expires_at: datetime

    @property
    def expires_at_ms(self) -> int:
        return int(self.expires_at.replace(tzinfo=timezone.utc).timestamp() * 1_000)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), encoded.encode("utf-8"))
    except ValueError:
        return False


def canonical_movie_id(value: str) -> str:
    """Return the stored form of a movie id, keeping unparseable values verbatim."""

    try:
        return str(MovieId.parse(value))
    except ValueError:
        return value.strip()


class AccountService:
    """Backend operations for users and the data they own."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._settings = settings
        self._session_factory = session_factory

    async def signup(self, username: str, password: str) -> User:
        username = username.strip()
        if not username or not password:
            raise AccountError("Username and password are required")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise AccountError("Password is too long")
        async with self._session_factory() as session:
            existing = await session.scalar(select(User).where(User.username == username))
            if existing is not None:
                raise AccountError("User already exists")
            user = User(username=username, password_hash=hash_password(password))
            session.add(user)
            await session.commit()
            logger.info("Registered user %s", username)
            return user

    async def login(self, username: str, password: str) -> IssuedToken:
        async with self._session_factory() as session:
            user = await session.scalar(
                select(User).where(User.username == username.strip())
            )
            if user is None or not verify_password(password, user.password_hash):
                raise AccountError("Invalid credentials")
            issued = IssuedToken(
                token=secrets.token_urlsafe(32),
                username=user.username,
                expires_at=utcnow() + timedelta(hours=self._settings.token_ttl_hours),
            )
            session.add(
                AuthToken(token=issued.token, user_id=user.id, expires_at=issued.expires_at)
            )
            await session.commit()
            return issued

    async def authenticate(self, token: str | None) -> User | None:
        """Return the user owning ``token`` or ``None`` when it is unknown or expired."""

        if not token:
            return None
        async with self._session_factory() as session:
            record = await session.get(AuthToken, token)
            if record is None:
                return None
            if record.expires_at <= utcnow():
                await session.delete(record)
                await session.commit()
                return None
            return await session.get(User, record.user_id)

    async def get_watchlist(self, user_id: int) -> list[dict[str, Any]]:
        async with self._session_factory() as session:
            return await self._watchlist_payload(session, user_id)

    async def upsert_watchlist_entry(
        self, user_id: int, entry: WatchlistEntry
    ) -> list[dict[str, Any]]:
        """Add ``entry`` or replace the existing entry with the same id in place."""

        movie_id = str(entry.id)
        async with self._session_factory() as session:
            item = await session.scalar(
                select(WatchlistItem).where(
                    WatchlistItem.user_id == user_id,
                    WatchlistItem.movie_id == movie_id,
                )
            )
            if item is None:
                last_position = await session.scalar(
                    select(func.max(WatchlistItem.position)).where(
                        WatchlistItem.user_id == user_id
                    )
                )
                session.add(
                    WatchlistItem(
                        user_id=user_id,
                        movie_id=movie_id,
                        position=(last_position if last_position is not None else -1) + 1,
                        payload=entry.to_payload(),
                    )
                )
            else:
                item.payload = entry.to_payload()
            await session.commit()
            return await self._watchlist_payload(session, user_id)

    async def remove_watchlist_entry(self, user_id: int, movie_id: str) -> list[dict[str, Any]]:
        async with self._session_factory() as session:
            await session.execute(
                delete(WatchlistItem).where(
                    WatchlistItem.user_id == user_id,
                    WatchlistItem.movie_id == canonical_movie_id(movie_id),
                )
            )
            await session.commit()
            return await self._watchlist_payload(session, user_id)

    async def list_reviews(self, movie_id: str) -> list[Review]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(ReviewRecord)
                .where(ReviewRecord.movie_id == canonical_movie_id(movie_id))
                .order_by(ReviewRecord.created_at, ReviewRecord.id)
            )
            return [Review.model_validate(record) for record in result]

    async def upsert_review(
        self, user: User, movie_id: str, rating: int, comment: str
    ) -> tuple[Review, str]:
        movie_id = canonical_movie_id(movie_id)
        async with self._session_factory() as session:
            record = await session.scalar(
                select(ReviewRecord).where(
                    ReviewRecord.movie_id == movie_id,
                    ReviewRecord.user_id == user.id,
                )
            )
            if record is None:
                record = ReviewRecord(
                    movie_id=movie_id,
                    user_id=user.id,
                    username=user.username,
                    rating=rating,
                    comment=comment,
                )
                session.add(record)
                message = "Review added successfully"
            else:
                record.rating = rating
                record.comment = comment
                message = "Review updated successfully"
            await session.commit()
            await session.refresh(record)
            return Review.model_validate(record), message

    @staticmethod
    async def _watchlist_payload(session: AsyncSession, user_id: int) -> list[dict[str, Any]]:
        result = await session.scalars(
            select(WatchlistItem)
            .where(WatchlistItem.user_id == user_id)
            .order_by(WatchlistItem.position)
        )
        return [dict(item.payload) for item in result]
