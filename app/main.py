"""Entry point for the FastAPI-powered MovieMuse backend."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import settings
from .database import Database
from .db_models import User
from .models import FEED_NAMES, WatchlistEntry
from .services.accounts import AccountError, AccountService
from .services.backend import AUTH_HEADER
from .services.feeds import FeedService, FeedUnavailableError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class Credentials(BaseModel):
    username: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class ReviewPayload(BaseModel):
    rating: int = Field(ge=1, le=10)
    comment: str = ""


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    fastapi_app.state.database = database
    fastapi_app.state.account_service = AccountService(settings, database.session_factory)
    fastapi_app.state.feed_service = FeedService(settings, tmdb_client)

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie discovery with personal watchlists and reviews",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_account_service(app: FastAPI) -> AccountService:
    service = getattr(app.state, "account_service", None)
    if not isinstance(service, AccountService):
        raise RuntimeError("Account service not initialised")
    return service


def get_feed_service(app: FastAPI) -> FeedService:
    service = getattr(app.state, "feed_service", None)
    if not isinstance(service, FeedService):
        raise RuntimeError("Feed service not initialised")
    return service


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(HTTPException)
    async def _http_error(_: Request, exc: HTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse({"msg": detail}, status_code=exc.status_code)

    async def current_user(
        token: str | None = Header(default=None, alias=AUTH_HEADER),
    ) -> User:
        user = await get_account_service(fastapi_app).authenticate(token)
        if user is None:
            raise HTTPException(status_code=401, detail="No valid token, authorization denied")
        return user

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.post("/api/auth/signup", status_code=201)
    async def signup(credentials: Credentials) -> dict[str, str]:
        try:
            await get_account_service(fastapi_app).signup(
                credentials.username, credentials.password
            )
        except AccountError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"msg": "User registered successfully"}

    @fastapi_app.post("/api/auth/login")
    async def login(credentials: Credentials) -> dict[str, Any]:
        try:
            issued = await get_account_service(fastapi_app).login(
                credentials.username, credentials.password
            )
        except AccountError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "token": issued.token,
            "username": issued.username,
            "expiresAt": issued.expires_at_ms,
        }

    @fastapi_app.get("/api/watchlist")
    async def get_watchlist(user: User = Depends(current_user)) -> list[dict[str, Any]]:
        return await get_account_service(fastapi_app).get_watchlist(user.id)

    @fastapi_app.post("/api/watchlist/add")
    async def add_to_watchlist(
        entry: WatchlistEntry, user: User = Depends(current_user)
    ) -> list[dict[str, Any]]:
        return await get_account_service(fastapi_app).upsert_watchlist_entry(user.id, entry)

    @fastapi_app.delete("/api/watchlist/remove/{movie_id}")
    async def remove_from_watchlist(
        movie_id: str, user: User = Depends(current_user)
    ) -> list[dict[str, Any]]:
        return await get_account_service(fastapi_app).remove_watchlist_entry(
            user.id, movie_id
        )

    @fastapi_app.get("/api/movies/{feed}")
    async def movie_feed(
        feed: str, page: int = Query(default=1, ge=1, le=500)
    ) -> list[dict[str, Any]]:
        if feed not in FEED_NAMES:
            raise HTTPException(status_code=404, detail="Unknown feed")
        try:
            return await get_feed_service(fastapi_app).fetch_feed(feed, page)
        except FeedUnavailableError as exc:
            raise HTTPException(status_code=500, detail="Server Error") from exc

    @fastapi_app.get("/api/reviews/{movie_id}")
    async def list_reviews(movie_id: str) -> list[dict[str, Any]]:
        reviews = await get_account_service(fastapi_app).list_reviews(movie_id)
        return [review.model_dump(mode="json", by_alias=True) for review in reviews]

    @fastapi_app.post("/api/reviews/{movie_id}")
    async def upsert_review(
        movie_id: str, payload: ReviewPayload, user: User = Depends(current_user)
    ) -> dict[str, Any]:
        review, message = await get_account_service(fastapi_app).upsert_review(
            user, movie_id, payload.rating, payload.comment
        )
        return {"review": review.model_dump(mode="json", by_alias=True), "message": message}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
