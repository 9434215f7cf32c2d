"""Tests for watchlist-driven recommendations."""

from __future__ import annotations

import random

import pytest

from app.services.query_cache import QueryCache
from app.services.recommendations import RecommendationEngine


def _engine(catalog, **overrides) -> RecommendationEngine:
    options = {"rng": random.Random(7)}
    options.update(overrides)
    return RecommendationEngine(catalog, QueryCache(), **options)


@pytest.mark.anyio
async def test_empty_watchlist_makes_no_requests(fake_catalog) -> None:
    engine = _engine(fake_catalog)

    assert await engine.recommend([]) == []
    assert fake_catalog.calls == []


@pytest.mark.anyio
async def test_active_search_query_suppresses_recommendations(fake_catalog, make_movie) -> None:
    engine = _engine(fake_catalog)

    assert await engine.recommend([make_movie(603)], query="batman") == []
    assert fake_catalog.calls == []


@pytest.mark.anyio
async def test_only_the_three_newest_entries_seed_recommendations(
    fake_catalog, make_movie
) -> None:
    watchlist = [make_movie(native_id) for native_id in (1, 2, 3, 4, 5)]
    for seed in ("3", "4", "5"):
        fake_catalog.recommendations[seed] = [
            make_movie(int(seed) * 100 + offset) for offset in range(3)
        ]
    engine = _engine(fake_catalog)

    results = await engine.recommend(watchlist)

    assert sorted(fake_catalog.calls) == [
        "recommendations:3",
        "recommendations:4",
        "recommendations:5",
    ]
    assert [movie.normalized_id for movie in results] == [
        "300", "301", "302", "400", "401", "402", "500", "501", "502",
    ]


@pytest.mark.anyio
async def test_duplicates_and_watched_movies_are_removed(fake_catalog, make_movie) -> None:
    watchlist = [make_movie(1), make_movie(2)]
    fake_catalog.recommendations["1"] = [make_movie(10), make_movie(2), make_movie(11)]
    fake_catalog.recommendations["2"] = [make_movie("tmdb:10"), make_movie(12), make_movie(1)]
    engine = _engine(fake_catalog)

    results = await engine.recommend(watchlist)

    assert [movie.normalized_id for movie in results] == ["10", "11", "12"]


@pytest.mark.anyio
async def test_sparse_cascade_falls_back_to_genre_discovery(fake_catalog, make_movie) -> None:
    watchlist = [make_movie(1, genres=("Drama",))]
    fake_catalog.discover[18] = [make_movie(900 + offset) for offset in range(5)]
    engine = _engine(fake_catalog)

    results = await engine.recommend(watchlist)

    assert fake_catalog.calls == ["recommendations:1", "discover:18"]
    assert [movie.normalized_id for movie in results] == [
        "900", "901", "902", "903", "904",
    ]


@pytest.mark.anyio
async def test_discovery_tops_up_a_single_cascade_candidate(fake_catalog, make_movie) -> None:
    watchlist = [make_movie(1, genres=("Drama",))]
    fake_catalog.recommendations["1"] = [make_movie(900)]
    fake_catalog.discover[18] = [make_movie(900), make_movie(901), make_movie(1)]
    engine = _engine(fake_catalog)

    results = await engine.recommend(watchlist)

    assert fake_catalog.calls == ["recommendations:1", "discover:18"]
    assert [movie.normalized_id for movie in results] == ["900", "901"]


@pytest.mark.anyio
async def test_watchlist_without_genres_discovers_drama(fake_catalog, make_movie) -> None:
    fake_catalog.discover[18] = [make_movie(42)]
    engine = _engine(fake_catalog)

    results = await engine.recommend([make_movie(1)])

    assert "discover:18" in fake_catalog.calls
    assert [movie.normalized_id for movie in results] == ["42"]


@pytest.mark.anyio
async def test_enough_cascade_candidates_skip_discovery(fake_catalog, make_movie) -> None:
    fake_catalog.recommendations["1"] = [make_movie(10), make_movie(11), make_movie(12)]
    engine = _engine(fake_catalog)

    await engine.recommend([make_movie(1, genres=("Action",))])

    assert fake_catalog.calls == ["recommendations:1"]


@pytest.mark.anyio
async def test_results_are_truncated_to_limit(fake_catalog, make_movie) -> None:
    fake_catalog.recommendations["1"] = [make_movie(100 + offset) for offset in range(25)]
    engine = _engine(fake_catalog)

    results = await engine.recommend([make_movie(1)])

    assert len(results) == 10
    assert results[0].normalized_id == "100"


@pytest.mark.anyio
async def test_recommendations_are_cached_per_seed(fake_catalog, make_movie) -> None:
    fake_catalog.recommendations["1"] = [make_movie(10), make_movie(11), make_movie(12)]
    engine = _engine(fake_catalog)
    watchlist = [make_movie(1)]

    await engine.recommend(watchlist)
    await engine.recommend(watchlist)
    assert fake_catalog.calls == ["recommendations:1"]

    await engine.invalidate("tmdb-1")
    await engine.recommend(watchlist)
    assert fake_catalog.calls == ["recommendations:1", "recommendations:1"]


@pytest.mark.anyio
async def test_randomised_watchlists_never_yield_duplicates(fake_catalog, make_movie) -> None:
    rng = random.Random(1234)
    engine = _engine(fake_catalog, rng=rng)

    for _ in range(25):
        watchlist = [make_movie(rng.randint(1, 40)) for _ in range(rng.randint(1, 6))]
        for entry in watchlist:
            fake_catalog.recommendations[entry.normalized_id] = [
                make_movie(rng.choice([rng.randint(1, 40), f"tmdb:{rng.randint(1, 40)}"]))
                for _ in range(rng.randint(0, 8))
            ]
        fake_catalog.discover[18] = [make_movie(rng.randint(1, 60)) for _ in range(12)]
        await engine.clear()

        results = await engine.recommend(watchlist)

        ids = [movie.normalized_id for movie in results]
        watched = {entry.normalized_id for entry in watchlist}
        assert len(ids) == len(set(ids))
        assert not watched & set(ids)
        assert len(ids) <= 10
