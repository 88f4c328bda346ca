import asyncio

import httpx
import pytest

from cinescan.core.tmdb import TMDBClient, TMDBError
from conftest import make_fake_tmdb_client


def _run(coro):
    return asyncio.run(coro)


def test_search_sends_key_language_and_year():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": [{"id": 1, "title": "Heat"}]})

    async def scenario():
        async with TMDBClient(api_key="k", language="fr-FR", transport=httpx.MockTransport(handler)) as client:
            return await client.search_movie("Heat", 1995)

    results = _run(scenario())
    assert results == [{"id": 1, "title": "Heat"}]
    params = seen[0].url.params
    assert seen[0].url.path.endswith("/3/search/movie")
    assert params["api_key"] == "k"
    assert params["language"] == "fr-FR"
    assert params["query"] == "Heat"
    assert params["year"] == "1995"


def test_search_without_year_omits_param():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"results": []})

    async def scenario():
        async with TMDBClient(api_key="k", transport=httpx.MockTransport(handler)) as client:
            return await client.search_movie("Heat")

    assert _run(scenario()) == []
    assert "year" not in seen[0].url.params


def test_retries_on_429_then_succeeds():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(429, json={})
        return httpx.Response(200, json={"genres": [{"id": 1, "name": "Drama"}]})

    async def scenario():
        async with TMDBClient(
            api_key="k", max_retries=2, backoff_base_seconds=0.0, transport=httpx.MockTransport(handler)
        ) as client:
            return await client.get_genres()

    assert _run(scenario()) == [{"id": 1, "name": "Drama"}]
    assert calls["n"] == 3


def test_server_errors_exhaust_retries():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(503, json={})

    async def scenario():
        async with TMDBClient(
            api_key="k", max_retries=1, backoff_base_seconds=0.0, transport=httpx.MockTransport(handler)
        ) as client:
            await client.search_movie("Heat")

    with pytest.raises(TMDBError) as info:
        _run(scenario())
    assert info.value.status_code == 503
    assert info.value.is_retryable
    assert calls["n"] == 2


def test_client_error_is_not_retried():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(401, json={"status_message": "Invalid API key"})

    async def scenario():
        async with TMDBClient(api_key="bad", max_retries=3, transport=httpx.MockTransport(handler)) as client:
            await client.search_movie("Heat")

    with pytest.raises(TMDBError) as info:
        _run(scenario())
    assert info.value.status_code == 401
    assert calls["n"] == 1
    assert "bad" not in str(info.value)


def test_unconfigured_client_refuses_requests():
    async def scenario():
        async with TMDBClient(api_key="") as client:
            assert client.is_configured is False
            await client.search_movie("Heat")

    with pytest.raises(TMDBError, match="TMDB not configured"):
        _run(scenario())


def test_get_movie_returns_details_or_none():
    async def scenario():
        async with make_fake_tmdb_client() as client:
            return await client.get_movie(603), await client.get_movie(1)

    found, missing = _run(scenario())
    assert found["title"] == "The Matrix"
    assert missing is None


def test_genres_are_cached():
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(200, json={"genres": [{"id": 35, "name": "Comedy"}]})

    async def scenario():
        async with TMDBClient(api_key="k", transport=httpx.MockTransport(handler)) as client:
            await client.get_genres()
            return await client.get_genres()

    assert _run(scenario()) == [{"id": 35, "name": "Comedy"}]
    assert calls["n"] == 1


def test_image_trailer_and_actor_helpers():
    client = TMDBClient(api_key="k", image_base_url="https://img.example/t/p")
    try:
        assert client.image_url("/poster.jpg") == "https://img.example/t/p/w500/poster.jpg"
        assert client.image_url("/poster.jpg", size="original") == "https://img.example/t/p/original/poster.jpg"
        assert client.image_url(None) == ""
    finally:
        _run(client.aclose())

    videos = {
        "results": [
            {"site": "Vimeo", "type": "Trailer", "key": "v1"},
            {"site": "YouTube", "type": "Featurette", "key": "f1"},
            {"site": "YouTube", "type": "Teaser", "key": "t1"},
        ]
    }
    assert TMDBClient.trailer_url(videos) == "https://www.youtube.com/watch?v=t1"
    assert TMDBClient.trailer_url([]) is None

    credits = {
        "cast": [
            {"name": "B", "character": "Second", "order": 1},
            {"name": "A", "character": "", "order": 0},
            {"name": "C", "character": "Third", "order": 2},
        ]
    }
    assert TMDBClient.extract_actors(credits, limit=2) == [
        {"name": "A", "character": None},
        {"name": "B", "character": "Second"},
    ]
    assert TMDBClient.extract_actors(None) == []
