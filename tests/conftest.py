"""Pytest configuration and fixtures.

Every test gets its own SQLite database file, an empty movies folder and a
fake TMDB API served through httpx.MockTransport. The watcher thread and SMTP
delivery are off; sent mail is still captured in the mailer outbox.
"""
from __future__ import annotations

import re
import sqlite3
from pathlib import Path

import httpx
import pytest

from cinescan.core import config, state
from cinescan.core.mailer import clear_outbox
from cinescan.core.tmdb import TMDBClient

FAKE_GENRES = [
    {"id": 28, "name": "Action"},
    {"id": 878, "name": "Science Fiction"},
    {"id": 35, "name": "Comedy"},
    {"id": 18, "name": "Drama"},
]

FAKE_MOVIES = {
    603: {
        "id": 603,
        "title": "The Matrix",
        "overview": "A hacker learns the truth about his reality.",
        "release_date": "1999-03-30",
        "runtime": 136,
        "poster_path": "/matrix.jpg",
        "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
        "videos": {"results": [{"site": "YouTube", "type": "Trailer", "key": "m8e-FF8MsqU"}]},
        "credits": {
            "cast": [
                {"name": "Carrie-Anne Moss", "character": "Trinity", "order": 1},
                {"name": "Keanu Reeves", "character": "Neo", "order": 0},
            ]
        },
    },
    27205: {
        "id": 27205,
        "title": "Inception",
        "overview": "A thief steals secrets through dream-sharing.",
        "release_date": "2010-07-15",
        "runtime": 148,
        "poster_path": "/inception.jpg",
        "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
        "videos": {"results": []},
        "credits": {"cast": [{"name": "Leonardo DiCaprio", "character": "Cobb", "order": 0}]},
    },
    194: {
        "id": 194,
        "title": "Amelie",
        "overview": "A shy waitress decides to change the lives of those around her.",
        "release_date": "2001-04-25",
        "runtime": 122,
        "poster_path": "/amelie.jpg",
        "genres": [{"id": 35, "name": "Comedy"}],
        "videos": {"results": [{"site": "YouTube", "type": "Teaser", "key": "amelie01"}]},
        "credits": {"cast": [{"name": "Audrey Tautou", "character": "Amelie Poulain", "order": 0}]},
    },
}


def _search_result(movie: dict) -> dict:
    return {
        "id": movie["id"],
        "title": movie["title"],
        "release_date": movie["release_date"],
        "overview": movie["overview"],
        "poster_path": movie["poster_path"],
        "genre_ids": [g["id"] for g in movie["genres"]],
    }


def fake_tmdb_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/search/movie"):
        query = request.url.params.get("query", "").strip().lower()
        year = request.url.params.get("year")
        results = [
            _search_result(m)
            for m in FAKE_MOVIES.values()
            if m["title"].lower() == query and (not year or m["release_date"].startswith(year))
        ]
        return httpx.Response(200, json={"page": 1, "results": results, "total_results": len(results)})
    if path.endswith("/genre/movie/list"):
        return httpx.Response(200, json={"genres": FAKE_GENRES})
    if path.endswith("/movie/popular"):
        return httpx.Response(200, json={"results": [_search_result(m) for m in FAKE_MOVIES.values()], "total_pages": 1})
    match = re.search(r"/movie/(\d+)$", path)
    if match and int(match.group(1)) in FAKE_MOVIES:
        return httpx.Response(200, json=FAKE_MOVIES[int(match.group(1))])
    return httpx.Response(404, json={"status_message": "The resource you requested could not be found."})


def make_fake_tmdb_client(**kwargs) -> TMDBClient:
    kwargs.setdefault("api_key", "test-key")
    kwargs.setdefault("backoff_base_seconds", 0.0)
    kwargs.setdefault("transport", httpx.MockTransport(fake_tmdb_handler))
    return TMDBClient(**kwargs)


@pytest.fixture(autouse=True)
def app_env(tmp_path, monkeypatch):
    """Isolated database, movies folder and fake TMDB for each test."""
    db_path = tmp_path / "cinescan.db"
    movies_dir = tmp_path / "movies"
    movies_dir.mkdir()

    monkeypatch.setattr(config, "ENABLE_DB", True)
    monkeypatch.setattr(config, "DEV_CREATE_ALL", True)
    monkeypatch.setattr(config, "DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setattr(config, "MOVIES_FOLDER_PATH", str(movies_dir))
    monkeypatch.setattr(config, "WATCHER_ENABLED", False)
    monkeypatch.setattr(config, "SMTP_HOST", "")
    monkeypatch.setattr(config, "TMDB_API_KEY", "test-key")
    monkeypatch.setattr(config, "INDEX_THROTTLE_SECONDS", 0.0)
    monkeypatch.setattr(config, "RATE_LIMIT_PER_MINUTE", 10_000)
    monkeypatch.setattr(state, "tmdb_factory", make_fake_tmdb_client)
    clear_outbox()
    state.reset_library_state()
    yield {"db_path": db_path, "movies_dir": movies_dir}
    state.reset_library_state()
    clear_outbox()


@pytest.fixture
def movies_dir(app_env) -> Path:
    return app_env["movies_dir"]


@pytest.fixture
def promote_to_admin(app_env):
    """Flip a user's role to ADMIN directly in the database file."""

    def _promote(email: str) -> None:
        with sqlite3.connect(app_env["db_path"]) as conn:
            conn.execute("UPDATE users SET role = 'ADMIN' WHERE email = ?", (email.lower(),))

    return _promote


@pytest.fixture
def write_video(movies_dir):
    """Create a fake video file (deterministic bytes) under the movies folder."""

    def _write(relative: str, size: int = 2048) -> Path:
        path = movies_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return path

    return _write
