"""
Locust load testing for the CineScan API.

Simulates viewers that:
- Register and keep the returned bearer token
- Browse the catalog (listing, suggestions, genres, search, detail)
- Read and occasionally post reviews
- File movie requests

Usage examples:
  # Start the API server first (in another terminal):
  #   uvicorn cinescan.main:app --host 0.0.0.0 --port 8000
  # Then run Locust pointing to the host:
  #   locust -f scripts/load/locustfile.py --host http://127.0.0.1:8000

Environment variables (optional):
- USER_PREFIX: e-mail local-part prefix for generated users (default: "load")
- WAIT_MIN / WAIT_MAX: wait time between tasks in seconds (default: 0.1 / 0.5)
- SEARCH_TERMS: comma-separated list of search queries

Notes:
- Install with the "load" extra: pip install -e .[load]
- The API rate limit (RATE_LIMIT_PER_MINUTE per client IP) shows up as 429s
  when every simulated user shares one address; raise it for load runs.
"""
from __future__ import annotations

import os
import random
import uuid
from typing import List, Optional

from locust import FastHttpUser, between, task


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


DEFAULT_SEARCH_TERMS = ["the", "star", "love", "night", "man", "war"]


class Viewer(FastHttpUser):
    """Simulated catalog user."""

    wait_time = between(_env_float("WAIT_MIN", 0.1), _env_float("WAIT_MAX", 0.5))

    def on_start(self) -> None:
        self._token: Optional[str] = None
        self.movie_ids: List[int] = []
        self.email = f"{os.getenv('USER_PREFIX', 'load')}_{uuid.uuid4().hex[:12]}@example.com"
        self.password = f"Passw0rd!{uuid.uuid4().hex[:6]}"
        self._register()

    def _register(self) -> None:
        payload = {"email": self.email, "name": "Load Tester", "password": self.password}
        with self.client.post("/api/auth/register", json=payload, name="/api/auth/register", catch_response=True) as resp:
            if resp.status_code == 201:
                self._use_token(resp.json().get("access_token"))
                return
            resp.success()  # setup failures should not pollute stats
        with self.client.post(
            "/api/auth/login",
            json={"email": self.email, "password": self.password},
            name="/api/auth/login",
            catch_response=True,
        ) as resp:
            if resp.status_code == 200:
                self._use_token(resp.json().get("access_token"))
            else:
                resp.success()

    def _use_token(self, token: Optional[str]) -> None:
        if token:
            self._token = token
            self.client.headers.update({"Authorization": f"Bearer {token}"})

    @task(4)
    def browse(self) -> None:
        page = random.randint(1, 3)
        with self.client.get(f"/api/movies?page={page}&limit=20", name="/api/movies", catch_response=True) as resp:
            if resp.status_code == 200:
                self.movie_ids = [m["id"] for m in resp.json().get("movies", [])] or self.movie_ids

    @task(2)
    def suggestions(self) -> None:
        self.client.get("/api/movies/suggestions", name="/api/movies/suggestions")

    @task(1)
    def genres(self) -> None:
        self.client.get("/api/movies/genres", name="/api/movies/genres")

    @task(2)
    def search(self) -> None:
        raw = os.getenv("SEARCH_TERMS")
        terms = [t.strip() for t in raw.split(",")] if raw else DEFAULT_SEARCH_TERMS
        self.client.get(f"/api/movies/search?q={random.choice(terms)}", name="/api/movies/search")

    @task(3)
    def movie_detail(self) -> None:
        if not self.movie_ids:
            return
        movie_id = random.choice(self.movie_ids)
        self.client.get(f"/api/movies/{movie_id}", name="/api/movies/:id")
        self.client.get(f"/api/reviews/movie/{movie_id}", name="/api/reviews/movie/:id")

    @task(1)
    def review(self) -> None:
        if not self.movie_ids or self._token is None:
            return
        movie_id = random.choice(self.movie_ids)
        payload = {"rating": random.randint(1, 5), "comment": "Generated during a load test run."}
        with self.client.post(
            f"/api/reviews/movie/{movie_id}", json=payload, name="/api/reviews/movie/:id [POST]", catch_response=True
        ) as resp:
            # A second review of the same movie is an expected 409
            if resp.status_code == 409:
                resp.success()

    @task(1)
    def request_movie(self) -> None:
        if self._token is None:
            return
        payload = {"title": f"Load request {uuid.uuid4().hex[:6]}"}
        self.client.post("/api/movie-requests", json=payload, name="/api/movie-requests")
