"""Async client for The Movie Database (TMDB) v3 API."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from cinescan.core import config

logger = logging.getLogger(__name__)

YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={key}"
TRAILER_TYPES = ("Trailer", "Teaser")


class TMDBError(Exception):
    """TMDB request failure; never carries the API key."""

    def __init__(self, message: str, status_code: Optional[int] = None, is_retryable: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.is_retryable = is_retryable


class TMDBClient:
    """Thin TMDB wrapper with retry/backoff on 429, 5xx and connection errors.

    Use as an async context manager, or call aclose() when done.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        image_base_url: Optional[str] = None,
        backoff_base_seconds: float = 0.5,
        backoff_max_seconds: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.get_tmdb_api_key()
        self.base_url = (base_url or config.TMDB_BASE_URL).rstrip("/")
        self.language = language or config.TMDB_LANGUAGE
        self.image_base_url = (image_base_url or config.TMDB_IMAGE_BASE_URL).rstrip("/")
        self.max_retries = config.TMDB_MAX_RETRIES if max_retries is None else max_retries
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._genres_cache: Optional[List[Dict[str, Any]]] = None
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else config.TMDB_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def __aenter__(self) -> "TMDBClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _request(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        if not self.api_key:
            raise TMDBError("TMDB not configured")
        query: Dict[str, Any] = {"api_key": self.api_key, "language": self.language}
        query.update({k: v for k, v in (params or {}).items() if v is not None})
        for attempt in range(self.max_retries + 1):
            try:
                response = await self._client.get(endpoint, params=query)
                if response.status_code == 429 or response.status_code >= 500:
                    raise TMDBError("tmdb_retryable_status", status_code=response.status_code, is_retryable=True)
                if response.status_code >= 400:
                    raise TMDBError(f"TMDB API error: {response.status_code}", status_code=response.status_code)
                return response.json()
            except TMDBError as exc:
                if not exc.is_retryable or attempt >= self.max_retries:
                    raise
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                if attempt >= self.max_retries:
                    raise TMDBError("tmdb_connection_error", is_retryable=True) from exc
            await self._backoff_sleep(attempt)
        raise TMDBError("tmdb_retry_exhausted", is_retryable=True)

    async def _backoff_sleep(self, attempt: int) -> None:
        backoff = min((2 ** attempt) * self._backoff_base, self._backoff_max)
        logger.info("tmdb_backoff", extra={"backoff_seconds": backoff, "attempt": attempt})
        await asyncio.sleep(backoff)

    async def search_movie(self, title: str, year: Optional[int] = None) -> List[Dict[str, Any]]:
        data = await self._request("/search/movie", {"query": title, "year": year})
        return list(data.get("results") or [])

    async def get_movie(self, tmdb_id: int) -> Optional[Dict[str, Any]]:
        """Full movie details with videos and credits; None when unavailable."""
        try:
            return await self._request(f"/movie/{int(tmdb_id)}", {"append_to_response": "videos,credits"})
        except TMDBError as exc:
            logger.warning("tmdb_get_movie_failed id=%s status=%s", tmdb_id, exc.status_code)
            return None

    async def get_genres(self) -> List[Dict[str, Any]]:
        if self._genres_cache is None:
            data = await self._request("/genre/movie/list")
            self._genres_cache = list(data.get("genres") or [])
        return self._genres_cache

    async def get_popular_movies(self, page: int = 1) -> Dict[str, Any]:
        data = await self._request("/movie/popular", {"page": page})
        return {"results": list(data.get("results") or []), "total_pages": int(data.get("total_pages") or 0)}

    def image_url(self, path: Optional[str], size: str = "w500") -> str:
        if not path:
            return ""
        return f"{self.image_base_url}/{size}{path}"

    @staticmethod
    def trailer_url(videos: Any) -> Optional[str]:
        """First YouTube trailer or teaser; accepts the raw `videos` object or its results list."""
        if isinstance(videos, dict):
            videos = videos.get("results")
        for video in videos or []:
            if video.get("site") == "YouTube" and video.get("type") in TRAILER_TYPES and video.get("key"):
                return YOUTUBE_WATCH_URL.format(key=video["key"])
        return None

    @staticmethod
    def extract_actors(credits: Optional[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
        if not credits or not credits.get("cast"):
            return []
        cast = sorted(credits["cast"], key=lambda c: c.get("order", 0))
        return [
            {"name": c["name"], "character": c.get("character") or None}
            for c in cast[:limit]
            if c.get("name")
        ]
