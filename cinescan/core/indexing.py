"""Movie library indexing.

Scans the movies folder, parses release names, matches them on TMDB and
upserts the catalog. Also removes catalog entries whose file is gone.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.core import config
from cinescan.core import database as db
from cinescan.core.errors import NotFoundError
from cinescan.core.filename_parser import (
    ParsedName,
    clean_title_for_search,
    is_ignored_name,
    is_supported_video,
    parse_movie_path,
    strip_release_tags,
)
from cinescan.core.metrics import metrics
from cinescan.core.time_utils import parse_release_date, utc_now
from cinescan.core.tmdb import TMDBClient, TMDBError
from cinescan.models.database import Actor, Genre, Movie, MovieActor, MovieGenre

logger = logging.getLogger(__name__)

YEAR_TOLERANCE = 1
MAX_ACTORS = 10


@dataclass
class ScannedFile:
    path: str
    filename: str
    parsed: ParsedName
    size: int
    mtime: float


@dataclass
class IndexResult:
    filename: str
    path: str
    title: Optional[str] = None
    year: Optional[int] = None
    success: bool = False
    skipped: bool = False
    error: Optional[str] = None
    movie_id: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IndexSummary:
    total: int = 0
    indexed: int = 0
    skipped: int = 0
    failed: int = 0
    results: List[IndexResult] = field(default_factory=list)

    def add(self, result: IndexResult) -> None:
        self.total += 1
        self.results.append(result)
        if result.skipped:
            self.skipped += 1
        elif result.success:
            self.indexed += 1
        else:
            self.failed += 1

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "indexed": self.indexed,
            "skipped": self.skipped,
            "failed": self.failed,
            "results": [r.as_dict() for r in self.results],
        }


@dataclass
class SyncSummary:
    files_present: int = 0
    orphans_removed: int = 0
    removed_titles: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _release_year(tmdb_movie: Dict[str, Any]) -> Optional[int]:
    value = tmdb_movie.get("release_date") or ""
    try:
        return int(value[:4])
    except ValueError:
        return None


class MovieIndexer:
    def __init__(
        self,
        folder: Optional[str] = None,
        tmdb_factory: Optional[Callable[[], TMDBClient]] = None,
        extensions: Optional[Sequence[str]] = None,
        throttle_s: Optional[float] = None,
    ) -> None:
        self.folder = Path(folder or config.get_movies_folder_path()).expanduser().resolve()
        self._tmdb_factory = tmdb_factory or TMDBClient
        self.extensions = [e.lower() for e in (extensions or config.get_supported_extensions())]
        self.throttle_s = config.get_index_throttle_seconds() if throttle_s is None else throttle_s

    # --- Scanning -----------------------------------------------------------

    def is_supported(self, path: os.PathLike | str) -> bool:
        return is_supported_video(path, self.extensions)

    def scan_file(self, path: os.PathLike | str) -> Optional[ScannedFile]:
        p = Path(path).resolve()
        parsed = parse_movie_path(p, root=self.folder)
        if parsed is None:
            return None
        st = p.stat()
        return ScannedFile(path=str(p), filename=p.name, parsed=parsed, size=st.st_size, mtime=st.st_mtime)

    def iter_video_paths(self, path: Optional[Path] = None, recursive: bool = True) -> List[Path]:
        """All supported, non-ignored video files under path (sorted)."""
        root = Path(path) if path is not None else self.folder
        found: List[Path] = []

        def _onerror(err: OSError) -> None:
            logger.warning("scan_dir_unreadable path=%s err=%s", err.filename, err.strerror)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if is_ignored_name(name) or not self.is_supported(name):
                    continue
                found.append(Path(dirpath, name).resolve())
            if not recursive:
                break
        return found

    def scan_directory(self, path: Optional[Path] = None, recursive: bool = True) -> List[ScannedFile]:
        scanned: List[ScannedFile] = []
        for p in self.iter_video_paths(path, recursive=recursive):
            try:
                item = self.scan_file(p)
            except OSError as exc:
                logger.warning("scan_file_failed path=%s err=%s", p, exc)
                continue
            if item is not None:
                scanned.append(item)
        return scanned

    # --- TMDB matching ------------------------------------------------------

    async def find_on_tmdb(self, client: TMDBClient, scanned: ScannedFile) -> Optional[Dict[str, Any]]:
        """Try title+year, then title alone (preferring a close year), then a stripped title."""
        title = clean_title_for_search(scanned.parsed.title)
        year = scanned.parsed.year
        try:
            if year:
                results = await client.search_movie(title, year)
                if results:
                    return results[0]

            results = await client.search_movie(title)
            if results:
                if year:
                    for candidate in results:
                        ry = _release_year(candidate)
                        if ry is not None and abs(ry - year) <= YEAR_TOLERANCE:
                            return candidate
                return results[0]

            stripped = strip_release_tags(title)
            if stripped and stripped != title:
                results = await client.search_movie(stripped, year)
                if results:
                    return results[0]
        except TMDBError as exc:
            logger.warning("tmdb_lookup_failed title=%s err=%s", scanned.parsed.title, exc)
        return None

    # --- Persistence --------------------------------------------------------

    async def _genre_names(self, client: TMDBClient, details: Dict[str, Any]) -> List[str]:
        names = [g.get("name") for g in details.get("genres") or [] if g.get("name")]
        if names or not details.get("genre_ids"):
            return names
        try:
            by_id = {g["id"]: g["name"] for g in await client.get_genres()}
        except TMDBError:
            return []
        return [by_id[i] for i in details["genre_ids"] if i in by_id]

    async def _get_or_create(self, session: AsyncSession, model, name: str):
        result = await session.execute(select(model).where(model.name == name))
        obj = result.scalar_one_or_none()
        if obj is None:
            obj = model(name=name)
            session.add(obj)
            await session.flush()
        return obj

    async def save_movie(
        self,
        session: AsyncSession,
        client: TMDBClient,
        scanned: ScannedFile,
        tmdb_match: Dict[str, Any],
    ) -> Movie:
        details = await client.get_movie(tmdb_match["id"]) or tmdb_match
        tmdb_id = int(details["id"])

        movie = (await session.execute(select(Movie).where(Movie.tmdb_id == tmdb_id))).scalar_one_or_none()
        if movie is None:
            movie = (await session.execute(select(Movie).where(Movie.local_path == scanned.path))).scalar_one_or_none()
        if movie is None:
            movie = Movie(title=details.get("title") or scanned.parsed.title)
            session.add(movie)
        elif movie.local_path and movie.local_path != scanned.path:
            logger.info("movie_file_replaced tmdb_id=%s old=%s new=%s", tmdb_id, movie.local_path, scanned.path)

        movie.tmdb_id = tmdb_id
        movie.title = details.get("title") or scanned.parsed.title
        movie.synopsis = details.get("overview") or ""
        movie.poster_url = client.image_url(details.get("poster_path")) or None
        movie.trailer_url = client.trailer_url(details.get("videos"))
        movie.release_date = parse_release_date(details.get("release_date"))
        movie.duration = details.get("runtime") or None
        movie.local_path = scanned.path
        movie.filename = scanned.filename
        movie.file_size = scanned.size
        movie.resolution = scanned.parsed.resolution
        movie.codec = scanned.parsed.codec
        movie.container = scanned.parsed.container
        movie.last_scanned = utc_now()
        await session.flush()

        await session.execute(delete(MovieGenre).where(MovieGenre.movie_id == movie.id))
        for name in dict.fromkeys(await self._genre_names(client, details)):
            genre = await self._get_or_create(session, Genre, name)
            session.add(MovieGenre(movie_id=movie.id, genre_id=genre.id))

        await session.execute(delete(MovieActor).where(MovieActor.movie_id == movie.id))
        seen: set[str] = set()
        for order, cast in enumerate(client.extract_actors(details.get("credits"), limit=MAX_ACTORS)):
            if cast["name"] in seen:
                continue
            seen.add(cast["name"])
            actor = await self._get_or_create(session, Actor, cast["name"])
            session.add(MovieActor(movie_id=movie.id, actor_id=actor.id, character=cast["character"], billing_order=order))
        await session.flush()
        return movie

    # --- Entry points -------------------------------------------------------

    async def index_file(self, path: os.PathLike | str, force: bool = False, client: Optional[TMDBClient] = None) -> IndexResult:
        """Index one file. Never raises; failures are reported in the result."""
        p = Path(path)
        result = IndexResult(filename=p.name, path=str(p))
        if not self.is_supported(p):
            result.error = "Unsupported file extension"
            return result
        if not p.is_file():
            result.error = "File not found"
            return result

        started = time.perf_counter()
        owns_client = client is None
        try:
            scanned = self.scan_file(p)
            if scanned is None:
                result.error = "Could not extract a title from the file name"
                return result
            result.path = scanned.path
            result.title = scanned.parsed.title
            result.year = scanned.parsed.year

            if not force:
                async with db.session_scope() as session:
                    existing = await session.execute(select(Movie.id).where(Movie.local_path == scanned.path))
                    existing_id = existing.scalar_one_or_none()
                if existing_id is not None:
                    result.success = True
                    result.skipped = True
                    result.movie_id = existing_id
                    return result

            if client is None:
                client = self._tmdb_factory()
            if not client.is_configured:
                result.error = "TMDB not configured"
                return result
            match = await self.find_on_tmdb(client, scanned)
            if match is None:
                result.error = "Not found on TMDB"
                return result
            async with db.session_scope() as session:
                movie = await self.save_movie(session, client, scanned, match)
                result.movie_id = movie.id
                result.title = movie.title
            result.success = True
            logger.info("index_file_done path=%s movie_id=%s", scanned.path, result.movie_id)
        except Exception as exc:
            logger.exception("index_file_failed path=%s", p)
            result.error = str(exc) or exc.__class__.__name__
        finally:
            if owns_client and client is not None:
                await client.aclose()
            if not result.skipped:
                metrics.increment_event("index.success" if result.success else "index.failed")
                metrics.record_timer("index.duration_s", time.perf_counter() - started)
        return result

    async def index_all(self, force: bool = False) -> IndexSummary:
        if not self.folder.is_dir():
            raise NotFoundError("Movies folder", details={"path": str(self.folder)})
        summary = IndexSummary()
        paths = await asyncio.to_thread(self.iter_video_paths)
        logger.info("index_all_start folder=%s files=%s", self.folder, len(paths))
        async with self._tmdb_factory() as client:
            for i, p in enumerate(paths):
                result = await self.index_file(p, force=force, client=client)
                summary.add(result)
                if not result.skipped and self.throttle_s > 0 and i < len(paths) - 1:
                    await asyncio.sleep(self.throttle_s)
        logger.info(
            "index_all_done total=%s indexed=%s skipped=%s failed=%s",
            summary.total, summary.indexed, summary.skipped, summary.failed,
        )
        return summary

    async def remove_path(self, path: os.PathLike | str) -> Optional[int]:
        """Drop the catalog entry for a deleted file; returns the removed movie id."""
        target = str(Path(path).resolve())
        async with db.session_scope() as session:
            movie_id = (await session.execute(select(Movie.id).where(Movie.local_path == target))).scalar_one_or_none()
            if movie_id is None:
                return None
            await session.execute(delete(Movie).where(Movie.id == movie_id))
        metrics.increment_event("index.removed")
        logger.info("movie_removed path=%s movie_id=%s", target, movie_id)
        return movie_id

    async def sync_library(self) -> SyncSummary:
        """Delete movies whose file is no longer in the folder."""
        if not self.folder.is_dir():
            # An unmounted library must not wipe the catalog
            raise NotFoundError("Movies folder", details={"path": str(self.folder)})
        started = time.perf_counter()
        present = {str(p) for p in await asyncio.to_thread(self.iter_video_paths)}
        summary = SyncSummary(files_present=len(present))
        async with db.session_scope() as session:
            rows = (await session.execute(
                select(Movie.id, Movie.title, Movie.local_path).where(Movie.local_path.is_not(None))
            )).all()
            orphan_ids = []
            for movie_id, title, local_path in rows:
                if local_path in present and os.path.exists(local_path):
                    continue
                orphan_ids.append(movie_id)
                summary.removed_titles.append(title)
            if orphan_ids:
                await session.execute(delete(Movie).where(Movie.id.in_(orphan_ids)))
        summary.orphans_removed = len(summary.removed_titles)
        metrics.record_timer("library_sync.duration_s", time.perf_counter() - started)
        metrics.increment_event("library_sync.orphans_removed", summary.orphans_removed)
        logger.info("library_sync_done present=%s removed=%s", summary.files_present, summary.orphans_removed)
        return summary

