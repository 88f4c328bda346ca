"""Read side of the movie catalog: listings, search, genres and detail."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinescan.core import config
from cinescan.core.errors import NotFoundError
from cinescan.core.pagination import LIKE_ESCAPE, contains_pattern, page_offset, pagination_meta
from cinescan.core.time_utils import isoformat_utc
from cinescan.models.database import Genre, Movie, MovieActor, MovieGenre, Review

_MOVIE_LOAD = (
    selectinload(Movie.genres).selectinload(MovieGenre.genre),
    selectinload(Movie.actors).selectinload(MovieActor.actor),
)


async def rating_aggregates(session: AsyncSession, movie_ids: Sequence[int]) -> Dict[int, Dict[str, Any]]:
    """movie_id -> {average_rating, review_count} for the given movies."""
    if not movie_ids:
        return {}
    rows = await session.execute(
        select(Review.movie_id, func.avg(Review.rating), func.count(Review.id))
        .where(Review.movie_id.in_(list(movie_ids)))
        .group_by(Review.movie_id)
    )
    return {
        movie_id: {"average_rating": round(float(avg or 0), 1), "review_count": int(count)}
        for movie_id, avg, count in rows.all()
    }


def serialize_movie(movie: Movie, aggregates: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    agg = aggregates or {"average_rating": 0, "review_count": 0}
    actors = sorted(movie.actors, key=lambda link: link.billing_order)
    return {
        "id": movie.id,
        "tmdb_id": movie.tmdb_id,
        "title": movie.title,
        "synopsis": movie.synopsis,
        "poster_url": movie.poster_url,
        "trailer_url": movie.trailer_url,
        "release_date": isoformat_utc(movie.release_date),
        "duration": movie.duration,
        "average_rating": agg["average_rating"],
        "review_count": agg["review_count"],
        "is_weekly_suggestion": movie.is_weekly_suggestion,
        "genres": sorted(link.genre.name for link in movie.genres),
        "actors": [{"name": link.actor.name, "character": link.character} for link in actors],
        "has_file": bool(movie.local_path),
        "file": {
            "filename": movie.filename,
            "size": movie.file_size,
            "resolution": movie.resolution,
            "codec": movie.codec,
            "container": movie.container,
        } if movie.local_path else None,
        "created_at": isoformat_utc(movie.created_at),
        "updated_at": isoformat_utc(movie.updated_at),
    }


async def _serialize_many(session: AsyncSession, movies: List[Movie]) -> List[Dict[str, Any]]:
    aggs = await rating_aggregates(session, [m.id for m in movies])
    return [serialize_movie(m, aggs.get(m.id)) for m in movies]


async def list_movies(session: AsyncSession, page: int, limit: int, genre: Optional[str] = None) -> Dict[str, Any]:
    filters = []
    if genre:
        filters.append(Movie.genres.any(MovieGenre.genre.has(func.lower(Genre.name) == genre.strip().lower())))
    total = (await session.execute(select(func.count(Movie.id)).where(*filters))).scalar_one()
    rows = await session.execute(
        select(Movie).options(*_MOVIE_LOAD).where(*filters)
        .order_by(Movie.created_at.desc(), Movie.id.desc())
        .offset(page_offset(page, limit)).limit(limit)
    )
    return {
        "movies": await _serialize_many(session, list(rows.scalars().all())),
        "pagination": pagination_meta(page, limit, int(total)),
    }


async def weekly_suggestions(session: AsyncSession) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Movie).options(*_MOVIE_LOAD).where(Movie.is_weekly_suggestion.is_(True))
        .order_by(Movie.updated_at.desc()).limit(config.WEEKLY_SUGGESTION_COUNT)
    )
    return await _serialize_many(session, list(rows.scalars().all()))


async def list_genres(session: AsyncSession) -> List[Dict[str, Any]]:
    rows = await session.execute(
        select(Genre.id, Genre.name, func.count(MovieGenre.id))
        .outerjoin(MovieGenre, MovieGenre.genre_id == Genre.id)
        .group_by(Genre.id, Genre.name)
        .order_by(Genre.name.asc())
    )
    return [{"id": gid, "name": name, "movie_count": int(count)} for gid, name, count in rows.all()]


async def search_movies(session: AsyncSession, query: str, limit: int = config.SEARCH_DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    term = contains_pattern(query.strip())
    rows = await session.execute(
        select(Movie).options(*_MOVIE_LOAD).where(Movie.title.ilike(term, escape=LIKE_ESCAPE))
        .order_by(Movie.title.asc()).limit(limit)
    )
    return await _serialize_many(session, list(rows.scalars().all()))


async def get_movie(session: AsyncSession, movie_id: int) -> Movie:
    result = await session.execute(select(Movie).options(*_MOVIE_LOAD).where(Movie.id == movie_id))
    movie = result.scalar_one_or_none()
    if movie is None:
        raise NotFoundError("Movie", details={"movie_id": movie_id})
    return movie


async def movie_detail(session: AsyncSession, movie_id: int) -> Dict[str, Any]:
    movie = await get_movie(session, movie_id)
    aggs = await rating_aggregates(session, [movie.id])
    return serialize_movie(movie, aggs.get(movie.id))


async def set_weekly_suggestion(session: AsyncSession, movie_id: int, value: bool) -> Dict[str, Any]:
    movie = await get_movie(session, movie_id)
    movie.is_weekly_suggestion = value
    await session.commit()
    return await movie_detail(session, movie_id)
