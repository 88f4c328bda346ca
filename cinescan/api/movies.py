from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import rate_limiter_dependency, require_admin
from cinescan.core import catalog
from cinescan.core.config import DEFAULT_LIMIT, MAX_LIMIT, SEARCH_DEFAULT_LIMIT
from cinescan.core.database import get_async_session

router = APIRouter(prefix="/api/movies", tags=["movies"], dependencies=[Depends(rate_limiter_dependency)])


class SuggestionUpdate(BaseModel):
    is_weekly_suggestion: bool


@router.get("")
async def list_movies(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1),
    genre: Optional[str] = Query(None, max_length=100),
    session: AsyncSession = Depends(get_async_session),
):
    return await catalog.list_movies(session, page, min(limit, MAX_LIMIT), genre)


@router.get("/suggestions")
async def suggestions(session: AsyncSession = Depends(get_async_session)):
    return {"movies": await catalog.weekly_suggestions(session)}


@router.get("/genres")
async def genres(session: AsyncSession = Depends(get_async_session)):
    return {"genres": await catalog.list_genres(session)}


@router.get("/search")
async def search(
    q: str = Query("", max_length=200),
    limit: int = Query(SEARCH_DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    session: AsyncSession = Depends(get_async_session),
):
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search query is required")
    movies = await catalog.search_movies(session, q, limit)
    return {"query": q.strip(), "movies": movies, "count": len(movies)}


@router.get("/{movie_id}")
async def get_movie(movie_id: int, session: AsyncSession = Depends(get_async_session)):
    return await catalog.movie_detail(session, movie_id)


@router.patch("/{movie_id}/suggestion", dependencies=[Depends(require_admin)])
async def set_suggestion(movie_id: int, payload: SuggestionUpdate, session: AsyncSession = Depends(get_async_session)):
    return await catalog.set_weekly_suggestion(session, movie_id, payload.is_weekly_suggestion)
