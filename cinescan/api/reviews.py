from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import get_current_user, rate_limiter_dependency
from cinescan.core import reviews as review_service
from cinescan.core.config import (
    RATING_MAX,
    RATING_MIN,
    REVIEW_COMMENT_MAX_LENGTH,
    REVIEW_COMMENT_MIN_LENGTH,
    REVIEWS_DEFAULT_LIMIT,
    REVIEWS_MAX_LIMIT,
)
from cinescan.core.database import get_async_session
from cinescan.models.database import User as ORMUser

router = APIRouter(prefix="/api/reviews", tags=["reviews"], dependencies=[Depends(rate_limiter_dependency)])


def _check_comment(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    value = value.strip()
    if not REVIEW_COMMENT_MIN_LENGTH <= len(value) <= REVIEW_COMMENT_MAX_LENGTH:
        raise ValueError(
            f"Comment must be between {REVIEW_COMMENT_MIN_LENGTH} and {REVIEW_COMMENT_MAX_LENGTH} characters"
        )
    return value


class ReviewCreate(BaseModel):
    rating: int = Field(ge=RATING_MIN, le=RATING_MAX)
    comment: str

    _comment = field_validator("comment")(_check_comment)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=RATING_MIN, le=RATING_MAX)
    comment: Optional[str] = None

    _comment = field_validator("comment")(_check_comment)


@router.post("/movie/{movie_id}", status_code=status.HTTP_201_CREATED)
async def create_review(
    movie_id: int,
    payload: ReviewCreate,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    review = await review_service.create_review(session, current_user, movie_id, payload.rating, payload.comment)
    return review_service.serialize_review(review)


@router.get("/movie/{movie_id}")
async def list_movie_reviews(
    movie_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(REVIEWS_DEFAULT_LIMIT, ge=1, le=REVIEWS_MAX_LIMIT),
    sort_by: Literal["created_at", "rating"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    session: AsyncSession = Depends(get_async_session),
):
    return await review_service.list_movie_reviews(session, movie_id, page, limit, sort_by, sort_order)


@router.get("/user/me")
async def list_my_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(REVIEWS_DEFAULT_LIMIT, ge=1, le=REVIEWS_MAX_LIMIT),
    sort_by: Literal["created_at", "rating"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return await review_service.list_user_reviews(session, current_user, page, limit, sort_by, sort_order)


@router.get("/{review_id}")
async def get_review(review_id: int, session: AsyncSession = Depends(get_async_session)):
    return review_service.serialize_review(await review_service.get_review(session, review_id))


@router.put("/{review_id}")
async def update_review(
    review_id: int,
    payload: ReviewUpdate,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    if payload.rating is None and payload.comment is None:
        raise HTTPException(status_code=400, detail="Nothing to update")
    review = await review_service.update_review(session, current_user, review_id, payload.rating, payload.comment)
    return review_service.serialize_review(review)


@router.delete("/{review_id}")
async def delete_review(
    review_id: int,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    await review_service.delete_review(session, current_user, review_id)
    return {"detail": "Review deleted"}
