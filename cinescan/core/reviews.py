from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinescan.core.errors import ConflictError, ForbiddenError, NotFoundError
from cinescan.core.pagination import page_offset, pagination_meta
from cinescan.core.time_utils import isoformat_utc
from cinescan.models.database import Movie, Review, User

REVIEW_SORT_FIELDS = {"created_at": Review.created_at, "rating": Review.rating}


def serialize_review(review: Review) -> Dict[str, Any]:
    return {
        "id": review.id,
        "movie_id": review.movie_id,
        "rating": review.rating,
        "comment": review.comment,
        "author": {"id": review.author.id, "name": review.author.name},
        "created_at": isoformat_utc(review.created_at),
        "updated_at": isoformat_utc(review.updated_at),
    }


async def get_review(session: AsyncSession, review_id: int) -> Review:
    result = await session.execute(
        select(Review).options(selectinload(Review.author)).where(Review.id == review_id)
    )
    review = result.scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review", details={"review_id": review_id})
    return review


async def create_review(session: AsyncSession, author: User, movie_id: int, rating: int, comment: str) -> Review:
    if await session.get(Movie, movie_id) is None:
        raise NotFoundError("Movie", details={"movie_id": movie_id})
    existing = await session.execute(
        select(Review.id).where(Review.movie_id == movie_id, Review.author_id == author.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("You have already reviewed this movie")
    review = Review(movie_id=movie_id, author=author, rating=rating, comment=comment.strip())
    session.add(review)
    try:
        await session.commit()
    except IntegrityError:
        # Concurrent duplicate slipped past the check above
        await session.rollback()
        raise ConflictError("You have already reviewed this movie")
    return review


async def _list(session: AsyncSession, condition, page: int, limit: int, sort_by: str, sort_order: str):
    total = (await session.execute(select(func.count(Review.id)).where(condition))).scalar_one()
    column = REVIEW_SORT_FIELDS.get(sort_by, Review.created_at)
    order = column.asc() if sort_order == "asc" else column.desc()
    rows = await session.execute(
        select(Review).options(selectinload(Review.author)).where(condition)
        .order_by(order, Review.id.desc()).offset(page_offset(page, limit)).limit(limit)
    )
    return [serialize_review(r) for r in rows.scalars().all()], pagination_meta(page, limit, int(total))


async def list_movie_reviews(
    session: AsyncSession, movie_id: int, page: int, limit: int, sort_by: str = "created_at", sort_order: str = "desc"
) -> Dict[str, Any]:
    if await session.get(Movie, movie_id) is None:
        raise NotFoundError("Movie", details={"movie_id": movie_id})
    reviews, meta = await _list(session, Review.movie_id == movie_id, page, limit, sort_by, sort_order)
    avg = (await session.execute(select(func.avg(Review.rating)).where(Review.movie_id == movie_id))).scalar_one()
    return {"reviews": reviews, "pagination": meta, "average_rating": round(float(avg or 0), 1)}


async def list_user_reviews(
    session: AsyncSession, user: User, page: int, limit: int, sort_by: str = "created_at", sort_order: str = "desc"
) -> Dict[str, Any]:
    reviews, meta = await _list(session, Review.author_id == user.id, page, limit, sort_by, sort_order)
    return {"reviews": reviews, "pagination": meta}


async def update_review(
    session: AsyncSession, user: User, review_id: int, rating: Optional[int] = None, comment: Optional[str] = None
) -> Review:
    review = await get_review(session, review_id)
    if review.author_id != user.id:
        raise ForbiddenError("You can only edit your own reviews")
    if rating is not None:
        review.rating = rating
    if comment is not None:
        review.comment = comment.strip()
    await session.commit()
    return review


async def delete_review(session: AsyncSession, user: User, review_id: int) -> None:
    review = await get_review(session, review_id)
    if review.author_id != user.id and not user.is_admin:
        raise ForbiddenError("You can only delete your own reviews")
    await session.delete(review)
    await session.commit()
