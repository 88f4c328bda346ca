from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinescan.core.errors import ForbiddenError, NotFoundError, ValidationError
from cinescan.core.time_utils import isoformat_utc
from cinescan.models.database import MOVIE_REQUEST_STATUSES, REQUEST_PENDING, MovieRequest, User


def serialize_request(req: MovieRequest) -> Dict[str, Any]:
    return {
        "id": req.id,
        "title": req.title,
        "comment": req.comment,
        "status": req.status,
        "requested_at": isoformat_utc(req.requested_at),
        "updated_at": isoformat_utc(req.updated_at),
        "user": {"id": req.user.id, "name": req.user.name, "email": req.user.email},
    }


async def _get(session: AsyncSession, request_id: int) -> MovieRequest:
    result = await session.execute(
        select(MovieRequest).options(selectinload(MovieRequest.user)).where(MovieRequest.id == request_id)
    )
    req = result.scalar_one_or_none()
    if req is None:
        raise NotFoundError("Movie request", details={"request_id": request_id})
    return req


async def get_request_for(session: AsyncSession, user: User, request_id: int) -> MovieRequest:
    """Load a request visible to user (owner or admin)."""
    req = await _get(session, request_id)
    if req.user_id != user.id and not user.is_admin:
        raise ForbiddenError("You can only access your own requests")
    return req


async def create_request(session: AsyncSession, user: User, title: str, comment: Optional[str]) -> MovieRequest:
    req = MovieRequest(user=user, title=title.strip(), comment=(comment or "").strip() or None, status=REQUEST_PENDING)
    session.add(req)
    await session.commit()
    return req


async def list_requests(session: AsyncSession, user_id: Optional[int] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
    stmt = select(MovieRequest).options(selectinload(MovieRequest.user))
    if user_id is not None:
        stmt = stmt.where(MovieRequest.user_id == user_id)
    if status:
        stmt = stmt.where(MovieRequest.status == status)
    rows = await session.execute(stmt.order_by(MovieRequest.requested_at.desc(), MovieRequest.id.desc()))
    return [serialize_request(r) for r in rows.scalars().all()]


async def update_status(session: AsyncSession, request_id: int, status: str) -> MovieRequest:
    req = await _get(session, request_id)
    req.status = status
    await session.commit()
    return req


async def update_request(
    session: AsyncSession, user: User, request_id: int, title: Optional[str] = None, comment: Optional[str] = None
) -> MovieRequest:
    req = await get_request_for(session, user, request_id)
    if title is not None:
        if not title.strip():
            raise ValidationError("Title is required")
        req.title = title.strip()
    if comment is not None:
        req.comment = comment.strip() or None
    await session.commit()
    return req


async def delete_request(session: AsyncSession, user: User, request_id: int) -> None:
    req = await get_request_for(session, user, request_id)
    await session.delete(req)
    await session.commit()


async def request_stats(session: AsyncSession) -> Dict[str, int]:
    rows = await session.execute(select(MovieRequest.status, func.count(MovieRequest.id)).group_by(MovieRequest.status))
    counts = {status: 0 for status in MOVIE_REQUEST_STATUSES}
    for status, count in rows.all():
        counts[status] = int(count)
    counts["total"] = sum(counts[s] for s in MOVIE_REQUEST_STATUSES)
    return counts
