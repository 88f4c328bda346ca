from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import get_current_user, rate_limiter_dependency, require_admin
from cinescan.core import movie_requests as request_service
from cinescan.core.database import get_async_session
from cinescan.models.database import User as ORMUser

router = APIRouter(
    prefix="/api/movie-requests", tags=["movie-requests"], dependencies=[Depends(rate_limiter_dependency)]
)

RequestStatus = Literal["pending", "processing", "available"]


class MovieRequestCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    comment: Optional[str] = Field(default=None, max_length=500)


class MovieRequestUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    comment: Optional[str] = Field(default=None, max_length=500)


class MovieRequestStatusUpdate(BaseModel):
    status: RequestStatus


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: MovieRequestCreate,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    if not payload.title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    req = await request_service.create_request(session, current_user, payload.title, payload.comment)
    return request_service.serialize_request(req)


@router.get("/my-requests")
async def my_requests(
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    return {"requests": await request_service.list_requests(session, user_id=current_user.id)}


@router.get("", dependencies=[Depends(require_admin)])
async def list_requests(
    status: Optional[RequestStatus] = Query(None),
    session: AsyncSession = Depends(get_async_session),
):
    return {"requests": await request_service.list_requests(session, status=status)}


@router.get("/stats/overview", dependencies=[Depends(require_admin)])
async def stats(session: AsyncSession = Depends(get_async_session)):
    return await request_service.request_stats(session)


@router.get("/{request_id}")
async def get_request(
    request_id: int,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    req = await request_service.get_request_for(session, current_user, request_id)
    return request_service.serialize_request(req)


@router.patch("/{request_id}/status", dependencies=[Depends(require_admin)])
async def update_status(
    request_id: int,
    payload: MovieRequestStatusUpdate,
    session: AsyncSession = Depends(get_async_session),
):
    req = await request_service.update_status(session, request_id, payload.status)
    return request_service.serialize_request(req)


@router.put("/{request_id}")
async def update_request(
    request_id: int,
    payload: MovieRequestUpdate,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    req = await request_service.update_request(session, current_user, request_id, payload.title, payload.comment)
    return request_service.serialize_request(req)


@router.delete("/{request_id}")
async def delete_request(
    request_id: int,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    await request_service.delete_request(session, current_user, request_id)
    return {"detail": "Request deleted"}
