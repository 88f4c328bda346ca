"""Administration endpoints: user management, audit log, access requests and library control."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import rate_limiter_dependency, require_admin
from cinescan.core import registrations as registration_service
from cinescan.core import users as user_service
from cinescan.core.config import DEFAULT_LIMIT, MAX_LIMIT, NAME_MAX_LENGTH, NAME_MIN_LENGTH
from cinescan.core.database import get_async_session
from cinescan.core.errors import ForbiddenError, NotFoundError, ValidationError
from cinescan.core.mailer import get_mailer
from cinescan.core.state import get_indexer, get_watcher
from cinescan.models.database import User as ORMUser

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(rate_limiter_dependency)])

Role = Literal["USER", "ADMIN"]


class AdminUserCreate(BaseModel):
    email: EmailStr = Field(max_length=255)
    name: str = Field(min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    role: Role = "USER"


class AdminUserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    role: Optional[Role] = None
    is_active: Optional[bool] = None


class RegistrationDecision(BaseModel):
    action: Literal["APPROVE", "REJECT"]
    admin_notes: Optional[str] = Field(default=None, max_length=1000)


class IndexFileRequest(BaseModel):
    path: str = Field(min_length=1)


class ScanRequest(BaseModel):
    force: bool = False


# --- Users ------------------------------------------------------------------


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: AdminUserCreate,
    background_tasks: BackgroundTasks,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    user, temp_password = await user_service.admin_create_user(session, admin, payload.email, payload.name, payload.role)
    background_tasks.add_task(get_mailer().send_user_invitation, user.email, user.name, temp_password)
    logger.info("admin_user_created admin_id=%s user_id=%s", admin.id, user.id)
    return {"user": user_service.serialize_user(user), "temp_password": temp_password}


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=255),
    sort_by: Literal["name", "email", "created_at", "last_login_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    return await user_service.list_users(session, page, limit, role, is_active, search, sort_by, sort_order)


@router.get("/users/stats")
async def user_stats(admin: ORMUser = Depends(require_admin), session: AsyncSession = Depends(get_async_session)):
    return await user_service.user_stats(session)


@router.put("/users/{user_id}")
async def update_user(
    user_id: int,
    payload: AdminUserUpdate,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    user = await user_service.admin_update_user(
        session, admin, user_id, name=payload.name, role=payload.role, is_active=payload.is_active
    )
    return user_service.serialize_user(user)


@router.post("/users/{user_id}/reset-password")
async def reset_password(
    user_id: int,
    background_tasks: BackgroundTasks,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    user, temp_password = await user_service.admin_reset_password(session, admin, user_id)
    background_tasks.add_task(get_mailer().send_user_invitation, user.email, user.name, temp_password)
    return {"user": user_service.serialize_user(user), "temp_password": temp_password}


@router.post("/users/{user_id}/toggle-status")
async def toggle_status(
    user_id: int,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    user = await user_service.admin_toggle_status(session, admin, user_id)
    return user_service.serialize_user(user)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    await user_service.admin_delete_user(session, admin, user_id)
    return {"detail": "User deleted"}


@router.get("/actions")
async def list_actions(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    return await user_service.list_admin_actions(session, page, limit)


# --- Access requests --------------------------------------------------------


@router.get("/registrations")
async def list_registrations(
    status: Optional[Literal["PENDING", "APPROVED", "REJECTED"]] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    return await registration_service.list_registrations(session, page, limit, status)


@router.post("/registrations/{registration_id}/process")
async def process_registration(
    registration_id: int,
    payload: RegistrationDecision,
    background_tasks: BackgroundTasks,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    reg, user, temp_password = await registration_service.process_registration(
        session, admin, registration_id, payload.action, payload.admin_notes
    )
    body = {"request": registration_service.serialize_registration(reg)}
    if user is not None:
        background_tasks.add_task(get_mailer().send_user_invitation, user.email, user.name, temp_password)
        body["user"] = user_service.serialize_user(user)
    return body


@router.delete("/registrations/{registration_id}")
async def delete_registration(
    registration_id: int,
    admin: ORMUser = Depends(require_admin),
    session: AsyncSession = Depends(get_async_session),
):
    await registration_service.delete_registration(session, registration_id)
    return {"detail": "Registration request deleted"}


# --- Library ----------------------------------------------------------------


def _library_path(raw: str) -> Path:
    """Resolve raw against the movies folder and refuse anything outside it."""
    root = get_indexer().folder
    candidate = Path(raw).expanduser()
    if not candidate.is_absolute():
        candidate = root / candidate
    candidate = candidate.resolve()
    if not candidate.is_relative_to(root):
        raise ForbiddenError("Path is outside the movies folder")
    return candidate


@router.post("/library/scan")
async def scan_library(payload: Optional[ScanRequest] = None, admin: ORMUser = Depends(require_admin)):
    force = payload.force if payload is not None else False
    summary = await get_indexer().index_all(force=force)
    logger.info("library_scan admin_id=%s indexed=%s", admin.id, summary.indexed)
    return summary.as_dict()


@router.post("/library/index-file")
async def index_file(payload: IndexFileRequest, admin: ORMUser = Depends(require_admin)):
    path = _library_path(payload.path)
    try:
        result = await get_watcher().force_index_file(str(path))
    except ValueError as exc:
        raise ValidationError(str(exc), details={"path": payload.path})
    return result.as_dict()


@router.post("/library/sync")
async def sync_library(admin: ORMUser = Depends(require_admin)):
    summary = await get_indexer().sync_library()
    return summary.as_dict()


@router.get("/watcher", dependencies=[Depends(require_admin)])
async def watcher_status():
    return get_watcher().stats()


@router.post("/watcher/start", dependencies=[Depends(require_admin)])
async def start_watcher():
    watcher = get_watcher()
    try:
        watcher.start()
    except FileNotFoundError:
        raise NotFoundError("Movies folder", details={"path": str(watcher.path)})
    return watcher.stats()


@router.post("/watcher/stop", dependencies=[Depends(require_admin)])
async def stop_watcher():
    watcher = get_watcher()
    watcher.stop()
    return watcher.stats()
