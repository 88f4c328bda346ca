"""User accounts: authentication, profile changes and admin management.

Every admin mutation is written to the admin_actions audit log in the same
transaction as the change itself.
"""
from __future__ import annotations

import enum
import json
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinescan.auth.security import generate_temp_password, hash_password, verify_password
from cinescan.core import config
from cinescan.core.errors import AppError, ConflictError, ErrorCode, NotFoundError, ValidationError
from cinescan.core.pagination import LIKE_ESCAPE, contains_pattern, page_offset, pagination_meta
from cinescan.core.time_utils import isoformat_utc, utc_now
from cinescan.models.database import ROLE_ADMIN, ROLE_USER, AdminAction, User

logger = logging.getLogger(__name__)


class AdminActionType(str, enum.Enum):
    CREATE_USER = "CREATE_USER"
    UPDATE_USER = "UPDATE_USER"
    DELETE_USER = "DELETE_USER"
    RESET_PASSWORD = "RESET_PASSWORD"
    ACTIVATE_USER = "ACTIVATE_USER"
    DEACTIVATE_USER = "DEACTIVATE_USER"
    CHANGE_ROLE = "CHANGE_ROLE"
    APPROVE_REGISTRATION = "APPROVE_REGISTRATION"
    REJECT_REGISTRATION = "REJECT_REGISTRATION"


USER_SORT_FIELDS = {
    "name": User.name,
    "email": User.email,
    "created_at": User.created_at,
    "last_login_at": User.last_login_at,
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "is_active": user.is_active,
        "created_at": isoformat_utc(user.created_at),
        "updated_at": isoformat_utc(user.updated_at),
        "last_login_at": isoformat_utc(user.last_login_at),
    }


def serialize_admin_action(action: AdminAction) -> Dict[str, Any]:
    details: Any = action.details
    if details:
        try:
            details = json.loads(details)
        except ValueError:
            pass
    admin = action.admin
    return {
        "id": action.id,
        "action": action.action,
        "target_user_id": action.target_user_id,
        "details": details,
        "created_at": isoformat_utc(action.created_at),
        "admin": {"id": admin.id, "name": admin.name, "email": admin.email} if admin is not None else None,
    }


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: int) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", details={"user_id": user_id})
    return user


async def create_user(session: AsyncSession, email: str, name: str, password: str, role: str = ROLE_USER) -> User:
    """Insert a user after checking the e-mail is free. Flushes but does not commit."""
    email = normalize_email(email)
    if await get_user_by_email(session, email) is not None:
        raise ConflictError("An account with this email already exists")
    user = User(email=email, name=name.strip(), password_hash=hash_password(password), role=role, is_active=True)
    session.add(user)
    await session.flush()
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(session, email)
    if user is None or not verify_password(password, user.password_hash):
        raise AppError("Invalid credentials", ErrorCode.UNAUTHORIZED)
    if not user.is_active:
        raise AppError("Account disabled", ErrorCode.USER_INACTIVE)
    user.last_login_at = utc_now()
    await session.commit()
    return user


async def change_password(session: AsyncSession, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must differ from the current one")
    user.password_hash = hash_password(new_password)
    await session.commit()


async def active_admin_emails(session: AsyncSession) -> List[str]:
    result = await session.execute(
        select(User.email).where(User.role == ROLE_ADMIN, User.is_active.is_(True))
    )
    return [row[0] for row in result.all()]


# --- Admin operations ---------------------------------------------------------

def record_admin_action(
    session: AsyncSession,
    admin_id: int,
    action: AdminActionType,
    target_user_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AdminAction:
    entry = AdminAction(
        admin_id=admin_id,
        action=action.value,
        target_user_id=target_user_id,
        details=json.dumps(details) if details else None,
    )
    session.add(entry)
    logger.info("admin_action action=%s admin_id=%s target=%s", action.value, admin_id, target_user_id)
    return entry


async def admin_create_user(session: AsyncSession, admin: User, email: str, name: str, role: str = ROLE_USER) -> Tuple[User, str]:
    temp_password = generate_temp_password()
    user = await create_user(session, email, name, temp_password, role=role)
    record_admin_action(session, admin.id, AdminActionType.CREATE_USER, user.id, {"email": user.email, "role": role})
    await session.commit()
    return user, temp_password


async def list_users(
    session: AsyncSession,
    page: int = config.DEFAULT_PAGE,
    limit: int = config.DEFAULT_LIMIT,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    filters = []
    if role:
        filters.append(User.role == role)
    if is_active is not None:
        filters.append(User.is_active.is_(is_active))
    if search and search.strip():
        term = contains_pattern(search.strip())
        filters.append(or_(User.name.ilike(term, escape=LIKE_ESCAPE), User.email.ilike(term, escape=LIKE_ESCAPE)))

    total = (await session.execute(select(func.count(User.id)).where(*filters))).scalar_one()
    column = USER_SORT_FIELDS.get(sort_by, User.created_at)
    order = column.asc() if sort_order == "asc" else column.desc()
    rows = await session.execute(
        select(User).where(*filters).order_by(order, User.id).offset(page_offset(page, limit)).limit(limit)
    )
    return {
        "users": [serialize_user(u) for u in rows.scalars().all()],
        "pagination": pagination_meta(page, limit, int(total)),
    }


async def user_stats(session: AsyncSession) -> Dict[str, int]:
    async def _count(*conditions) -> int:
        return int((await session.execute(select(func.count(User.id)).where(*conditions))).scalar_one())

    since = utc_now() - timedelta(days=config.RECENT_USERS_DAYS)
    total = await _count()
    active = await _count(User.is_active.is_(True))
    admins = await _count(User.role == ROLE_ADMIN)
    return {
        "total_users": total,
        "active_users": active,
        "inactive_users": total - active,
        "admin_users": admins,
        "regular_users": total - admins,
        "recent_users": await _count(User.created_at >= since),
    }


async def admin_update_user(
    session: AsyncSession,
    admin: User,
    user_id: int,
    name: Optional[str] = None,
    role: Optional[str] = None,
    is_active: Optional[bool] = None,
) -> User:
    user = await get_user(session, user_id)
    changes: Dict[str, Any] = {}
    if name is not None and name.strip() != user.name:
        changes["name"] = {"from": user.name, "to": name.strip()}
        user.name = name.strip()
    role_changed = role is not None and role != user.role
    if role_changed:
        if user.id == admin.id:
            raise ValidationError("You cannot change your own role")
        changes["role"] = {"from": user.role, "to": role}
        user.role = role
    if is_active is not None and is_active != user.is_active:
        if user.id == admin.id and not is_active:
            raise ValidationError("You cannot deactivate your own account")
        changes["is_active"] = {"from": user.is_active, "to": is_active}
        user.is_active = is_active
    if changes:
        action = AdminActionType.CHANGE_ROLE if role_changed else AdminActionType.UPDATE_USER
        record_admin_action(session, admin.id, action, user.id, changes)
    await session.commit()
    return user


async def admin_reset_password(session: AsyncSession, admin: User, user_id: int) -> Tuple[User, str]:
    user = await get_user(session, user_id)
    temp_password = generate_temp_password()
    user.password_hash = hash_password(temp_password)
    record_admin_action(session, admin.id, AdminActionType.RESET_PASSWORD, user.id)
    await session.commit()
    return user, temp_password


async def admin_toggle_status(session: AsyncSession, admin: User, user_id: int) -> User:
    user = await get_user(session, user_id)
    if user.id == admin.id:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = not user.is_active
    action = AdminActionType.ACTIVATE_USER if user.is_active else AdminActionType.DEACTIVATE_USER
    record_admin_action(session, admin.id, action, user.id)
    await session.commit()
    return user


async def admin_delete_user(session: AsyncSession, admin: User, user_id: int) -> None:
    if user_id == admin.id:
        raise AppError("You cannot delete your own account", ErrorCode.CANNOT_DELETE_SELF)
    user = await get_user(session, user_id)
    record_admin_action(session, admin.id, AdminActionType.DELETE_USER, user.id, {"email": user.email, "name": user.name})
    await session.execute(delete(User).where(User.id == user.id))
    await session.commit()


async def list_admin_actions(session: AsyncSession, page: int, limit: int) -> Dict[str, Any]:
    total = (await session.execute(select(func.count(AdminAction.id)))).scalar_one()
    rows = await session.execute(
        select(AdminAction)
        .options(selectinload(AdminAction.admin))
        .order_by(AdminAction.created_at.desc(), AdminAction.id.desc())
        .offset(page_offset(page, limit))
        .limit(limit)
    )
    return {
        "actions": [serialize_admin_action(a) for a in rows.scalars().all()],
        "pagination": pagination_meta(page, limit, int(total)),
    }
