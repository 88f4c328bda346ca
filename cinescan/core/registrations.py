"""Access requests: visitors ask for an account, admins approve or reject."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinescan.auth.security import generate_temp_password
from cinescan.core.errors import ConflictError, NotFoundError, ValidationError
from cinescan.core.pagination import page_offset, pagination_meta
from cinescan.core.time_utils import isoformat_utc, utc_now
from cinescan.core.users import AdminActionType, create_user, get_user_by_email, normalize_email, record_admin_action
from cinescan.models.database import (
    REGISTRATION_APPROVED,
    REGISTRATION_PENDING,
    REGISTRATION_REJECTED,
    RegistrationRequest,
    User,
)

logger = logging.getLogger(__name__)

APPROVE = "APPROVE"
REJECT = "REJECT"


def serialize_registration(reg: RegistrationRequest) -> Dict[str, Any]:
    return {
        "id": reg.id,
        "email": reg.email,
        "name": reg.name,
        "status": reg.status,
        "requested_at": isoformat_utc(reg.requested_at),
        "processed_at": isoformat_utc(reg.processed_at),
        "admin_notes": reg.admin_notes,
        "admin": {"id": reg.admin.id, "name": reg.admin.name} if reg.admin is not None else None,
    }


async def create_registration(session: AsyncSession, email: str, name: str) -> RegistrationRequest:
    email = normalize_email(email)
    if await get_user_by_email(session, email) is not None:
        raise ConflictError("An account with this email already exists")
    pending = await session.execute(
        select(RegistrationRequest.id).where(
            RegistrationRequest.email == email, RegistrationRequest.status == REGISTRATION_PENDING
        )
    )
    if pending.first() is not None:
        raise ConflictError("A request for this email is already pending")
    reg = RegistrationRequest(email=email, name=name.strip(), status=REGISTRATION_PENDING, admin=None)
    session.add(reg)
    await session.commit()
    logger.info("registration_requested id=%s", reg.id)
    return reg


async def list_registrations(session: AsyncSession, page: int, limit: int, status: Optional[str] = None) -> Dict[str, Any]:
    filters = [RegistrationRequest.status == status] if status else []
    total = (await session.execute(select(func.count(RegistrationRequest.id)).where(*filters))).scalar_one()
    rows = await session.execute(
        select(RegistrationRequest).options(selectinload(RegistrationRequest.admin)).where(*filters)
        .order_by(RegistrationRequest.requested_at.desc(), RegistrationRequest.id.desc())
        .offset(page_offset(page, limit)).limit(limit)
    )
    return {
        "requests": [serialize_registration(r) for r in rows.scalars().all()],
        "pagination": pagination_meta(page, limit, int(total)),
    }


async def _get(session: AsyncSession, registration_id: int) -> RegistrationRequest:
    result = await session.execute(
        select(RegistrationRequest).options(selectinload(RegistrationRequest.admin))
        .where(RegistrationRequest.id == registration_id)
    )
    reg = result.scalar_one_or_none()
    if reg is None:
        raise NotFoundError("Registration request", details={"registration_id": registration_id})
    return reg


async def process_registration(
    session: AsyncSession, admin: User, registration_id: int, action: str, admin_notes: Optional[str] = None
) -> Tuple[RegistrationRequest, Optional[User], Optional[str]]:
    """Approve (creating the account) or reject a pending request.

    Returns (request, created_user, temp_password); the last two are None on reject.
    """
    reg = await _get(session, registration_id)
    if reg.status != REGISTRATION_PENDING:
        raise ValidationError("This request has already been processed", details={"status": reg.status})

    user: Optional[User] = None
    temp_password: Optional[str] = None
    if action == APPROVE:
        temp_password = generate_temp_password()
        user = await create_user(session, reg.email, reg.name, temp_password)
        reg.status = REGISTRATION_APPROVED
        record_admin_action(
            session, admin.id, AdminActionType.APPROVE_REGISTRATION, user.id,
            {"registration_id": reg.id, "email": reg.email},
        )
    else:
        reg.status = REGISTRATION_REJECTED
        record_admin_action(
            session, admin.id, AdminActionType.REJECT_REGISTRATION, None,
            {"registration_id": reg.id, "email": reg.email},
        )
    reg.processed_at = utc_now()
    reg.admin = admin
    reg.admin_notes = (admin_notes or "").strip() or None
    await session.commit()
    return reg, user, temp_password


async def delete_registration(session: AsyncSession, registration_id: int) -> None:
    reg = await _get(session, registration_id)
    await session.delete(reg)
    await session.commit()
