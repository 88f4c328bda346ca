from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import rate_limiter_dependency
from cinescan.core import registrations as registration_service
from cinescan.core.config import NAME_MAX_LENGTH, NAME_MIN_LENGTH
from cinescan.core.database import get_async_session
from cinescan.core.mailer import get_mailer
from cinescan.core.users import active_admin_emails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/registrations", tags=["registrations"], dependencies=[Depends(rate_limiter_dependency)])


class RegistrationCreate(BaseModel):
    email: EmailStr = Field(max_length=255)
    name: str = Field(min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)


@router.post("", status_code=status.HTTP_201_CREATED)
async def request_access(
    payload: RegistrationCreate,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_async_session),
):
    reg = await registration_service.create_registration(session, payload.email, payload.name)
    admins = await active_admin_emails(session)
    if admins:
        background_tasks.add_task(get_mailer().notify_admins_of_registration, admins, reg.name, reg.email)
    else:
        logger.warning("registration_no_admin_to_notify id=%s", reg.id)
    return {
        "detail": "Your request has been received. An administrator will review it shortly.",
        "request": registration_service.serialize_registration(reg),
    }
