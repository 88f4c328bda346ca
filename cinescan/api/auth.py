from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.auth.security import (
    blacklist_token,
    create_access_token,
    decode_token,
    get_current_user,
    is_token_revoked,
    oauth2_scheme,
    rate_limiter_dependency,
)
from cinescan.core import users as user_service
from cinescan.core.config import NAME_MAX_LENGTH, NAME_MIN_LENGTH, PASSWORD_MAX_LENGTH, PASSWORD_MIN_LENGTH
from cinescan.core.database import get_async_session
from cinescan.models.database import User as ORMUser

router = APIRouter(prefix="/api/auth", tags=["auth"], dependencies=[Depends(rate_limiter_dependency)])


class RegisterRequest(BaseModel):
    email: EmailStr = Field(max_length=255)
    name: str = Field(min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


class VerifyRequest(BaseModel):
    token: str


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)


def _token_response(user: ORMUser) -> dict:
    return {
        "user": user_service.serialize_user(user),
        "access_token": create_access_token(user),
        "token_type": "bearer",
    }


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_async_session)):
    if not payload.name.strip():
        raise HTTPException(status_code=400, detail="Name is required")
    user = await user_service.create_user(session, payload.email, payload.name, payload.password)
    await session.commit()
    return _token_response(user)


@router.post("/login")
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_async_session)):
    user = await user_service.authenticate(session, payload.email, payload.password)
    return _token_response(user)


@router.get("/me")
async def me(current_user: ORMUser = Depends(get_current_user)):
    return user_service.serialize_user(current_user)


@router.post("/verify")
async def verify(payload: VerifyRequest):
    try:
        claims = decode_token(payload.token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if is_token_revoked(claims):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token revoked")
    return {
        "valid": True,
        "claims": {k: claims.get(k) for k in ("sub", "email", "name", "role", "exp")},
    }


@router.post("/refresh")
async def refresh(token: str = Depends(oauth2_scheme), current_user: ORMUser = Depends(get_current_user)):
    blacklist_token(token)
    return _token_response(current_user)


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    current_user: ORMUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_async_session),
):
    await user_service.change_password(session, current_user, payload.current_password, payload.new_password)
    return {"detail": "Password updated"}


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), current_user: ORMUser = Depends(get_current_user)):
    blacklist_token(token)
    return {"detail": "Logged out"}
