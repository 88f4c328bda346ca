from __future__ import annotations

import secrets
import string
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinescan.core import config
from cinescan.core.config import JWT_ALGORITHM, JWT_AUDIENCE, JWT_ISSUER, JWT_SECRET, ACCESS_TOKEN_EXPIRE_MINUTES
from cinescan.core.database import get_async_session
from cinescan.core.errors import admin_required
from cinescan.models.database import ROLE_ADMIN, User as ORMUser

# Password hashing context
_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
_optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# In-memory token blacklist: jti -> exp (epoch seconds) of logged-out tokens
_TOKEN_BLACKLIST: Dict[str, int] = {}

# Fixed-window rate limiter: key -> (window_start_epoch_sec, count)
_RATE_LIMIT_STATE: Dict[Union[int, str], Tuple[int, int]] = {}

_TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


def reset_in_memory_auth_state() -> None:
    """Reset in-memory auth-related state (blacklist, rate limits).

    Called on app startup so each TestClient context starts clean.
    """
    _TOKEN_BLACKLIST.clear()
    _RATE_LIMIT_STATE.clear()


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return _pwd_context.verify(password, password_hash)
    except ValueError:
        # Malformed or unknown hash format
        return False


def generate_temp_password(length: Optional[int] = None) -> str:
    n = length if length is not None else config.TEMP_PASSWORD_LENGTH
    return "".join(secrets.choice(_TEMP_PASSWORD_ALPHABET) for _ in range(n))


def create_access_token(user: ORMUser, expires_minutes: Optional[int] = None) -> str:
    expire_delta = expires_minutes if expires_minutes is not None else ACCESS_TOKEN_EXPIRE_MINUTES
    now = datetime.now(timezone.utc)
    to_encode: Dict[str, Any] = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "iss": JWT_ISSUER,
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(minutes=expire_delta),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a token; raises JWTError on any failure."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE, issuer=JWT_ISSUER)


def is_token_revoked(payload: Dict[str, Any]) -> bool:
    jti = payload.get("jti")
    return bool(jti) and jti in _TOKEN_BLACKLIST


def _prune_blacklist(now: int) -> None:
    expired = [jti for jti, exp in _TOKEN_BLACKLIST.items() if exp <= now]
    for jti in expired:
        del _TOKEN_BLACKLIST[jti]


def blacklist_token(token: str) -> None:
    try:
        payload = jwt.get_unverified_claims(token)
    except JWTError:
        return
    jti = payload.get("jti")
    if not jti:
        return
    now = int(time.time())
    _prune_blacklist(now)
    try:
        exp = int(payload.get("exp"))
    except (TypeError, ValueError):
        # Without an expiry the entry is kept for the longest token lifetime
        exp = now + ACCESS_TOKEN_EXPIRE_MINUTES * 60
    if exp > now:
        _TOKEN_BLACKLIST[jti] = exp


async def _load_user_from_token(token: str, session: AsyncSession) -> ORMUser:
    try:
        payload = decode_token(token)
        sub = payload.get("sub")
        if sub is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
        user_id = int(sub)
    except (JWTError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")
    if is_token_revoked(payload):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token revoked")

    result = await session.execute(select(ORMUser).where(ORMUser.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Inactive user")
    return user


async def get_current_user(token: str = Depends(oauth2_scheme), session: AsyncSession = Depends(get_async_session)) -> ORMUser:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return await _load_user_from_token(token, session)


async def get_optional_user(
    token: Optional[str] = Depends(_optional_oauth2_scheme),
    session: AsyncSession = Depends(get_async_session),
) -> Optional[ORMUser]:
    if not token:
        return None
    try:
        return await _load_user_from_token(token, session)
    except HTTPException:
        return None


async def require_admin(user: ORMUser = Depends(get_current_user)) -> ORMUser:
    if user.role != ROLE_ADMIN:
        raise admin_required()
    return user


def _prune_rate_limits(window_start: int) -> None:
    stale = [k for k, (start, _) in _RATE_LIMIT_STATE.items() if start < window_start]
    for k in stale:
        del _RATE_LIMIT_STATE[k]


def rate_limit_check(key: Union[int, str]) -> None:
    limit = config.get_rate_limit_per_minute()
    now = int(time.time())
    window_start = now - (now % 60)
    state = _RATE_LIMIT_STATE.get(key)
    if state is None or state[0] != window_start:
        _prune_rate_limits(window_start)
        _RATE_LIMIT_STATE[key] = (window_start, 1)
        return
    count = state[1] + 1
    if count > limit:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
    _RATE_LIMIT_STATE[key] = (window_start, count)


async def rate_limiter_dependency(request: Request) -> None:
    """Per-client limiter applied to API routers, keyed by client address."""
    client = request.client.host if request.client else "unknown"
    rate_limit_check(f"ip:{client}")
