"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.jwt import verify_token
from polymatic.auth.service import get_user_by_id
from polymatic.database import get_session
from polymatic.db.models import User

_bearer = HTTPBearer()
_optional_bearer = HTTPBearer(auto_error=False)


async def _resolve_user(db: AsyncSession, token: str) -> User:
    try:
        payload = verify_token(token)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    user = await get_user_by_id(db, int(payload["sub"]))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """Extract and verify the bearer token, return the User (guest or regular)."""
    return await _resolve_user(db, credentials.credentials)


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_optional_bearer),
    db: AsyncSession = Depends(get_session),
) -> User | None:
    """Like get_current_user, but anonymous callers get None instead of 401."""
    if credentials is None:
        return None
    try:
        return await _resolve_user(db, credentials.credentials)
    except HTTPException:
        return None


async def get_current_regular_user(
    user: User = Depends(get_current_user),
) -> User:
    """Same as get_current_user but rejects guest sessions."""
    if user.is_guest:
        raise HTTPException(status_code=403, detail="Guests cannot use this endpoint")
    return user
