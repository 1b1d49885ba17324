"""Authentication endpoints: guest sessions, email registration and login."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_user, get_optional_user
from polymatic.auth.jwt import create_access_token
from polymatic.auth.password import PasswordStrengthError
from polymatic.auth.schemas import LoginRequest, RegisterRequest, TokenResponse, UserResponse
from polymatic.auth.service import authenticate_user, create_guest_user, register_user
from polymatic.config import get_settings
from polymatic.database import get_session
from polymatic.db.models import User

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/auth", tags=["Authentication"])


def _user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        user_type=user.user_type,
        created_at=user.created_at,
    )


def _issue_token(user: User) -> TokenResponse:
    settings = get_settings()
    return TokenResponse(
        access_token=create_access_token(user.id, user.email, user.user_type),  # type: ignore[arg-type]
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=_user_response(user),
    )


@router.post("/guest", response_model=TokenResponse, status_code=201)
async def guest(db: AsyncSession = Depends(get_session)) -> TokenResponse:
    """Create a guest account and sign it in."""
    user = await create_guest_user(db)
    await db.commit()
    return _issue_token(user)


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    current: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Register with email + password, carrying over the current guest's data."""
    try:
        user = await register_user(db, body.email, body.password, guest=current)
    except PasswordStrengthError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await db.commit()
    return _issue_token(user)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    db: AsyncSession = Depends(get_session),
) -> TokenResponse:
    """Sign in with email + password."""
    try:
        user = await authenticate_user(db, body.email, body.password)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e
    await db.commit()
    return _issue_token(user)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    """Return the signed-in account."""
    return _user_response(user)
