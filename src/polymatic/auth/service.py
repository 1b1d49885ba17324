"""
Authentication business logic.

Handles guest creation, email registration (with guest carry-over) and login.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import func, select

from polymatic.auth.password import (
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)
from polymatic.db.models import User
from polymatic.users.service import merge_guest_into

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

GUEST_EMAIL_RE = re.compile(r"^guest-\d+$")


# ---------------------------------------------------------------------------
# User queries
# ---------------------------------------------------------------------------


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by ID."""
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email (case-insensitive)."""
    result = await db.execute(select(User).where(func.lower(User.email) == email.lower()))
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Guests
# ---------------------------------------------------------------------------


def _guest_email() -> str:
    return f"guest-{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


async def create_guest_user(db: AsyncSession) -> User:
    """Create a credential-less guest account."""
    user = User(
        email=_guest_email(),
        password_hash=None,
        user_type="guest",
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, method="guest")
    return user


# ---------------------------------------------------------------------------
# Registration / login
# ---------------------------------------------------------------------------


async def register_user(
    db: AsyncSession,
    email: str,
    password: str,
    guest: User | None = None,
) -> User:
    """
    Register a new user with email + password.

    When the caller is currently signed in as a guest, the guest's profile,
    chats, rewards and wallets are moved to the new account.

    Raises:
        PasswordStrengthError: If the password is out of bounds.
        ValueError: If the email is reserved or already registered.
    """
    validate_password_strength(password)

    email = email.lower().strip()
    if GUEST_EMAIL_RE.match(email):
        msg = "Email is reserved"
        raise ValueError(msg)

    if await get_user_by_email(db, email) is not None:
        msg = "Email already registered"
        raise ValueError(msg)

    user = User(
        email=email,
        password_hash=hash_password(password),
        user_type="regular",
        created_at=datetime.now(timezone.utc),
    )
    db.add(user)
    await db.flush()
    logger.info("user_created", user_id=user.id, method="email")

    if guest is not None and guest.is_guest:
        try:
            async with db.begin_nested():
                await merge_guest_into(db, guest.id, user.id)
        except Exception:
            logger.warning("guest_merge_failed", guest_id=guest.id, user_id=user.id, exc_info=True)

    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    """
    Authenticate a user with email + password.

    Raises:
        ValueError: If credentials are invalid.
    """
    user = await get_user_by_email(db, email)
    if user is None or user.is_guest or not user.password_hash:
        msg = "Invalid email or password"
        raise ValueError(msg)

    if not verify_password(password, user.password_hash):
        msg = "Invalid email or password"
        raise ValueError(msg)

    if check_needs_rehash(user.password_hash):
        user.password_hash = hash_password(password)
        await db.flush()
        logger.info("password_rehashed", user_id=user.id)

    return user
