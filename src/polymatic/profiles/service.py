"""Onboarding profile persistence."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import select

from polymatic.db.models import UserProfile

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def get_profile(db: AsyncSession, user_id: int) -> UserProfile | None:
    """Fetch a user's profile, or None if onboarding was never started."""
    result = await db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def upsert_profile(
    db: AsyncSession,
    user_id: int,
    interests: list[dict[str, Any]] | None = None,
    goals: list[str] | None = None,
    time_budget_mins: int | None = None,
    level: str | None = None,
    onboarding_completed: bool | None = None,
) -> UserProfile:
    """
    Create or overwrite a user's profile.

    Unset numeric/text fields fall back to their defaults
    (30 minutes, ``beginner``, not completed).
    """
    now = datetime.now(timezone.utc)
    profile = await get_profile(db, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id, created_at=now)
        db.add(profile)

    profile.interests = interests
    profile.goals = goals
    profile.time_budget_mins = time_budget_mins or 30
    profile.level = level or "beginner"
    profile.onboarding_completed = bool(onboarding_completed)
    profile.updated_at = now

    await db.flush()
    logger.info("profile_saved", user_id=user_id, completed=profile.onboarding_completed)
    return profile


async def transfer_profile(db: AsyncSession, from_user_id: int, to_user_id: int) -> bool:
    """Copy a profile to another user and mark it completed. Returns False if nothing to copy."""
    if from_user_id == to_user_id:
        return False

    source = await get_profile(db, from_user_id)
    if source is None:
        return False

    await upsert_profile(
        db,
        to_user_id,
        interests=source.interests,
        goals=source.goals,
        time_budget_mins=source.time_budget_mins,
        level=source.level,
        onboarding_completed=True,
    )
    return True
