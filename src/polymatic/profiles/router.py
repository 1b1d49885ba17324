"""Profile API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_user
from polymatic.database import get_session
from polymatic.db.models import User, UserProfile
from polymatic.profiles.interests import INTERESTS
from polymatic.profiles.schemas import (
    InterestCatalogResponse,
    InterestCategory,
    OkResponse,
    ProfileResponse,
    ProfileUpdateRequest,
)
from polymatic.profiles.service import get_profile, upsert_profile

router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])


def _profile_response(profile: UserProfile) -> ProfileResponse:
    return ProfileResponse(
        user_id=profile.user_id,
        onboarding_completed=profile.onboarding_completed,
        interests=profile.interests or [],
        goals=profile.goals or [],
        time_budget_mins=profile.time_budget_mins,
        level=profile.level,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


@router.get("/interests", response_model=InterestCatalogResponse)
async def list_interests():
    """The catalog shown during onboarding."""
    return InterestCatalogResponse(
        categories=[InterestCategory(**entry) for entry in INTERESTS],
    )


@router.get("", response_model=ProfileResponse | None)
async def read_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    profile = await get_profile(db, user.id)
    if profile is None:
        return None
    return _profile_response(profile)


@router.post("", response_model=OkResponse)
async def save_profile(
    body: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Save onboarding answers and mark onboarding completed."""
    await upsert_profile(
        db,
        user.id,
        interests=[i.model_dump() for i in body.interests],
        goals=body.goals,
        time_budget_mins=body.time_budget_mins,
        onboarding_completed=True,
    )
    await db.commit()
    return OkResponse()
