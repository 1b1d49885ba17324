"""Pydantic models for profile endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class InterestSelection(BaseModel):
    category: str
    topics: list[str]


class InterestCategory(BaseModel):
    category: str
    topics: list[str] = Field(..., min_length=1)


class InterestCatalogResponse(BaseModel):
    categories: list[InterestCategory]


class ProfileUpdateRequest(BaseModel):
    """Onboarding answers. Saving them marks onboarding as completed."""

    interests: list[InterestSelection] = Field(..., min_length=1)
    goals: list[str] = []
    time_budget_mins: int = Field(30, ge=10, le=60)


class ProfileResponse(BaseModel):
    user_id: int
    onboarding_completed: bool
    interests: list[InterestSelection] = []
    goals: list[str] = []
    time_budget_mins: int
    level: str
    created_at: datetime
    updated_at: datetime


class OkResponse(BaseModel):
    ok: bool = True
