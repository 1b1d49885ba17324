"""Pydantic response models for referral endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class ReferralCodeResponse(BaseModel):
    code: str
    url: str


class ReferralSummaryResponse(BaseModel):
    signups_awarded: int
    total_referral_points: int
    url: str | None = None


class AttributionResponse(BaseModel):
    awarded: bool
    reason: str | None = None
    delta: int | None = None
