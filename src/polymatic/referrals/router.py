"""Referral API endpoints."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_user
from polymatic.database import get_session
from polymatic.db.models import User
from polymatic.referrals.codes import build_referral_url
from polymatic.referrals.schemas import AttributionResponse, ReferralCodeResponse, ReferralSummaryResponse
from polymatic.referrals.service import (
    attribute_if_present,
    get_or_create_referral_code,
    get_referral_code,
    get_referral_summary,
)

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/referrals", tags=["Referrals"])


def request_origin(request: Request) -> str:
    """Origin the share link should point at: the Origin header, else the request host."""
    origin = request.headers.get("origin")
    if origin:
        return origin
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "0.0.0.0"


@router.post("/code", response_model=ReferralCodeResponse)
async def create_code(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Return the caller's referral code and share link, creating the code on first call."""
    try:
        row = await get_or_create_referral_code(db, user)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e)) from e
    await db.commit()
    return ReferralCodeResponse(code=row.code, url=build_referral_url(request_origin(request), row.code))


@router.get("/summary", response_model=ReferralSummaryResponse)
async def summary(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    stats = await get_referral_summary(db, user.id)
    code_row = await get_referral_code(db, user.id)
    url = build_referral_url(request_origin(request), code_row.code) if code_row else None
    return ReferralSummaryResponse(**stats, url=url)


@router.post("/attribute-if-present", response_model=AttributionResponse, response_model_exclude_none=True)
async def attribute(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Credit the referrer named in the caller's referral cookie, if any."""
    try:
        result = await attribute_if_present(
            db,
            referee=user,
            cookies=request.cookies,
            user_agent=request.headers.get("user-agent"),
            client_ip=client_ip(request),
        )
    except SQLAlchemyError:
        logger.warning("referral_attribution_failed", user_id=user.id, exc_info=True)
        await db.rollback()
        return AttributionResponse(awarded=False)

    body = AttributionResponse(
        awarded=result.awarded,
        reason=result.reason,
        delta=result.delta if result.awarded else None,
    )
    response = JSONResponse(content=body.model_dump(exclude_none=True))
    for name in result.clear_cookies:
        response.delete_cookie(name, path="/")
    return response
