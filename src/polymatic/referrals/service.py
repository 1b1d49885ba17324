"""
Referral attribution and the referrer signup bonus.

A visitor arriving through a share link carries the referrer's code in a
cookie. Once the visitor has an account, the code is resolved and recorded
as an attribution (one per referee), and the referrer is credited once per
attribution, subject to a per-referrer daily cap.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from urllib.parse import unquote

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from polymatic.config import get_settings
from polymatic.db.models import ReferralAttribution, ReferralCode, RewardTransaction, User
from polymatic.referrals.codes import generate_unique_referral_code, normalize_referral_code
from polymatic.rewards.ledger import (
    KIND_REFERRAL_BONUS,
    get_today_total_by_kind,
    has_referral_award_for_attribution,
    save_reward_transaction,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

REF_COOKIE = "poly_ref"
UTM_COOKIES = {
    "utm_source": "poly_utm_source",
    "utm_medium": "poly_utm_medium",
    "utm_campaign": "poly_utm_campaign",
}
REFERRAL_COOKIES = (REF_COOKIE, *UTM_COOKIES.values())

_BOT_UA_RE = re.compile(r"bot|crawler|spider")


@dataclass
class AttributionResult:
    awarded: bool
    reason: str | None = None
    delta: int = 0
    clear_cookies: list[str] = field(default_factory=list)


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def hash_ip(ip: str) -> str:
    """Salted hash of the client IP. Raw addresses are never stored."""
    return sha256_hex(f"{ip}|{get_settings().referral_ip_hash_secret}")


def is_bot_user_agent(user_agent: str | None) -> bool:
    return bool(_BOT_UA_RE.search((user_agent or "").lower()))


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------


async def get_referral_code(db: AsyncSession, user_id: int) -> ReferralCode | None:
    result = await db.execute(select(ReferralCode).where(ReferralCode.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_referral_code(db: AsyncSession, user: User) -> ReferralCode:
    """
    Return the user's referral code, creating it on first use.

    Raises:
        PermissionError: If the user is a guest.
    """
    if user.is_guest:
        msg = "Guests cannot generate referral links"
        raise PermissionError(msg)

    existing = await get_referral_code(db, user.id)
    if existing is not None:
        return existing

    row = ReferralCode(
        user_id=user.id,
        code=await generate_unique_referral_code(db),
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    await db.flush()
    logger.info("referral_code_created", user_id=user.id, code=row.code)
    return row


# ---------------------------------------------------------------------------
# Attribution
# ---------------------------------------------------------------------------


async def _get_attribution_for_referee(db: AsyncSession, referee_user_id: int) -> ReferralAttribution | None:
    result = await db.execute(
        select(ReferralAttribution).where(ReferralAttribution.referee_user_id == referee_user_id)
    )
    return result.scalar_one_or_none()


async def upsert_attribution(
    db: AsyncSession,
    *,
    referrer_user_id: int,
    referee_user_id: int,
    utm_source: str | None,
    utm_medium: str | None,
    utm_campaign: str | None,
    ip_hash: str | None,
    ua_hash: str | None,
    source: str = "cookie",
) -> ReferralAttribution:
    """Record the referrer of a referee. An existing attribution is returned unchanged."""
    existing = await _get_attribution_for_referee(db, referee_user_id)
    if existing is not None:
        return existing

    row = ReferralAttribution(
        referrer_user_id=referrer_user_id,
        referee_user_id=referee_user_id,
        utm_source=utm_source,
        utm_medium=utm_medium,
        utm_campaign=utm_campaign,
        source=source,
        ip_hash=ip_hash,
        ua_hash=ua_hash,
        created_at=datetime.now(timezone.utc),
    )
    db.add(row)
    try:
        await db.commit()
    except IntegrityError:
        # Concurrent request attributed this referee first
        await db.rollback()
        existing = await _get_attribution_for_referee(db, referee_user_id)
        if existing is None:
            raise
        return existing

    logger.info(
        "referral_attributed",
        referrer_user_id=referrer_user_id,
        referee_user_id=referee_user_id,
        utm_source=utm_source,
    )
    return row


async def attribute_if_present(
    db: AsyncSession,
    *,
    referee: User,
    cookies: Mapping[str, str],
    user_agent: str | None,
    client_ip: str | None,
) -> AttributionResult:
    """
    Attribute the current user to the referrer named in their cookies and
    credit the referrer's signup bonus.

    Each early exit carries a reason: ``invalid_code``, ``self``, ``bot`` or
    ``daily_cap``. A missing cookie or an already-credited attribution
    returns ``awarded=False`` without a reason.
    """
    settings = get_settings()
    if not settings.referrals_enabled:
        return AttributionResult(awarded=False)

    raw_code = cookies.get(REF_COOKIE)
    if not raw_code:
        return AttributionResult(awarded=False)

    code = normalize_referral_code(unquote(raw_code))
    result = await db.execute(select(ReferralCode).where(ReferralCode.code == code))
    code_row = result.scalar_one_or_none()
    if code_row is None:
        return AttributionResult(awarded=False, reason="invalid_code")

    referrer_user_id = code_row.user_id
    if referrer_user_id == referee.id:
        return AttributionResult(awarded=False, reason="self")

    ua = (user_agent or "").lower()
    if is_bot_user_agent(ua):
        return AttributionResult(awarded=False, reason="bot")

    defaults = {
        "utm_source": settings.referral_utm_source,
        "utm_medium": settings.referral_utm_medium,
        "utm_campaign": settings.referral_utm_campaign,
    }
    utm = {key: unquote(cookies.get(cookie) or defaults[key]) for key, cookie in UTM_COOKIES.items()}

    attribution = await upsert_attribution(
        db,
        referrer_user_id=referrer_user_id,
        referee_user_id=referee.id,
        ip_hash=hash_ip(client_ip or "0.0.0.0"),
        ua_hash=sha256_hex(ua),
        **utm,
    )

    if await has_referral_award_for_attribution(db, attribution.id):
        return AttributionResult(awarded=False)

    bonus = settings.referral_signup_bonus_referrer
    today = await get_today_total_by_kind(db, referrer_user_id, KIND_REFERRAL_BONUS)
    if today + bonus > settings.referrals_signup_daily_cap_per_referrer:
        logger.info("referral_bonus_capped", referrer_user_id=referrer_user_id, today=today)
        return AttributionResult(awarded=False, reason="daily_cap")

    # Rollback expires loaded rows, so keep plain ids for logging
    attribution_id = attribution.id
    referee_user_id = referee.id
    try:
        await save_reward_transaction(
            db,
            referrer_user_id,
            bonus,
            kind=KIND_REFERRAL_BONUS,
            reason=f"Referral signup bonus for {referee_user_id}",
            referral_attribution_id=attribution_id,
        )
        attribution.signup_awarded_at = datetime.now(timezone.utc)
        await db.commit()
    except IntegrityError:
        # Unique (referral_attribution_id, kind): a concurrent request already credited it
        await db.rollback()
        logger.info("referral_bonus_duplicate", attribution_id=attribution_id)
        return AttributionResult(awarded=False)

    logger.info(
        "referral_bonus_awarded",
        referrer_user_id=referrer_user_id,
        referee_user_id=referee_user_id,
        bonus=bonus,
    )
    return AttributionResult(awarded=True, delta=bonus, clear_cookies=list(REFERRAL_COOKIES))


async def get_referral_summary(db: AsyncSession, user_id: int) -> dict[str, int]:
    """Number of credited signups and total referral points for a referrer."""
    signups = await db.execute(
        select(func.count())
        .select_from(ReferralAttribution)
        .where(ReferralAttribution.referrer_user_id == user_id)
        .where(ReferralAttribution.signup_awarded_at.is_not(None))
    )
    points = await db.execute(
        select(func.coalesce(func.sum(RewardTransaction.amount), 0))
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.kind == KIND_REFERRAL_BONUS)
    )
    return {
        "signups_awarded": int(signups.scalar_one()),
        "total_referral_points": int(points.scalar_one()),
    }
