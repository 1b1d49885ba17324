"""Referral code generation.

Codes are drawn from an alphabet without look-alike characters (no I, O,
0 or 1) using a cryptographic random source, and stored lowercased.
"""

from __future__ import annotations

import secrets
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.config import get_settings
from polymatic.db.models import ReferralCode

REFERRAL_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def generate_referral_code(length: int | None = None) -> str:
    """Generate a random human-safe referral code."""
    length = length or get_settings().referral_code_length
    return "".join(secrets.choice(REFERRAL_ALPHABET) for _ in range(length)).lower()


def normalize_referral_code(code: str) -> str:
    """Normalize a code for lookup (codes are stored lowercased)."""
    return code.strip().lower()


async def generate_unique_referral_code(db: AsyncSession) -> str:
    """Generate a code that doesn't already exist in the database."""
    for _ in range(10):
        code = generate_referral_code()
        existing = await db.execute(select(ReferralCode).where(ReferralCode.code == code))
        if not existing.scalar_one_or_none():
            return code
    raise RuntimeError("Failed to generate unique referral code after 10 attempts")


def build_referral_url(origin: str, code: str) -> str:
    """Share link: the site root with ``ref`` and the default UTM parameters."""
    settings = get_settings()
    query = urlencode({
        "ref": code,
        "utm_source": settings.referral_utm_source,
        "utm_medium": settings.referral_utm_medium,
        "utm_campaign": settings.referral_utm_campaign,
    })
    return f"{origin.rstrip('/')}/?{query}"
