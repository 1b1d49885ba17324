"""Reward ledger: append-only point transactions and the totals derived from them."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update

from polymatic.db.models import RewardTransaction
from polymatic.rewards.pagination import apply_cursor, encode_cursor
from polymatic.rewards.timezones import day_key, day_keys_back, local_day_start, today_key

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

KIND_LEARNING = "learning"
KIND_REFERRAL_BONUS = "referral_signup_referrer_bonus"
KIND_ACCOUNT_BONUS = "account_bonus"

MAX_PAGE_SIZE = 50


async def save_reward_transaction(
    db: AsyncSession,
    user_id: int,
    amount: int,
    kind: str = KIND_LEARNING,
    chat_id: str | None = None,
    message_id: str | None = None,
    rubric: dict[str, Any] | None = None,
    reason: str | None = None,
    referral_attribution_id: str | None = None,
) -> RewardTransaction:
    """Append one row to the ledger."""
    tx = RewardTransaction(
        user_id=user_id,
        amount=amount,
        kind=kind,
        chat_id=chat_id,
        message_id=message_id,
        rubric=rubric,
        reason=reason,
        referral_attribution_id=referral_attribution_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(tx)
    await db.flush()
    logger.info("reward_granted", user_id=user_id, amount=amount, kind=kind, tx_id=tx.id)
    return tx


def _utc_day_bounds(now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


async def get_today_total(db: AsyncSession, user_id: int) -> int:
    """Sum of today's grants, where today is the current UTC day."""
    start, end = _utc_day_bounds()
    result = await db.execute(
        select(func.coalesce(func.sum(RewardTransaction.amount), 0))
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.created_at >= start)
        .where(RewardTransaction.created_at < end)
    )
    return int(result.scalar_one())


async def get_today_total_by_kind(db: AsyncSession, user_id: int, kind: str) -> int:
    """Same as get_today_total, restricted to one transaction kind."""
    start, end = _utc_day_bounds()
    result = await db.execute(
        select(func.coalesce(func.sum(RewardTransaction.amount), 0))
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.kind == kind)
        .where(RewardTransaction.created_at >= start)
        .where(RewardTransaction.created_at < end)
    )
    return int(result.scalar_one())


async def get_lifetime_total(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(RewardTransaction.amount), 0))
        .where(RewardTransaction.user_id == user_id)
    )
    return int(result.scalar_one())


async def get_rows_in_range(
    db: AsyncSession,
    user_id: int,
    start: datetime,
    end: datetime,
) -> list[tuple[int, datetime]]:
    """(amount, created_at) pairs in [start, end], oldest first."""
    result = await db.execute(
        select(RewardTransaction.amount, RewardTransaction.created_at)
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.created_at >= start)
        .where(RewardTransaction.created_at <= end)
        .order_by(RewardTransaction.created_at.asc())
    )
    return [(row.amount, row.created_at) for row in result]


async def get_today_total_in_tz(db: AsyncSession, user_id: int, tz: str) -> int:
    """Today's total where today is the local calendar day in ``tz``.

    Only the last 48 hours are scanned, which always covers the local day.
    """
    now = datetime.now(timezone.utc)
    rows = await get_rows_in_range(db, user_id, now - timedelta(days=2), now)
    key = today_key(tz, now)
    return sum(amount for amount, created_at in rows if day_key(created_at, tz) == key)


async def has_reward_with_reason(db: AsyncSession, user_id: int, reason: str) -> bool:
    result = await db.execute(
        select(RewardTransaction.id)
        .where(RewardTransaction.user_id == user_id)
        .where(RewardTransaction.reason == reason)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def has_referral_award_for_attribution(db: AsyncSession, attribution_id: str) -> bool:
    result = await db.execute(
        select(RewardTransaction.id)
        .where(RewardTransaction.referral_attribution_id == attribution_id)
        .where(RewardTransaction.kind == KIND_REFERRAL_BONUS)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_transactions_page(
    db: AsyncSession,
    user_id: int,
    limit: int = 20,
    cursor: str | None = None,
) -> tuple[list[RewardTransaction], str | None]:
    """Fetch a page of ledger rows, newest first.

    Raises:
        ValueError: If the cursor is malformed.
    """
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    query = (
        select(RewardTransaction)
        .where(RewardTransaction.user_id == user_id)
        .order_by(RewardTransaction.created_at.desc(), RewardTransaction.id.desc())
    )
    query = apply_cursor(query, cursor)

    # Fetch one extra to detect has_more
    result = await db.execute(query.limit(limit + 1))
    rows = list(result.scalars().all())

    items = rows[:limit]
    next_cursor = None
    if len(rows) > limit and items:
        last = items[-1]
        next_cursor = encode_cursor(last.created_at, last.id)
    return items, next_cursor


async def build_summary(
    db: AsyncSession,
    user_id: int,
    days: int,
    tz: str,
    daily_cap: int,
) -> dict[str, Any]:
    """
    Dashboard summary over the last ``days`` local days.

    ``today`` and ``series`` are bucketed in ``tz``; ``month`` is the sum of
    the series and ``lifetime`` the sum of every row.
    """
    now = datetime.now(timezone.utc)
    keys = day_keys_back(days, tz, now)
    buckets = dict.fromkeys(keys, 0)

    rows = await get_rows_in_range(db, user_id, local_day_start(days - 1, tz, now), now)
    for amount, created_at in rows:
        key = day_key(created_at, tz)
        if key in buckets:
            buckets[key] += amount

    return {
        "today": buckets.get(today_key(tz, now), 0),
        "lifetime": await get_lifetime_total(db, user_id),
        "month": sum(buckets.values()),
        "series": [{"date": k, "total": v} for k, v in buckets.items()],
        "daily_cap": daily_cap,
        "tz": tz,
    }


async def transfer_rewards(db: AsyncSession, from_user_id: int, to_user_id: int) -> int:
    """Reassign every ledger row of one user to another. Returns rows moved."""
    if from_user_id == to_user_id:
        return 0
    result = await db.execute(
        update(RewardTransaction)
        .where(RewardTransaction.user_id == from_user_id)
        .values(user_id=to_user_id)
    )
    return result.rowcount or 0
