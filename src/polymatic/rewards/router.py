"""Rewards API endpoints."""

from __future__ import annotations

import re

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_regular_user, get_current_user
from polymatic.config import get_settings
from polymatic.database import get_session
from polymatic.db.models import User
from polymatic.rewards.ledger import (
    KIND_ACCOUNT_BONUS,
    build_summary,
    get_transactions_page,
    has_reward_with_reason,
    save_reward_transaction,
)
from polymatic.rewards.schemas import (
    AccountBonusResponse,
    RewardsSummaryResponse,
    RewardTransactionItem,
    RewardTransactionsResponse,
)
from polymatic.rewards.timezones import resolve_timezone

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])

ACCOUNT_BONUS_REASON = "account_created_bonus"

_RANGE_RE = re.compile(r"^(\d{1,3})d$")


def parse_range(value: str | None, default: int = 30) -> int:
    """Parse ``"<N>d"`` into a day count clamped to 1..365."""
    match = _RANGE_RE.match(value or "")
    if not match:
        return default
    return max(1, min(365, int(match.group(1))))


@router.get("/summary", response_model=RewardsSummaryResponse)
async def rewards_summary(
    range_: str = Query("30d", alias="range"),
    tz: str | None = Query(None),
    x_timezone: str | None = Header(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Totals and a per-day series, bucketed in the caller's timezone."""
    settings = get_settings()
    summary = await build_summary(
        db,
        user.id,
        days=parse_range(range_),
        tz=resolve_timezone(x_timezone, tz),
        daily_cap=settings.rewards_daily_cap,
    )
    return RewardsSummaryResponse(**summary)


@router.get("/transactions", response_model=RewardTransactionsResponse)
async def rewards_transactions(
    limit: int = Query(20),
    cursor: str | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Ledger rows, newest first, with keyset pagination."""
    try:
        rows, next_cursor = await get_transactions_page(db, user.id, limit=limit, cursor=cursor)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return RewardTransactionsResponse(
        items=[
            RewardTransactionItem(
                id=r.id,
                created_at=r.created_at,
                amount=r.amount,
                kind=r.kind,
                reason=r.reason,
            )
            for r in rows
        ],
        next_cursor=next_cursor,
    )


@router.post("/account-bonus", response_model=AccountBonusResponse)
async def account_bonus(
    user: User = Depends(get_current_regular_user),
    db: AsyncSession = Depends(get_session),
):
    """Grant the one-time account-creation bonus. Repeated calls are no-ops."""
    if await has_reward_with_reason(db, user.id, ACCOUNT_BONUS_REASON):
        return AccountBonusResponse(already_granted=True)

    amount = get_settings().account_bonus_amount
    await save_reward_transaction(
        db,
        user.id,
        amount,
        kind=KIND_ACCOUNT_BONUS,
        reason=ACCOUNT_BONUS_REASON,
    )
    await db.commit()
    return AccountBonusResponse(amount=amount)
