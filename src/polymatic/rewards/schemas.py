"""Pydantic response models for reward endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class SeriesPoint(BaseModel):
    date: str
    total: int


class RewardsSummaryResponse(BaseModel):
    today: int
    lifetime: int
    month: int
    series: list[SeriesPoint]
    daily_cap: int
    tz: str


class RewardTransactionItem(BaseModel):
    id: str
    created_at: datetime
    amount: int
    kind: str
    reason: str | None = None


class RewardTransactionsResponse(BaseModel):
    items: list[RewardTransactionItem]
    next_cursor: str | None = None


class AccountBonusResponse(BaseModel):
    ok: bool = True
    already_granted: bool = False
    amount: int = 0
