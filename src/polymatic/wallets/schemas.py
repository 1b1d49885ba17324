"""Request/response schemas for wallet endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field


class StartVerificationRequest(BaseModel):
    address: str = Field(..., max_length=64)


class StartVerificationResponse(BaseModel):
    nonce: str
    expires_at: datetime


class VerifyRequest(BaseModel):
    address: str = Field(..., max_length=64)
    signature: str = Field(..., max_length=128)


class SetPrimaryRequest(BaseModel):
    id: uuid.UUID


class WalletResponse(BaseModel):
    id: str
    chain: str
    address: str
    label: str | None = None
    is_primary: bool
    is_verified: bool
    created_at: datetime
    updated_at: datetime
    last_connected_at: datetime | None = None


class WalletListResponse(BaseModel):
    items: list[WalletResponse]


class OkResponse(BaseModel):
    ok: bool = True
