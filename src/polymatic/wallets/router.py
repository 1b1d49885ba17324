"""Wallet API endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_user
from polymatic.database import get_session
from polymatic.db.models import User, UserWallet
from polymatic.wallets.schemas import (
    OkResponse,
    SetPrimaryRequest,
    StartVerificationRequest,
    StartVerificationResponse,
    VerifyRequest,
    WalletListResponse,
    WalletResponse,
)
from polymatic.wallets.service import (
    delete_wallet,
    list_wallets,
    set_primary_wallet,
    start_wallet_verification,
    verify_wallet_signature,
)

router = APIRouter(prefix="/api/v1/wallets", tags=["Wallets"])


def _wallet_response(w: UserWallet) -> WalletResponse:
    return WalletResponse(
        id=w.id,
        chain=w.chain,
        address=w.address,
        label=w.label,
        is_primary=w.is_primary,
        is_verified=w.is_verified,
        created_at=w.created_at,
        updated_at=w.updated_at,
        last_connected_at=w.last_connected_at,
    )


@router.get("", response_model=WalletListResponse)
async def get_wallets(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    wallets = await list_wallets(db, user.id)
    return WalletListResponse(items=[_wallet_response(w) for w in wallets])


@router.post("/start", response_model=StartVerificationResponse)
async def start_verification(
    body: StartVerificationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Issue the challenge the wallet has to sign."""
    try:
        nonce, expires_at = await start_wallet_verification(db, user.id, body.address)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return StartVerificationResponse(nonce=nonce, expires_at=expires_at)


@router.post("/verify", response_model=OkResponse)
async def verify(
    body: VerifyRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Verify the signed challenge and link the wallet as primary."""
    try:
        await verify_wallet_signature(db, user.id, body.address, body.signature)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    await db.commit()
    return OkResponse()


@router.post("/primary", response_model=OkResponse)
async def make_primary(
    body: SetPrimaryRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        await set_primary_wallet(db, user.id, str(body.id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return OkResponse()


@router.delete("/{wallet_id}", response_model=OkResponse)
async def remove_wallet(
    wallet_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        await delete_wallet(db, user.id, str(wallet_id))
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    await db.commit()
    return OkResponse()
