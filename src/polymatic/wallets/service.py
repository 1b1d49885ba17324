"""Wallet linking: nonce challenges, signature verification and wallet management."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import delete, select, update

from polymatic.config import get_settings
from polymatic.db.models import UserWallet, WalletVerificationNonce
from polymatic.wallets.verification import build_challenge, validate_solana_address, verify_signature

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

CHAIN_SOLANA = "solana"


async def list_wallets(db: AsyncSession, user_id: int) -> list[UserWallet]:
    """All wallets of a user, primary first, then newest first."""
    result = await db.execute(
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .order_by(UserWallet.is_primary.desc(), UserWallet.created_at.desc())
    )
    return list(result.scalars().all())


async def start_wallet_verification(
    db: AsyncSession,
    user_id: int,
    address: str,
) -> tuple[str, datetime]:
    """
    Issue a new challenge for (user, address), replacing any earlier one.

    Returns:
        Tuple of (nonce text, expiry).

    Raises:
        ValueError: If the address is invalid.
    """
    validate_solana_address(address)
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=settings.wallet_nonce_ttl_seconds)
    nonce = build_challenge(address, settings.wallet_nonce_ttl_seconds)

    await db.execute(
        delete(WalletVerificationNonce)
        .where(WalletVerificationNonce.user_id == user_id)
        .where(WalletVerificationNonce.address == address)
    )
    db.add(WalletVerificationNonce(
        user_id=user_id,
        address=address,
        nonce=nonce,
        expires_at=expires_at,
        created_at=now,
    ))
    await db.flush()
    logger.info("wallet_verification_started", user_id=user_id, address=address)
    return nonce, expires_at


async def upsert_wallet(
    db: AsyncSession,
    user_id: int,
    address: str,
    *,
    label: str | None = None,
    is_verified: bool = False,
    make_primary: bool = False,
    last_connected_at: datetime | None = None,
) -> UserWallet:
    """Insert or update the (user, solana, address) wallet. Making it primary demotes the others."""
    now = datetime.now(timezone.utc)
    if make_primary:
        await db.execute(
            update(UserWallet).where(UserWallet.user_id == user_id).values(is_primary=False)
        )

    result = await db.execute(
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .where(UserWallet.chain == CHAIN_SOLANA)
        .where(UserWallet.address == address)
    )
    wallet = result.scalar_one_or_none()
    if wallet is None:
        wallet = UserWallet(user_id=user_id, chain=CHAIN_SOLANA, address=address, created_at=now)
        db.add(wallet)

    wallet.label = label
    wallet.is_verified = is_verified
    wallet.is_primary = make_primary
    wallet.updated_at = now
    wallet.last_connected_at = last_connected_at
    await db.flush()
    return wallet


async def verify_wallet_signature(
    db: AsyncSession,
    user_id: int,
    address: str,
    signature_b58: str,
) -> UserWallet:
    """
    Check the signature over the latest challenge and link the wallet.

    On success the wallet is stored verified and primary, and the challenge is consumed.

    Raises:
        ValueError: If there is no challenge, it expired, or the signature is invalid.
    """
    result = await db.execute(
        select(WalletVerificationNonce)
        .where(WalletVerificationNonce.user_id == user_id)
        .where(WalletVerificationNonce.address == address)
        .order_by(WalletVerificationNonce.created_at.desc())
        .limit(1)
    )
    row = result.scalar_one_or_none()
    if row is None:
        msg = "No nonce found for verification"
        raise ValueError(msg)

    now = datetime.now(timezone.utc)
    if row.expires_at < now:
        msg = "Nonce expired"
        raise ValueError(msg)

    if not verify_signature(address, row.nonce, signature_b58):
        logger.warning("wallet_signature_invalid", user_id=user_id, address=address)
        msg = "Invalid signature"
        raise ValueError(msg)

    wallet = await upsert_wallet(
        db,
        user_id,
        address,
        is_verified=True,
        make_primary=True,
        last_connected_at=now,
    )
    await db.execute(
        delete(WalletVerificationNonce)
        .where(WalletVerificationNonce.user_id == user_id)
        .where(WalletVerificationNonce.address == address)
    )
    await db.flush()
    logger.info("wallet_verified", user_id=user_id, address=address, wallet_id=wallet.id)
    return wallet


async def _get_owned_wallet(db: AsyncSession, user_id: int, wallet_id: str) -> UserWallet:
    result = await db.execute(
        select(UserWallet)
        .where(UserWallet.user_id == user_id)
        .where(UserWallet.id == wallet_id)
    )
    wallet = result.scalar_one_or_none()
    if wallet is None:
        msg = "Wallet not found"
        raise LookupError(msg)
    return wallet


async def set_primary_wallet(db: AsyncSession, user_id: int, wallet_id: str) -> UserWallet:
    """
    Make one of the user's wallets primary.

    Raises:
        LookupError: If the wallet does not exist or belongs to someone else.
    """
    wallet = await _get_owned_wallet(db, user_id, wallet_id)
    await db.execute(
        update(UserWallet).where(UserWallet.user_id == user_id).values(is_primary=False)
    )
    wallet.is_primary = True
    wallet.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return wallet


async def delete_wallet(db: AsyncSession, user_id: int, wallet_id: str) -> None:
    """
    Unlink a wallet.

    Raises:
        LookupError: If the wallet does not exist or belongs to someone else.
    """
    wallet = await _get_owned_wallet(db, user_id, wallet_id)
    await db.delete(wallet)
    await db.flush()
    logger.info("wallet_deleted", user_id=user_id, wallet_id=wallet_id)


async def transfer_wallets(db: AsyncSession, from_user_id: int, to_user_id: int) -> int:
    """Reassign every wallet of one user to another. Returns rows moved."""
    if from_user_id == to_user_id:
        return 0
    result = await db.execute(
        update(UserWallet).where(UserWallet.user_id == from_user_id).values(user_id=to_user_id)
    )
    return result.rowcount or 0
