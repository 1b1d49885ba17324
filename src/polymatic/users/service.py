"""Account-level operations that span several domains."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from polymatic.chat.service import transfer_chats
from polymatic.profiles.service import transfer_profile
from polymatic.rewards.ledger import transfer_rewards
from polymatic.wallets.service import transfer_wallets

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


async def merge_guest_into(db: AsyncSession, guest_id: int, user_id: int) -> None:
    """
    Move a guest's data to a newly registered account.

    The profile is copied (and marked onboarded); chats, reward history and
    wallets change owner. The guest row itself is left in place.
    """
    if guest_id == user_id:
        return

    profile_moved = await transfer_profile(db, guest_id, user_id)
    chats = await transfer_chats(db, guest_id, user_id)
    rewards = await transfer_rewards(db, guest_id, user_id)
    wallets = await transfer_wallets(db, guest_id, user_id)
    await db.flush()

    logger.info(
        "guest_merged",
        guest_id=guest_id,
        user_id=user_id,
        profile=profile_moved,
        chats=chats,
        rewards=rewards,
        wallets=wallets,
    )
