"""ORM models for accounts, chat, rewards, referrals and wallets."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from polymatic.db.base import Base, BigIntPK, JSONType, UTCDateTime, UUIDString


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Registered or guest account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(256), nullable=True)
    user_type: Mapped[str] = mapped_column(String(16), nullable=False, default="regular")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    profile: Mapped[UserProfile | None] = relationship("UserProfile", back_populates="user", uselist=False)

    @property
    def is_guest(self) -> bool:
        return self.user_type == "guest"


class UserProfile(Base):
    """Onboarding answers, keyed 1:1 to a user."""

    __tablename__ = "user_profiles"

    user_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    interests: Mapped[list[dict[str, Any]] | None] = mapped_column(JSONType, nullable=True)
    goals: Mapped[list[str] | None] = mapped_column(JSONType, nullable=True)
    time_budget_mins: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    level: Mapped[str] = mapped_column(String(32), default="beginner", nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="profile")


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class Chat(Base):
    """A conversation owned by a user. The id is chosen by the client."""

    __tablename__ = "chats"

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    visibility: Mapped[str] = mapped_column(String(16), default="private", nullable=False)
    last_context: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    messages: Mapped[list[Message]] = relationship(
        "Message", back_populates="chat", cascade="all, delete-orphan", passive_deletes=True
    )


class Message(Base):
    """One turn of a chat, stored as UI parts."""

    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chat_created", "chat_id", "created_at"),)

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    chat_id: Mapped[str] = mapped_column(UUIDString, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    parts: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    chat: Mapped[Chat] = relationship("Chat", back_populates="messages")


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


class RewardTransaction(Base):
    """Append-only points ledger. Balance is the sum of amounts over a window."""

    __tablename__ = "reward_transactions"
    __table_args__ = (
        UniqueConstraint("referral_attribution_id", "kind", name="uq_reward_tx_attribution_kind"),
        Index("ix_reward_tx_user_created", "user_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chat_id: Mapped[str | None] = mapped_column(
        UUIDString, ForeignKey("chats.id", ondelete="SET NULL"), nullable=True
    )
    message_id: Mapped[str | None] = mapped_column(UUIDString, nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(48), nullable=False, default="learning")
    rubric: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    referral_attribution_id: Mapped[str | None] = mapped_column(
        UUIDString, ForeignKey("referral_attributions.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class ReferralCode(Base):
    """One shareable code per user."""

    __tablename__ = "referral_codes"

    user_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class ReferralAttribution(Base):
    """Referrer -> referee link. At most one per referee."""

    __tablename__ = "referral_attributions"

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    referrer_user_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    referee_user_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    utm_source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    utm_medium: Mapped[str | None] = mapped_column(String(32), nullable=True)
    utm_campaign: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    ip_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    ua_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    signup_awarded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


# ---------------------------------------------------------------------------
# Wallets
# ---------------------------------------------------------------------------


class UserWallet(Base):
    """A payout address linked to a user."""

    __tablename__ = "user_wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "chain", "address", name="uq_user_wallets_user_chain_address"),
    )

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chain: Mapped[str] = mapped_column(String(16), nullable=False, default="solana")
    address: Mapped[str] = mapped_column(Text, nullable=False)
    label: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    last_connected_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)


class WalletVerificationNonce(Base):
    """Short-lived challenge a wallet must sign to prove ownership."""

    __tablename__ = "wallet_verification_nonces"
    __table_args__ = (Index("ix_wallet_nonces_user_address", "user_id", "address"),)

    id: Mapped[str] = mapped_column(UUIDString, primary_key=True, default=_uuid)
    user_id: Mapped[int] = mapped_column(BigIntPK, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    nonce: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
