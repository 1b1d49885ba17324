"""Chat and message persistence."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import delete, func, select, update

from polymatic.db.models import Chat, Message

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


def text_from_parts(parts: list[dict[str, Any]] | None) -> str:
    """Join the text parts of a UI message."""
    texts = [p.get("text", "") for p in parts or [] if p.get("type") == "text"]
    return "\n".join(t for t in texts if t).strip()


async def get_chat(db: AsyncSession, chat_id: str) -> Chat | None:
    result = await db.execute(select(Chat).where(Chat.id == chat_id))
    return result.scalar_one_or_none()


async def save_chat(
    db: AsyncSession,
    chat_id: str,
    user_id: int,
    title: str,
    visibility: str = "private",
) -> Chat:
    chat = Chat(
        id=chat_id,
        user_id=user_id,
        title=title,
        visibility=visibility,
        created_at=datetime.now(timezone.utc),
    )
    db.add(chat)
    await db.flush()
    logger.info("chat_created", chat_id=chat_id, user_id=user_id)
    return chat


async def save_message(
    db: AsyncSession,
    chat_id: str,
    role: str,
    parts: list[dict[str, Any]],
    message_id: str | None = None,
) -> Message:
    msg = Message(
        chat_id=chat_id,
        role=role,
        parts=parts,
        attachments=[],
        created_at=datetime.now(timezone.utc),
    )
    if message_id:
        msg.id = message_id
    db.add(msg)
    await db.flush()
    return msg


async def get_messages(db: AsyncSession, chat_id: str) -> list[Message]:
    """Messages of a chat in conversation order."""
    result = await db.execute(
        select(Message).where(Message.chat_id == chat_id).order_by(Message.created_at.asc())
    )
    return list(result.scalars().all())


async def count_user_messages(db: AsyncSession, user_id: int, hours: int = 24) -> int:
    """User-authored messages across all of a user's chats in the last ``hours``."""
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    result = await db.execute(
        select(func.count(Message.id))
        .join(Chat, Message.chat_id == Chat.id)
        .where(Chat.user_id == user_id)
        .where(Message.role == "user")
        .where(Message.created_at >= since)
    )
    return int(result.scalar_one())


async def list_chats(
    db: AsyncSession,
    user_id: int,
    limit: int = 20,
    ending_before: str | None = None,
) -> tuple[list[Chat], bool]:
    """
    A user's chats, newest first.

    Returns:
        Tuple of (chats, has_more).

    Raises:
        LookupError: If ``ending_before`` names an unknown chat.
    """
    limit = max(1, min(limit, 100))
    query = select(Chat).where(Chat.user_id == user_id).order_by(Chat.created_at.desc())

    if ending_before:
        anchor = await get_chat(db, ending_before)
        if anchor is None:
            msg = f"Chat with id {ending_before} not found"
            raise LookupError(msg)
        query = query.where(Chat.created_at < anchor.created_at)

    result = await db.execute(query.limit(limit + 1))
    rows = list(result.scalars().all())
    return rows[:limit], len(rows) > limit


async def update_last_context(db: AsyncSession, chat_id: str, context: dict[str, Any]) -> None:
    await db.execute(update(Chat).where(Chat.id == chat_id).values(last_context=context))


async def delete_chat(db: AsyncSession, chat: Chat) -> None:
    await db.execute(delete(Message).where(Message.chat_id == chat.id))
    await db.delete(chat)
    await db.flush()
    logger.info("chat_deleted", chat_id=chat.id, user_id=chat.user_id)


async def transfer_chats(db: AsyncSession, from_user_id: int, to_user_id: int) -> int:
    """Reassign every chat of one user to another. Returns rows moved."""
    if from_user_id == to_user_id:
        return 0
    result = await db.execute(
        update(Chat).where(Chat.user_id == from_user_id).values(user_id=to_user_id)
    )
    return result.rowcount or 0
