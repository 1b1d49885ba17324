"""
Chat API endpoints.

``POST /api/v1/chat`` streams the tutor's reply as server-sent events:
``data-text-delta`` chunks, an optional ``data-reward`` once the reply is
scored, ``data-usage`` with the token counts, ``error`` on failure and a
terminating ``[DONE]``.
"""

from __future__ import annotations

import json
import uuid
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.auth.dependencies import get_current_user
from polymatic.chat.prompts import build_system_prompt
from polymatic.chat.schemas import (
    ChatDetailResponse,
    ChatHistoryResponse,
    ChatRequest,
    ChatSummary,
    MessageResponse,
)
from polymatic.chat.service import (
    count_user_messages,
    delete_chat,
    get_chat,
    get_messages,
    list_chats,
    save_chat,
    save_message,
    text_from_parts,
    update_last_context,
)
from polymatic.config import get_settings
from polymatic.database import get_session, session_scope
from polymatic.db.models import Chat, User
from polymatic.llm.gateway import LLMGateway, get_llm_gateway
from polymatic.memory.client import LEARNING_MEMORY_QUERY, MemoryClient, get_memory_client
from polymatic.profiles.service import get_profile
from polymatic.rewards.evaluator import evaluate_and_reward
from polymatic.rewards.timezones import is_valid_timezone

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])

STREAM_ERROR_TEXT = "Oops, an error occurred!"


def sse(payload: dict[str, Any] | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n"


def _summary(chat: Chat) -> ChatSummary:
    return ChatSummary(id=chat.id, title=chat.title, visibility=chat.visibility, created_at=chat.created_at)


def _max_messages_per_day(user: User) -> int:
    settings = get_settings()
    if user.is_guest:
        return settings.max_messages_per_day_guest
    return settings.max_messages_per_day_regular


async def _stream_reply(
    gateway: LLMGateway,
    memory: MemoryClient,
    *,
    user_id: int,
    chat_id: str,
    model: str,
    messages: list[dict[str, str]],
    user_text: str,
    time_zone: str | None,
) -> AsyncIterator[str]:
    # The request-scoped session is closed once the handler returns, so the
    # stream opens its own.
    async with session_scope() as db:
        try:
            chunks: list[str] = []
            usage: dict[str, Any] = {}
            async for delta in gateway.stream_chat(model, messages, usage=usage):
                chunks.append(delta)
                yield sse({"type": "data-text-delta", "delta": delta})

            assistant_text = "".join(chunks).strip()
            reply = await save_message(db, chat_id, "assistant", [{"type": "text", "text": assistant_text}])
            await db.commit()
        except Exception:
            logger.exception("chat_stream_failed", chat_id=chat_id, user_id=user_id)
            await db.rollback()
            yield sse({"type": "error", "error_text": STREAM_ERROR_TEXT})
            yield sse("[DONE]")
            return

        if usage:
            yield sse({"type": "data-usage", "data": usage})
            try:
                await update_last_context(db, chat_id, usage)
                await db.commit()
            except SQLAlchemyError:
                logger.warning("chat_usage_save_failed", chat_id=chat_id, exc_info=True)
                await db.rollback()

        yield sse({"type": "finish", "message_id": reply.id})

        payload = [
            m for m in (
                {"role": "user", "content": user_text} if user_text else None,
                {"role": "assistant", "content": assistant_text} if assistant_text else None,
            ) if m
        ]
        try:
            await memory.add(payload, user_id, metadata={"category": "learning_progress"})
        except Exception:
            logger.warning("memory_add_failed", user_id=user_id, exc_info=True)

        reward = await evaluate_and_reward(
            db,
            gateway,
            user_id=user_id,
            chat_id=chat_id,
            message_id=reply.id,
            user_text=user_text,
            assistant_text=assistant_text,
            time_zone=time_zone,
        )
        if reward is not None and reward.delta > 0:
            yield sse({
                "type": "data-reward",
                "data": {"delta": reward.delta, "today_total": reward.today_total},
            })

        yield sse("[DONE]")


@router.post("")
async def post_chat(
    body: ChatRequest,
    x_timezone: str | None = Header(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
    gateway: LLMGateway = Depends(get_llm_gateway),
    memory: MemoryClient = Depends(get_memory_client),
):
    """Send a message and stream the tutor's reply."""
    # The limit is the number of messages allowed, so reaching it blocks the next one
    if await count_user_messages(db, user.id, hours=24) >= _max_messages_per_day(user):
        raise HTTPException(status_code=429, detail="Daily message limit reached")

    user_parts = [p.model_dump() for p in body.message.parts]
    user_text = text_from_parts(user_parts)

    chat_id = str(body.id)
    chat = await get_chat(db, chat_id)
    if chat is None:
        try:
            title = await gateway.generate_title(user_text)
        except Exception:
            logger.warning("chat_title_failed", chat_id=chat_id, exc_info=True)
            title = user_text[:80]
        chat = await save_chat(db, chat_id, user.id, title, body.selected_visibility_type)
    elif chat.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    history = await get_messages(db, chat.id)

    profile: dict[str, Any] | None = None
    try:
        row = await get_profile(db, user.id)
        if row is not None:
            profile = {
                "interests": row.interests,
                "goals": row.goals,
                "time_budget_mins": row.time_budget_mins,
            }
    except Exception:
        logger.warning("chat_profile_failed", user_id=user.id, exc_info=True)

    await save_message(db, chat.id, "user", user_parts, message_id=str(body.message.id))
    await db.commit()

    time_zone = next(
        (tz for tz in (x_timezone, body.client_time_zone) if tz and is_valid_timezone(tz)),
        None,
    )

    memories: list[str] = []
    try:
        memories = await memory.search(LEARNING_MEMORY_QUERY, user.id, top_k=5)
    except Exception:
        logger.warning("memory_search_failed", user_id=user.id, exc_info=True)

    messages = [{"role": "system", "content": build_system_prompt(profile, time_zone, memories)}]
    messages += [{"role": m.role, "content": text_from_parts(m.parts)} for m in history]
    messages.append({"role": "user", "content": user_text})

    logger.info("chat_message_received", chat_id=chat.id, user_id=user.id, model=body.selected_chat_model)

    return StreamingResponse(
        _stream_reply(
            gateway,
            memory,
            user_id=user.id,
            chat_id=chat.id,
            model=body.selected_chat_model,
            messages=messages,
            user_text=user_text,
            time_zone=time_zone,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/history", response_model=ChatHistoryResponse)
async def chat_history(
    limit: int = Query(20, ge=1, le=100),
    ending_before: uuid.UUID | None = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    try:
        chats, has_more = await list_chats(
            db, user.id, limit=limit, ending_before=str(ending_before) if ending_before else None,
        )
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return ChatHistoryResponse(chats=[_summary(c) for c in chats], has_more=has_more)


@router.get("/{chat_id}", response_model=ChatDetailResponse)
async def read_chat(
    chat_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """A chat with its messages. Private chats are visible to their owner only."""
    chat = await get_chat(db, str(chat_id))
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    if chat.visibility == "private" and chat.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    messages = await get_messages(db, chat.id)
    return ChatDetailResponse(
        chat=_summary(chat),
        messages=[
            MessageResponse(id=m.id, role=m.role, parts=m.parts, created_at=m.created_at)
            for m in messages
        ],
    )


@router.delete("/{chat_id}", response_model=ChatSummary)
async def remove_chat(
    chat_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    chat = await get_chat(db, str(chat_id))
    if chat is None:
        raise HTTPException(status_code=404, detail="Chat not found")
    if chat.user_id != user.id:
        raise HTTPException(status_code=403, detail="Forbidden")

    summary = _summary(chat)
    await delete_chat(db, chat)
    await db.commit()
    return summary
