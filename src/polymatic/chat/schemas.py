"""Request/response schemas for chat endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = Field(..., min_length=1, max_length=2000)


class UserMessage(BaseModel):
    id: uuid.UUID
    role: Literal["user"] = "user"
    parts: list[TextPart] = Field(..., min_length=1)


class ChatRequest(BaseModel):
    id: uuid.UUID
    message: UserMessage
    selected_chat_model: Literal["chat-model", "chat-model-reasoning"] = "chat-model"
    selected_visibility_type: Literal["public", "private"] = "private"
    client_time_zone: str | None = Field(None, max_length=64)


class ChatSummary(BaseModel):
    id: str
    title: str
    visibility: str
    created_at: datetime


class ChatHistoryResponse(BaseModel):
    chats: list[ChatSummary]
    has_more: bool


class MessageResponse(BaseModel):
    id: str
    role: str
    parts: list[dict[str, Any]]
    created_at: datetime


class ChatDetailResponse(BaseModel):
    chat: ChatSummary
    messages: list[MessageResponse]
