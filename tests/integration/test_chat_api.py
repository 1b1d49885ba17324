"""Chat API tests: streamed replies, rewards, entitlements and ownership."""

from __future__ import annotations

import json
import uuid
from typing import Any

import pytest
from httpx import AsyncClient, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.config import Settings
from polymatic.db.models import Chat


def _chat_body(chat_id: str, text: str = "Teach me about photosynthesis", **extra: Any) -> dict[str, Any]:
    return {
        "id": chat_id,
        "message": {"id": str(uuid.uuid4()), "role": "user", "parts": [{"type": "text", "text": text}]},
        **extra,
    }


def _events(response: Response) -> list[Any]:
    """Decode an SSE body into payloads; the terminator is kept as the string "[DONE]"."""
    events: list[Any] = []
    for line in response.text.splitlines():
        if not line.startswith("data: "):
            continue
        data = line[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


async def _send(client: AsyncClient, user: dict[str, Any], chat_id: str, **kwargs: Any) -> Response:
    return await client.post("/api/v1/chat", json=_chat_body(chat_id, **kwargs), headers=user["headers"])


@pytest.fixture
def rewards_on(settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setattr(settings, "rewards_enabled", True)
    return settings


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stream_reply(client: AsyncClient, guest: dict[str, Any], fake_gateway, fake_memory) -> None:  # noqa: ANN001
    chat_id = str(uuid.uuid4())
    response = await _send(client, guest, chat_id)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    events = _events(response)
    deltas = [e["delta"] for e in events if isinstance(e, dict) and e["type"] == "data-text-delta"]
    assert "".join(deltas) == "Good question. What do you think happens next?"
    assert any(isinstance(e, dict) and e["type"] == "finish" for e in events)
    assert not any(isinstance(e, dict) and e["type"] == "data-reward" for e in events)
    assert events[-1] == "[DONE]"

    # The conversation was persisted and remembered
    detail = (await client.get(f"/api/v1/chat/{chat_id}", headers=guest["headers"])).json()
    assert detail["chat"]["title"] == "Photosynthesis basics"
    assert detail["chat"]["visibility"] == "private"
    assert [m["role"] for m in detail["messages"]] == ["user", "assistant"]
    assert detail["messages"][1]["parts"][0]["text"] == "Good question. What do you think happens next?"
    assert fake_memory.added[0]["metadata"] == {"category": "learning_progress"}
    assert fake_memory.added[0]["user_id"] == guest["id"]


@pytest.mark.asyncio
async def test_system_prompt_includes_profile_and_memory(
    client: AsyncClient, guest: dict[str, Any], fake_gateway, fake_memory,  # noqa: ANN001
) -> None:
    await client.post(
        "/api/v1/profile",
        json={"interests": [{"category": "Science & Nature", "topics": ["Biology"]}], "goals": ["Pass AP Bio"]},
        headers=guest["headers"],
    )
    fake_memory.memories = ["Finished chloroplast structure"]

    await _send(client, guest, str(uuid.uuid4()), client_time_zone="Europe/Berlin")

    messages = fake_gateway.streamed[0]
    assert messages[0]["role"] == "system"
    assert "Learner interests to favor: Biology." in messages[0]["content"]
    assert "Learner goals: Pass AP Bio." in messages[0]["content"]
    assert "Finished chloroplast structure" in messages[0]["content"]
    assert "(tz: Europe/Berlin)" in messages[0]["content"]
    assert messages[-1] == {"role": "user", "content": "Teach me about photosynthesis"}


@pytest.mark.asyncio
async def test_history_is_sent_on_follow_up(client: AsyncClient, guest: dict[str, Any], fake_gateway) -> None:  # noqa: ANN001
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id, text="What is ATP?")
    await _send(client, guest, chat_id, text="And ADP?")

    roles = [m["role"] for m in fake_gateway.streamed[1]]
    assert roles == ["system", "user", "assistant", "user"]
    assert fake_gateway.streamed[1][1]["content"] == "What is ATP?"


@pytest.mark.asyncio
async def test_stream_failure_emits_error(client: AsyncClient, guest: dict[str, Any], fake_gateway) -> None:  # noqa: ANN001
    fake_gateway.fail_stream = True
    response = await _send(client, guest, str(uuid.uuid4()))

    events = _events(response)
    assert {"type": "error", "error_text": "Oops, an error occurred!"} in events
    assert events[-1] == "[DONE]"


@pytest.mark.asyncio
async def test_usage_event_saved_as_last_context(
    client: AsyncClient, guest: dict[str, Any], db_session: AsyncSession,
) -> None:
    chat_id = str(uuid.uuid4())
    events = _events(await _send(client, guest, chat_id))

    usage = {"input_tokens": 120, "output_tokens": 12, "total_tokens": 132}
    assert {"type": "data-usage", "data": usage} in events

    chat = (await db_session.execute(select(Chat).where(Chat.id == chat_id))).scalar_one()
    assert chat.last_context == usage


@pytest.mark.asyncio
async def test_no_usage_event_without_token_counts(
    client: AsyncClient, guest: dict[str, Any], fake_gateway, db_session: AsyncSession,  # noqa: ANN001
) -> None:
    fake_gateway.usage = {}
    chat_id = str(uuid.uuid4())
    events = _events(await _send(client, guest, chat_id))

    assert not any(isinstance(e, dict) and e["type"] == "data-usage" for e in events)
    chat = (await db_session.execute(select(Chat).where(Chat.id == chat_id))).scalar_one()
    assert chat.last_context is None


@pytest.mark.asyncio
async def test_title_falls_back_to_message(client: AsyncClient, guest: dict[str, Any], fake_gateway) -> None:  # noqa: ANN001
    fake_gateway.fail_title = True
    chat_id = str(uuid.uuid4())
    text = "Explain the Krebs cycle step by step " * 4
    await _send(client, guest, chat_id, text=text)

    detail = (await client.get(f"/api/v1/chat/{chat_id}", headers=guest["headers"])).json()
    assert detail["chat"]["title"] == text[:80]


@pytest.mark.asyncio
async def test_invalid_model_rejected(client: AsyncClient, guest: dict[str, Any]) -> None:
    response = await _send(client, guest, str(uuid.uuid4()), selected_chat_model="gpt-99")
    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_reward_event(client: AsyncClient, guest: dict[str, Any], rewards_on: Settings) -> None:
    response = await _send(client, guest, str(uuid.uuid4()))

    rewards = [e for e in _events(response) if isinstance(e, dict) and e["type"] == "data-reward"]
    assert rewards == [{"type": "data-reward", "data": {"delta": 2500, "today_total": 2500}}]

    summary = (await client.get("/api/v1/rewards/summary", headers=guest["headers"])).json()
    assert summary["today"] == 2500
    items = (await client.get("/api/v1/rewards/transactions", headers=guest["headers"])).json()["items"]
    assert items[0]["kind"] == "learning"


@pytest.mark.asyncio
async def test_no_reward_event_when_capped(
    client: AsyncClient, guest: dict[str, Any], rewards_on: Settings, monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(rewards_on, "rewards_daily_cap", 3000)
    chat_id = str(uuid.uuid4())
    first = _events(await _send(client, guest, chat_id))
    second = _events(await _send(client, guest, chat_id))
    third = _events(await _send(client, guest, chat_id))

    def reward(events: list[Any]) -> list[Any]:
        return [e["data"] for e in events if isinstance(e, dict) and e["type"] == "data-reward"]

    assert reward(first) == [{"delta": 2500, "today_total": 2500}]
    assert reward(second) == [{"delta": 500, "today_total": 3000}]
    assert reward(third) == []
    assert third[-1] == "[DONE]"


# ---------------------------------------------------------------------------
# Entitlements and ownership
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_daily_message_limit(
    client: AsyncClient, guest: dict[str, Any], settings: Settings, monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A limit of 2 allows exactly two messages; the third is refused."""
    monkeypatch.setattr(settings, "max_messages_per_day_guest", 2)
    chat_id = str(uuid.uuid4())
    assert (await _send(client, guest, chat_id)).status_code == 200
    assert (await _send(client, guest, chat_id)).status_code == 200

    response = await _send(client, guest, chat_id)
    assert response.status_code == 429
    assert response.json()["detail"] == "Daily message limit reached"


@pytest.mark.asyncio
async def test_regular_users_get_higher_limit(
    client: AsyncClient, regular_user: dict[str, Any], settings: Settings, monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "max_messages_per_day_guest", 1)
    chat_id = str(uuid.uuid4())
    assert (await _send(client, regular_user, chat_id)).status_code == 200
    assert (await _send(client, regular_user, chat_id)).status_code == 200


@pytest.mark.asyncio
async def test_cannot_post_to_someone_elses_chat(
    client: AsyncClient, guest: dict[str, Any], regular_user: dict[str, Any],
) -> None:
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id)
    response = await _send(client, regular_user, chat_id)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_private_chat_hidden_from_others(
    client: AsyncClient, guest: dict[str, Any], regular_user: dict[str, Any],
) -> None:
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id)
    response = await client.get(f"/api/v1/chat/{chat_id}", headers=regular_user["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_public_chat_readable_by_others(
    client: AsyncClient, guest: dict[str, Any], regular_user: dict[str, Any],
) -> None:
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id, selected_visibility_type="public")
    response = await client.get(f"/api/v1/chat/{chat_id}", headers=regular_user["headers"])
    assert response.status_code == 200
    assert response.json()["chat"]["visibility"] == "public"


@pytest.mark.asyncio
async def test_unknown_chat(client: AsyncClient, guest: dict[str, Any]) -> None:
    response = await client.get(f"/api/v1/chat/{uuid.uuid4()}", headers=guest["headers"])
    assert response.status_code == 404


# ---------------------------------------------------------------------------
# History and deletion
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_history_pagination(client: AsyncClient, guest: dict[str, Any]) -> None:
    chat_ids = [str(uuid.uuid4()) for _ in range(3)]
    for chat_id in chat_ids:
        await _send(client, guest, chat_id)

    page = (await client.get("/api/v1/chat/history", params={"limit": 2}, headers=guest["headers"])).json()
    assert [c["id"] for c in page["chats"]] == [chat_ids[2], chat_ids[1]]
    assert page["has_more"] is True

    rest = (await client.get(
        "/api/v1/chat/history",
        params={"limit": 2, "ending_before": chat_ids[1]},
        headers=guest["headers"],
    )).json()
    assert [c["id"] for c in rest["chats"]] == [chat_ids[0]]
    assert rest["has_more"] is False


@pytest.mark.asyncio
async def test_history_unknown_anchor(client: AsyncClient, guest: dict[str, Any]) -> None:
    response = await client.get(
        "/api/v1/chat/history", params={"ending_before": str(uuid.uuid4())}, headers=guest["headers"],
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_chat(client: AsyncClient, guest: dict[str, Any]) -> None:
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id)

    response = await client.delete(f"/api/v1/chat/{chat_id}", headers=guest["headers"])
    assert response.status_code == 200
    assert response.json()["id"] == chat_id

    assert (await client.get(f"/api/v1/chat/{chat_id}", headers=guest["headers"])).status_code == 404
    history = (await client.get("/api/v1/chat/history", headers=guest["headers"])).json()
    assert history["chats"] == []


@pytest.mark.asyncio
async def test_delete_someone_elses_chat(
    client: AsyncClient, guest: dict[str, Any], regular_user: dict[str, Any],
) -> None:
    chat_id = str(uuid.uuid4())
    await _send(client, guest, chat_id)
    response = await client.delete(f"/api/v1/chat/{chat_id}", headers=regular_user["headers"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_malformed_chat_ids_rejected(client: AsyncClient, guest: dict[str, Any]) -> None:
    """Ids that are not UUIDs fail validation before reaching the database."""
    assert (await client.get("/api/v1/chat/abc", headers=guest["headers"])).status_code == 422
    assert (await client.delete("/api/v1/chat/abc", headers=guest["headers"])).status_code == 422
    response = await client.get("/api/v1/chat/history", params={"ending_before": "abc"}, headers=guest["headers"])
    assert response.status_code == 422
    assert (await _send(client, guest, "not-a-uuid")).status_code == 422
