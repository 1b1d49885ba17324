"""Model gateway client tests against a mocked transport."""

from __future__ import annotations

import json

import httpx
import pytest

from polymatic.config import Settings
from polymatic.llm.gateway import LLMError, LLMGateway, normalize_usage


def _settings() -> Settings:
    return Settings(
        llm_base_url="https://gateway.test/v1",
        llm_api_key="sk-test",
        llm_chat_model="provider/chat",
        llm_reasoning_model="provider/reasoner",
        llm_title_model="provider/title",
        llm_reward_model="provider/scorer",
    )


def _completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_resolve_model_aliases() -> None:
    gateway = LLMGateway(_settings())
    assert gateway.resolve_model("chat-model") == "provider/chat"
    assert gateway.resolve_model("chat-model-reasoning") == "provider/reasoner"
    assert gateway.resolve_model("reward-model") == "provider/scorer"
    assert gateway.resolve_model("something-else") == "provider/chat"


@pytest.mark.asyncio
async def test_complete_json() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_completion('{"reason": "ok", "depth_0_5": 3}'))

    gateway = LLMGateway(_settings(), transport=httpx.MockTransport(handler))
    result = await gateway.complete_json("reward-model", "system", "prompt")

    assert result == {"reason": "ok", "depth_0_5": 3}
    request = seen[0]
    assert str(request.url) == "https://gateway.test/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "provider/scorer"
    assert body["response_format"] == {"type": "json_object"}
    assert body["temperature"] == 0


@pytest.mark.asyncio
async def test_complete_json_rejects_non_json() -> None:
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion("sure! here you go")))
    gateway = LLMGateway(_settings(), transport=transport)
    with pytest.raises(LLMError, match="invalid JSON"):
        await gateway.complete_json("reward-model", "system", "prompt")


@pytest.mark.asyncio
async def test_complete_json_rejects_json_array() -> None:
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion("[1, 2]")))
    gateway = LLMGateway(_settings(), transport=transport)
    with pytest.raises(LLMError, match="not an object"):
        await gateway.complete_json("reward-model", "system", "prompt")


@pytest.mark.asyncio
async def test_error_status_raises() -> None:
    transport = httpx.MockTransport(lambda r: httpx.Response(502, text="upstream down"))
    gateway = LLMGateway(_settings(), transport=transport)
    with pytest.raises(LLMError, match="502"):
        await gateway.complete_json("reward-model", "system", "prompt")


@pytest.mark.asyncio
async def test_stream_chat_yields_deltas() -> None:
    chunks = [
        ": ping",
        "",
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
        'data: {"choices": [{"delta": {"content": "Hello"}}]}',
        "data: not-json",
        'data: {"choices": []}',
        'data: {"choices": [{"delta": {"content": ", learner"}}]}',
        "data: [DONE]",
        'data: {"choices": [{"delta": {"content": "after done"}}]}',
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(
            200,
            content="\n".join(chunks).encode(),
            headers={"content-type": "text/event-stream"},
        )

    gateway = LLMGateway(_settings(), transport=httpx.MockTransport(handler))
    deltas = [d async for d in gateway.stream_chat("chat-model", [{"role": "user", "content": "hi"}])]
    assert deltas == ["Hello", ", learner"]


@pytest.mark.asyncio
async def test_stream_chat_reports_usage() -> None:
    chunks = [
        'data: {"choices": [{"delta": {"content": "Hi"}}], "usage": null}',
        'data: {"choices": [], "usage": {"prompt_tokens": 40, "completion_tokens": 2, "total_tokens": 42}}',
        "data: [DONE]",
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream_options"] == {"include_usage": True}
        return httpx.Response(200, content="\n".join(chunks).encode())

    gateway = LLMGateway(_settings(), transport=httpx.MockTransport(handler))
    usage: dict = {}
    deltas = [d async for d in gateway.stream_chat("chat-model", [], usage=usage)]

    assert deltas == ["Hi"]
    assert usage == {"input_tokens": 40, "output_tokens": 2, "total_tokens": 42}


def test_normalize_usage_derives_total() -> None:
    assert normalize_usage({"prompt_tokens": 5, "completion_tokens": 7}) == {
        "input_tokens": 5,
        "output_tokens": 7,
        "total_tokens": 12,
    }


@pytest.mark.asyncio
async def test_stream_chat_error_status() -> None:
    transport = httpx.MockTransport(lambda r: httpx.Response(401, text="bad key"))
    gateway = LLMGateway(_settings(), transport=transport)
    with pytest.raises(LLMError, match="401"):
        async for _ in gateway.stream_chat("chat-model", []):
            pass


@pytest.mark.asyncio
async def test_generate_title_trims_quotes_and_length() -> None:
    long_title = '"' + "Photosynthesis " * 10 + '"'
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion(long_title)))
    gateway = LLMGateway(_settings(), transport=transport)
    title = await gateway.generate_title("Teach me photosynthesis")
    assert not title.startswith('"')
    assert len(title) <= 80


@pytest.mark.asyncio
async def test_generate_title_empty_falls_back() -> None:
    transport = httpx.MockTransport(lambda r: httpx.Response(200, json=_completion("  ")))
    gateway = LLMGateway(_settings(), transport=transport)
    assert await gateway.generate_title("hi") == "New chat"
