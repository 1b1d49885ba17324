"""
Client for an OpenAI-compatible model gateway.

Application code addresses models by alias (``chat-model``, ``reward-model``,
...). The gateway resolves the alias to the configured provider model id.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx
import structlog

from polymatic.config import Settings, get_settings

logger = structlog.get_logger()

DEFAULT_CHAT_MODEL = "chat-model"

TITLE_SYSTEM_PROMPT = """
- you will generate a short title based on the first message a user begins a conversation with
- ensure it is not more than 80 characters long
- the title should be a summary of the user's message
- do not use quotes or colons"""


def normalize_usage(raw: dict[str, Any]) -> dict[str, int]:
    """Map OpenAI-style token counts to input/output/total."""
    input_tokens = int(raw.get("prompt_tokens") or 0)
    output_tokens = int(raw.get("completion_tokens") or 0)
    return {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": int(raw.get("total_tokens") or input_tokens + output_tokens),
    }


class LLMError(RuntimeError):
    """Raised when the gateway returns an error or an unusable response."""


class LLMGateway:
    """Thin async wrapper over ``/chat/completions``."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport
        self.models = {
            "chat-model": self.settings.llm_chat_model,
            "chat-model-reasoning": self.settings.llm_reasoning_model,
            "title-model": self.settings.llm_title_model,
            "reward-model": self.settings.llm_reward_model,
        }

    def resolve_model(self, alias: str) -> str:
        """Map an alias to a gateway model id. Unknown aliases fall back to the chat model."""
        return self.models.get(alias, self.models[DEFAULT_CHAT_MODEL])

    def _client(self, timeout: httpx.Timeout | float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.llm_base_url,
            headers={
                "Authorization": f"Bearer {self.settings.llm_api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=self._transport,
        )

    async def _complete(self, body: dict[str, Any]) -> str:
        async with self._client(self.settings.llm_timeout_seconds) as client:
            response = await client.post("/chat/completions", json=body)
            if response.status_code >= 400:
                msg = f"Gateway error {response.status_code}: {response.text[:200]}"
                raise LLMError(msg)
            data = response.json()

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            msg = "Gateway response has no message content"
            raise LLMError(msg) from e

    async def complete_json(
        self,
        model: str,
        system: str,
        prompt: str,
        temperature: float = 0,
    ) -> dict[str, Any]:
        """Run a single-turn completion in JSON mode and parse the result.

        Raises:
            LLMError: If the call fails or the content is not a JSON object.
        """
        content = await self._complete({
            "model": self.resolve_model(model),
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "response_format": {"type": "json_object"},
        })
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            msg = "Gateway returned invalid JSON"
            raise LLMError(msg) from e
        if not isinstance(parsed, dict):
            msg = "Gateway returned JSON that is not an object"
            raise LLMError(msg)
        return parsed

    async def stream_chat(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        usage: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding text deltas as they arrive.

        When ``usage`` is given it is filled with the token counts of the
        gateway's final chunk (``input_tokens``, ``output_tokens``,
        ``total_tokens``).
        """
        body = {
            "model": self.resolve_model(model),
            "messages": messages,
            "temperature": temperature,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        timeout = httpx.Timeout(self.settings.llm_timeout_seconds, connect=10.0, read=None)
        async with self._client(timeout) as client:
            async with client.stream("POST", "/chat/completions", json=body) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    msg = f"Gateway error {response.status_code}: {raw.decode('utf-8', errors='replace')[:200]}"
                    raise LLMError(msg)

                async for line in response.aiter_lines():
                    # SSE comments such as ": ping" and blank keepalives are skipped
                    if not line or not line.startswith("data:"):
                        continue
                    data = line[len("data:"):].strip()
                    if data == "[DONE]":
                        break
                    try:
                        chunk = json.loads(data)
                    except json.JSONDecodeError:
                        continue

                    if usage is not None and isinstance(chunk.get("usage"), dict):
                        usage.update(normalize_usage(chunk["usage"]))

                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    content = (choices[0].get("delta") or {}).get("content")
                    if isinstance(content, str) and content:
                        yield content

    async def generate_title(self, text: str) -> str:
        """Summarize a chat's first message into a short title."""
        title = await self._complete({
            "model": self.resolve_model("title-model"),
            "messages": [
                {"role": "system", "content": TITLE_SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            "temperature": 0,
        })
        return title.strip().strip('"')[:80] or "New chat"


_gateway: LLMGateway | None = None


def get_llm_gateway() -> LLMGateway:
    """Process-wide gateway instance (FastAPI dependency)."""
    global _gateway  # noqa: PLW0603
    if _gateway is None:
        _gateway = LLMGateway()
    return _gateway
