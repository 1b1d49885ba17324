"""Client for the hosted learning-memory service (mem0 REST API)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from polymatic.config import Settings, get_settings

logger = structlog.get_logger()

LEARNING_MEMORY_QUERY = (
    "progress OR last session OR session log OR completed topics OR weaknesses "
    "OR next steps OR review candidates OR concept deck"
)


class MemoryClient:
    """Search and store per-user learning memories.

    Disabled (every call is a no-op) when no API key is configured.
    Errors propagate; callers treat memory as best-effort.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.settings.memory_api_key)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.memory_base_url,
            headers={
                "Authorization": f"Token {self.settings.memory_api_key}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.memory_timeout_seconds,
            transport=self._transport,
        )

    async def search(self, query: str, user_id: int | str, top_k: int = 5) -> list[str]:
        """Return the text of the best-matching memories for a user."""
        if not self.enabled:
            return []
        async with self._client() as client:
            response = await client.post(
                "/v1/memories/search/",
                json={"query": query, "user_id": str(user_id), "top_k": top_k},
            )
            response.raise_for_status()
            data = response.json()

        results = data.get("results", []) if isinstance(data, dict) else data
        memories: list[str] = []
        for item in results or []:
            if isinstance(item, dict):
                text = item.get("memory") or item.get("content") or ""
                if text:
                    memories.append(str(text))
        return memories

    async def add(
        self,
        messages: list[dict[str, str]],
        user_id: int | str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Store a conversation excerpt. Processing happens asynchronously on the service side."""
        if not self.enabled or not messages:
            return
        async with self._client() as client:
            response = await client.post(
                "/v1/memories/",
                json={
                    "messages": messages,
                    "user_id": str(user_id),
                    "metadata": metadata or {},
                    "async_mode": True,
                },
            )
            response.raise_for_status()
        logger.debug("memory_added", user_id=user_id, count=len(messages))


_client_instance: MemoryClient | None = None


def get_memory_client() -> MemoryClient:
    """Process-wide memory client (FastAPI dependency)."""
    global _client_instance  # noqa: PLW0603
    if _client_instance is None:
        _client_instance = MemoryClient()
    return _client_instance
