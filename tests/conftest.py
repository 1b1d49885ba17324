"""Shared test fixtures."""

from __future__ import annotations

import os
import tempfile
from collections.abc import AsyncGenerator, AsyncIterator
from pathlib import Path
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def _ensure_test_environment() -> None:
    """Point settings at a throwaway SQLite database and a fresh RSA key pair."""
    tmpdir = Path(tempfile.mkdtemp(prefix="polymatic_test_"))

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_path = tmpdir / "jwt_private.pem"
    public_path = tmpdir / "jwt_public.pem"
    private_path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    public_path.write_bytes(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )

    os.environ["POLY_JWT_PRIVATE_KEY_PATH"] = str(private_path)
    os.environ["POLY_JWT_PUBLIC_KEY_PATH"] = str(public_path)
    os.environ["POLY_DATABASE_URL"] = f"sqlite+aiosqlite:///{tmpdir / 'test.db'}"
    os.environ["POLY_COOKIE_SECURE"] = "false"
    os.environ["POLY_LOG_FORMAT"] = "console"
    os.environ["POLY_LLM_API_KEY"] = ""
    os.environ["POLY_MEMORY_API_KEY"] = ""


# Must run before polymatic.main is imported: the module builds the app at import time
_ensure_test_environment()

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from helpers import create_guest, register  # noqa: E402
from polymatic.config import Settings, get_settings  # noqa: E402
from polymatic.database import close_db, get_engine, init_db, session_scope  # noqa: E402
from polymatic.db.models import Base  # noqa: E402
from polymatic.llm.gateway import get_llm_gateway  # noqa: E402
from polymatic.main import create_app  # noqa: E402
from polymatic.memory.client import get_memory_client  # noqa: E402


# ---------------------------------------------------------------------------
# Fakes for the external AI services
# ---------------------------------------------------------------------------


class FakeGateway:
    """Stands in for LLMGateway: canned deltas, usage, title and reward score."""

    def __init__(self) -> None:
        self.reply: list[str] = ["Good question. ", "What do you think happens next?"]
        self.title = "Photosynthesis basics"
        self.score: dict[str, Any] = {
            "correctness_0_5": 4,
            "depth_0_5": 3,
            "novelty_0_5": 3,
            "progress_0_5": 4,
            "effort_0_5": 5,
            "reward_raw_100_10000": 2500,
            "reason": "Explained the light reactions in their own words",
        }
        self.usage: dict[str, int] = {"input_tokens": 120, "output_tokens": 12, "total_tokens": 132}
        self.fail_stream = False
        self.fail_title = False
        self.streamed: list[list[dict[str, str]]] = []

    async def generate_title(self, text: str) -> str:
        if self.fail_title:
            raise RuntimeError("title model unavailable")
        return self.title

    async def stream_chat(
        self,
        model: str,
        messages: list[dict[str, str]],
        temperature: float = 0.7,
        usage: dict[str, Any] | None = None,
    ) -> AsyncIterator[str]:
        self.streamed.append(messages)
        if self.fail_stream:
            raise RuntimeError("gateway unavailable")
        for delta in self.reply:
            yield delta
        if usage is not None:
            usage.update(self.usage)

    async def complete_json(
        self,
        model: str,
        system: str,
        prompt: str,
        temperature: float = 0,
    ) -> dict[str, Any]:
        return dict(self.score)


class FakeMemory:
    """Stands in for MemoryClient: returns canned memories and records writes."""

    def __init__(self) -> None:
        self.memories: list[str] = []
        self.added: list[dict[str, Any]] = []

    @property
    def enabled(self) -> bool:
        return True

    async def search(self, query: str, user_id: int | str, top_k: int = 5) -> list[str]:
        return list(self.memories)

    async def add(
        self,
        messages: list[dict[str, str]],
        user_id: int | str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self.added.append({"messages": messages, "user_id": user_id, "metadata": metadata})


# ---------------------------------------------------------------------------
# App, database and client
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """The cached settings instance. Tweak it with monkeypatch.setattr."""
    return get_settings()


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[None, None]:
    """Fresh schema for every test."""
    await init_db(get_settings().database_url)
    engine = get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def fake_memory() -> FakeMemory:
    return FakeMemory()


@pytest.fixture
def app(fake_gateway: FakeGateway, fake_memory: FakeMemory) -> FastAPI:
    application = create_app()
    application.dependency_overrides[get_llm_gateway] = lambda: fake_gateway
    application.dependency_overrides[get_memory_client] = lambda: fake_memory
    return application


@pytest_asyncio.fixture
async def client(app: FastAPI, database: None) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app. Redis is not initialized, so rate limiting is off."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct database session for arranging data and asserting on it."""
    async with session_scope() as session:
        yield session


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def guest(client: AsyncClient) -> dict[str, Any]:
    return await create_guest(client)


@pytest_asyncio.fixture
async def regular_user(client: AsyncClient) -> dict[str, Any]:
    return await register(client, "learner@example.com")
