"""Account helpers shared by the API tests."""

from __future__ import annotations

from typing import Any

from httpx import AsyncClient

TEST_PASSWORD = "correct-horse-battery"


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def create_guest(client: AsyncClient) -> dict[str, Any]:
    """Create a guest through the API. Returns user fields plus token and headers."""
    response = await client.post("/api/v1/auth/guest")
    assert response.status_code == 201
    data = response.json()
    return {**data["user"], "token": data["access_token"], "headers": auth_headers(data["access_token"])}


async def register(
    client: AsyncClient,
    email: str,
    password: str = TEST_PASSWORD,
    headers: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Register through the API, optionally while signed in as a guest."""
    response = await client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password},
        headers=headers or {},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    return {**data["user"], "token": data["access_token"], "headers": auth_headers(data["access_token"])}
