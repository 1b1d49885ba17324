"""Wallet linking API tests with real ed25519 signatures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import AsyncClient
from solders.keypair import Keypair
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from polymatic.db.models import WalletVerificationNonce


async def _link(client: AsyncClient, user: dict[str, Any], kp: Keypair) -> None:
    address = str(kp.pubkey())
    start = await client.post("/api/v1/wallets/start", json={"address": address}, headers=user["headers"])
    assert start.status_code == 200
    nonce = start.json()["nonce"]
    signature = str(kp.sign_message(nonce.encode("utf-8")))
    verify = await client.post(
        "/api/v1/wallets/verify",
        json={"address": address, "signature": signature},
        headers=user["headers"],
    )
    assert verify.status_code == 200, verify.text
    assert verify.json() == {"ok": True}


async def _wallets(client: AsyncClient, user: dict[str, Any]) -> list[dict[str, Any]]:
    response = await client.get("/api/v1/wallets", headers=user["headers"])
    assert response.status_code == 200
    return response.json()["items"]


@pytest.mark.asyncio
async def test_no_wallets_initially(client: AsyncClient, guest: dict[str, Any]) -> None:
    assert await _wallets(client, guest) == []


@pytest.mark.asyncio
async def test_start_returns_challenge(client: AsyncClient, guest: dict[str, Any]) -> None:
    address = str(Keypair().pubkey())
    response = await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])
    data = response.json()
    assert f"Address={address}" in data["nonce"]
    expires_at = datetime.fromisoformat(data["expires_at"].replace("Z", "+00:00"))
    remaining = expires_at - datetime.now(timezone.utc)
    assert timedelta(minutes=4) < remaining <= timedelta(minutes=5)


@pytest.mark.asyncio
async def test_start_rejects_invalid_address(client: AsyncClient, guest: dict[str, Any]) -> None:
    response = await client.post(
        "/api/v1/wallets/start", json={"address": "not-a-wallet"}, headers=guest["headers"],
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid wallet address"


@pytest.mark.asyncio
async def test_verify_links_primary_wallet(client: AsyncClient, guest: dict[str, Any]) -> None:
    kp = Keypair()
    await _link(client, guest, kp)

    wallets = await _wallets(client, guest)
    assert len(wallets) == 1
    assert wallets[0]["address"] == str(kp.pubkey())
    assert wallets[0]["chain"] == "solana"
    assert wallets[0]["is_primary"] is True
    assert wallets[0]["is_verified"] is True
    assert wallets[0]["last_connected_at"] is not None


@pytest.mark.asyncio
async def test_nonce_is_single_use(client: AsyncClient, guest: dict[str, Any]) -> None:
    kp = Keypair()
    address = str(kp.pubkey())
    start = await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])
    signature = str(kp.sign_message(start.json()["nonce"].encode("utf-8")))
    body = {"address": address, "signature": signature}

    assert (await client.post("/api/v1/wallets/verify", json=body, headers=guest["headers"])).status_code == 200
    replay = await client.post("/api/v1/wallets/verify", json=body, headers=guest["headers"])
    assert replay.status_code == 400
    assert replay.json()["detail"] == "No nonce found for verification"


@pytest.mark.asyncio
async def test_restart_invalidates_previous_challenge(client: AsyncClient, guest: dict[str, Any]) -> None:
    kp = Keypair()
    address = str(kp.pubkey())
    first = await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])
    await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])

    signature = str(kp.sign_message(first.json()["nonce"].encode("utf-8")))
    response = await client.post(
        "/api/v1/wallets/verify", json={"address": address, "signature": signature}, headers=guest["headers"],
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"


@pytest.mark.asyncio
async def test_verify_without_challenge(client: AsyncClient, guest: dict[str, Any]) -> None:
    kp = Keypair()
    response = await client.post(
        "/api/v1/wallets/verify",
        json={"address": str(kp.pubkey()), "signature": str(kp.sign_message(b"hello"))},
        headers=guest["headers"],
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "No nonce found for verification"


@pytest.mark.asyncio
async def test_verify_wrong_signer(client: AsyncClient, guest: dict[str, Any]) -> None:
    owner, attacker = Keypair(), Keypair()
    address = str(owner.pubkey())
    start = await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])
    signature = str(attacker.sign_message(start.json()["nonce"].encode("utf-8")))
    response = await client.post(
        "/api/v1/wallets/verify", json={"address": address, "signature": signature}, headers=guest["headers"],
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"
    assert await _wallets(client, guest) == []


@pytest.mark.asyncio
async def test_verify_expired_nonce(
    client: AsyncClient, db_session: AsyncSession, guest: dict[str, Any],
) -> None:
    kp = Keypair()
    address = str(kp.pubkey())
    start = await client.post("/api/v1/wallets/start", json={"address": address}, headers=guest["headers"])

    await db_session.execute(
        update(WalletVerificationNonce)
        .where(WalletVerificationNonce.address == address)
        .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
    )
    await db_session.commit()

    signature = str(kp.sign_message(start.json()["nonce"].encode("utf-8")))
    response = await client.post(
        "/api/v1/wallets/verify", json={"address": address, "signature": signature}, headers=guest["headers"],
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Nonce expired"


@pytest.mark.asyncio
async def test_newest_verified_wallet_becomes_primary(client: AsyncClient, guest: dict[str, Any]) -> None:
    first, second = Keypair(), Keypair()
    await _link(client, guest, first)
    await _link(client, guest, second)

    wallets = await _wallets(client, guest)
    assert [w["address"] for w in wallets] == [str(second.pubkey()), str(first.pubkey())]
    assert [w["is_primary"] for w in wallets] == [True, False]


@pytest.mark.asyncio
async def test_set_primary(client: AsyncClient, guest: dict[str, Any]) -> None:
    first, second = Keypair(), Keypair()
    await _link(client, guest, first)
    await _link(client, guest, second)
    first_id = next(w["id"] for w in await _wallets(client, guest) if w["address"] == str(first.pubkey()))

    response = await client.post("/api/v1/wallets/primary", json={"id": first_id}, headers=guest["headers"])
    assert response.status_code == 200

    wallets = await _wallets(client, guest)
    assert wallets[0]["id"] == first_id
    assert sum(w["is_primary"] for w in wallets) == 1


@pytest.mark.asyncio
async def test_delete_wallet(client: AsyncClient, guest: dict[str, Any]) -> None:
    kp = Keypair()
    await _link(client, guest, kp)
    wallet_id = (await _wallets(client, guest))[0]["id"]

    response = await client.delete(f"/api/v1/wallets/{wallet_id}", headers=guest["headers"])
    assert response.status_code == 200
    assert await _wallets(client, guest) == []


@pytest.mark.asyncio
async def test_cannot_touch_other_users_wallet(
    client: AsyncClient, guest: dict[str, Any], regular_user: dict[str, Any],
) -> None:
    await _link(client, guest, Keypair())
    wallet_id = (await _wallets(client, guest))[0]["id"]

    assert (await client.delete(f"/api/v1/wallets/{wallet_id}", headers=regular_user["headers"])).status_code == 404
    response = await client.post("/api/v1/wallets/primary", json={"id": wallet_id}, headers=regular_user["headers"])
    assert response.status_code == 404
    assert len(await _wallets(client, guest)) == 1


@pytest.mark.asyncio
async def test_malformed_wallet_id_rejected(client: AsyncClient, guest: dict[str, Any]) -> None:
    """Ids that are not UUIDs fail validation before reaching the database."""
    assert (await client.delete("/api/v1/wallets/abc", headers=guest["headers"])).status_code == 422
    response = await client.post("/api/v1/wallets/primary", json={"id": "abc"}, headers=guest["headers"])
    assert response.status_code == 422
