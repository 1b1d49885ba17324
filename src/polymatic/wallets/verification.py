"""
Solana wallet ownership proofs.

The wallet signs the UTF-8 bytes of a server-issued challenge with its
ed25519 key. The address itself is the base58 public key, so the signature
can be checked without any chain access.
"""

from __future__ import annotations

import uuid

from solders.pubkey import Pubkey
from solders.signature import Signature

MIN_ADDRESS_LENGTH = 20


def build_challenge(address: str, ttl_seconds: int = 300) -> str:
    """Challenge text the wallet must sign. A fresh random nonce is embedded each time."""
    minutes = max(1, ttl_seconds // 60)
    return (
        f"Polymatic: Verify wallet ownership. Address={address}. "
        f"Nonce={uuid.uuid4()}. Expires in {minutes} minutes."
    )


def validate_solana_address(address: str) -> Pubkey:
    """
    Parse a base58 Solana address.

    Raises:
        ValueError: If the address is too short or not a valid public key.
    """
    if not address or len(address) < MIN_ADDRESS_LENGTH:
        msg = "Invalid wallet address"
        raise ValueError(msg)
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        msg = "Invalid wallet address"
        raise ValueError(msg) from e


def verify_signature(address: str, message: str, signature_b58: str) -> bool:
    """Check a base58 ed25519 signature over ``message`` against ``address``. Never raises."""
    try:
        pubkey = validate_solana_address(address)
        signature = Signature.from_string(signature_b58)
    except ValueError:
        return False
    return signature.verify(pubkey, message.encode("utf-8"))
