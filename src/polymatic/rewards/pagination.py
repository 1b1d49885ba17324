"""Cursor-based pagination for the reward ledger.

Keyset pagination over (created_at DESC, id DESC). The cursor encodes the
last row's position as base64 JSON so clients treat it as opaque.
"""

from __future__ import annotations

import base64
import json
import uuid
from datetime import datetime

from sqlalchemy import Select, and_, or_

from polymatic.db.models import RewardTransaction


def encode_cursor(created_at: datetime, tx_id: str) -> str:
    """Encode a cursor from ledger row fields."""
    payload = {"ts": created_at.isoformat(), "id": tx_id}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Decode a cursor into (created_at, id).

    Raises:
        ValueError: If cursor is malformed.
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode())
        data = json.loads(raw)
        return datetime.fromisoformat(data["ts"]), str(uuid.UUID(str(data["id"])))
    except Exception as e:
        msg = f"Invalid cursor: {e}"
        raise ValueError(msg) from e


def apply_cursor(query: Select, cursor: str | None) -> Select:  # type: ignore[type-arg]
    """Restrict a ledger query to rows strictly after the cursor position."""
    if cursor is None:
        return query

    cursor_ts, cursor_id = decode_cursor(cursor)
    return query.where(
        or_(
            RewardTransaction.created_at < cursor_ts,
            and_(RewardTransaction.created_at == cursor_ts, RewardTransaction.id < cursor_id),
        )
    )
