"""Calendar-day bucketing in a caller-supplied timezone.

Reward totals are reported per local calendar day, so a grant at 23:30 in
New York counts toward that day even though it is already tomorrow in UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pendulum


def resolve_timezone(header_tz: str | None = None, client_tz: str | None = None) -> str:
    """Pick the first valid IANA zone name: header, then client hint, else UTC."""
    for candidate in (header_tz, client_tz):
        if candidate and is_valid_timezone(candidate.strip()):
            return candidate.strip()
    return "UTC"


def is_valid_timezone(name: str) -> bool:
    if not name:
        return False
    try:
        pendulum.timezone(name)
    except (ValueError, LookupError):
        return False
    return True


def day_key(dt: datetime, tz: str = "UTC") -> str:
    """Format ``dt`` as ``YYYY-MM-DD`` in ``tz``. Naive datetimes are taken as UTC."""
    return pendulum.instance(dt, tz="UTC").in_timezone(tz).to_date_string()


def today_key(tz: str = "UTC", now: datetime | None = None) -> str:
    return day_key(now or datetime.now(timezone.utc), tz)


def day_keys_back(days: int, tz: str = "UTC", now: datetime | None = None) -> list[str]:
    """Day keys for the last ``days`` local days, oldest first, ending today."""
    today = pendulum.instance(now or datetime.now(timezone.utc), tz="UTC").in_timezone(tz)
    return [today.subtract(days=i).to_date_string() for i in range(days - 1, -1, -1)]


def local_day_start(days_back: int, tz: str = "UTC", now: datetime | None = None) -> datetime:
    """UTC instant at which the local day ``days_back`` days before today began."""
    local = pendulum.instance(now or datetime.now(timezone.utc), tz="UTC").in_timezone(tz)
    start = local.start_of("day").subtract(days=days_back)
    return datetime.fromtimestamp(start.timestamp(), tz=timezone.utc)
