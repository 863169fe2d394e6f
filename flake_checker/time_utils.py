"""
Shared datetime helpers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

SECONDS_PER_DAY = 86400


def ensure_utc(dt: datetime) -> datetime:
    """Return a timezone-aware UTC datetime."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    """Capture the current time; called once per run."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[datetime]:
    """Parse an ISO 8601 string or a Unix epoch and normalize it to UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ensure_utc(parsed)


def days_old(last_modified: Optional[int], now: datetime) -> Optional[int]:
    """Whole days between a Unix timestamp and ``now``, never negative."""
    if last_modified is None:
        return None
    elapsed = int(ensure_utc(now).timestamp()) - int(last_modified)
    # A timestamp in the future counts as fresh.
    return max(0, elapsed // SECONDS_PER_DAY)
