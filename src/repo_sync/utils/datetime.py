"""Timestamp helpers for envelopes and commit messages.

Envelope times are written as aware UTC ISO-8601 strings so every replica
produces comparable values; commit messages use the local wall clock.
"""

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values are returned unchanged."""
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def envelope_timestamp(dt: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp stored as an envelope's ``lastSyncTime``."""
    return as_utc(dt or now_utc()).astimezone(timezone.utc).isoformat()


def commit_timestamp(dt: Optional[datetime] = None) -> str:
    """Human-readable local timestamp used in commit messages."""
    return as_utc(dt or now_utc()).astimezone().strftime("%Y-%m-%d %H:%M:%S")
