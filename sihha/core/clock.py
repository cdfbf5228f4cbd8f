"""
Wall-clock source for the chat core.

Timestamps are naive UTC datetimes so they compare and sort the same way in
SQLite and PostgreSQL columns.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_iso(value):
    return value.isoformat() if value else None
