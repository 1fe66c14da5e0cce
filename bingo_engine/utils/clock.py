"""Time helpers.

Timestamps are stored as naive UTC so comparisons behave the same on SQLite and
PostgreSQL.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_minutes(moment: datetime, minutes: float) -> datetime:
    return moment + timedelta(minutes=float(minutes))
