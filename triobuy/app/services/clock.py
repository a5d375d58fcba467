"""
services/clock.py — Time source for the services.

Services call clock.utcnow() (never datetime.now directly) so tests can move
time by patching this one function.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes for timezone=True columns; they are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
