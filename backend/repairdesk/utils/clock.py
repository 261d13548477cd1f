"""Single wall-clock source for persisted timestamps.

Timestamps are naive server-local datetimes so that day windows used by the
dashboard line up with the shop's calendar day. Call ``clock.now()`` through the
module (not ``from ... import now``) so tests can freeze it with monkeypatch.
"""
from __future__ import annotations
from datetime import datetime, timedelta


def now() -> datetime:
    return datetime.now()


def day_window(moment: datetime | None = None):
    """Return ``(start_of_day, start_of_day + 24h)`` for the given local moment."""
    moment = moment or now()
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)

__all__ = ['now', 'day_window']
