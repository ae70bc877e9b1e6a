from __future__ import annotations

import math
from datetime import date, datetime, time, timezone

from stagepipe.core.clock import as_utc


_SECONDS_PER_DAY = 24 * 60 * 60


def format_time_ago(moment: datetime, now: datetime) -> str:
    elapsed = (as_utc(now) - as_utc(moment)).total_seconds()
    minutes = math.floor(elapsed / 60) if elapsed > 0 else 0
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    days = hours // 24
    if days < 7:
        return f"{days}d ago"
    return as_utc(moment).date().isoformat()


def describe_transition(from_status: str | None, to_status: str | None) -> str:
    if from_status and to_status and from_status != to_status:
        return f"moved from {from_status} to {to_status}"
    if to_status:
        return f"moved into {to_status}"
    return "was updated"


def due_in_days(due_date: date, now: datetime) -> int:
    """Whole days until ``due_date`` (taken as midnight UTC), rounded up; overdue items report 0."""

    due_at = datetime.combine(due_date, time.min, tzinfo=timezone.utc)
    remaining = (due_at - as_utc(now)).total_seconds() / _SECONDS_PER_DAY
    return max(0, math.ceil(remaining))
