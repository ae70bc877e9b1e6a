from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from stagepipe.business.reporting.pipeline.schemas import VelocityItem
from stagepipe.core.clock import as_utc


_SECONDS_PER_DAY = 24 * 60 * 60
_TENTH = Decimal("0.1")


@dataclass(frozen=True, slots=True)
class StageEventFact:
    project_id: uuid.UUID
    from_status: str | None
    to_status: str | None
    changed_at: datetime | None


@dataclass(slots=True)
class _Accumulator:
    total_seconds: float = 0.0
    count: int = 0


# Halves round away from zero: 2.25 days reads as 2.3.
def _round_days(days: float) -> float:
    return float(Decimal(days).quantize(_TENTH, rounding=ROUND_HALF_UP))


def compute_stage_velocity(events: Iterable[StageEventFact], limit: int = 5) -> list[VelocityItem]:
    """Average days spent between consecutive matched transitions, most frequent pairs first.

    Events are re-sorted per project by time. A pair only counts when the event's
    ``from_status`` continues the previous event's ``to_status`` and time moved forward;
    broken chains are skipped without error.
    """

    usable = [event for event in events if event.changed_at is not None and event.to_status]
    usable.sort(key=lambda event: (str(event.project_id), as_utc(event.changed_at)))  # type: ignore[arg-type]

    last_seen: dict[uuid.UUID, tuple[str, datetime]] = {}
    totals: dict[tuple[str, str], _Accumulator] = {}

    for event in usable:
        changed_at = as_utc(event.changed_at)  # type: ignore[arg-type]
        previous = last_seen.get(event.project_id)
        if previous is not None and event.from_status is not None:
            previous_stage, previous_at = previous
            if previous_stage == event.from_status and changed_at > previous_at:
                key = (event.from_status, event.to_status)  # type: ignore[assignment]
                bucket = totals.setdefault(key, _Accumulator())
                bucket.total_seconds += (changed_at - previous_at).total_seconds()
                bucket.count += 1
        last_seen[event.project_id] = (event.to_status, changed_at)  # type: ignore[assignment]

    ranked = sorted(totals.items(), key=lambda item: item[1].count, reverse=True)[:limit]
    return [
        VelocityItem(
            stage=f"{from_status} → {to_status}",
            days=_round_days(bucket.total_seconds / bucket.count / _SECONDS_PER_DAY),
        )
        for (from_status, to_status), bucket in ranked
    ]
