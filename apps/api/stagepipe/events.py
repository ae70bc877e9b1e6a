from __future__ import annotations

import logging
import uuid
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from stagepipe.core.context import get_correlation_id


logger = logging.getLogger("stagepipe.events")


@dataclass
class InternalEvent:
    name: str
    payload: dict[str, Any]


EventHandler = Callable[[InternalEvent], None]


class InProcessEventBus:
    """Synchronous fan-out to in-process subscribers; a failing subscriber never reaches the publisher."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        if handler not in self._subscribers[event_name]:
            self._subscribers[event_name].append(handler)

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        event = InternalEvent(name=event_name, payload=payload)
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                handler(event)
            except Exception as exc:
                logger.warning(
                    "event.handler_failed",
                    exc_info=exc,
                    extra={"event_name": event_name, "error": str(exc)},
                )


event_bus = InProcessEventBus()

MAX_RECORDED_EVENTS = 1000

# The most recent envelopes published in this process, oldest first.
published_events: deque[dict[str, Any]] = deque(maxlen=MAX_RECORDED_EVENTS)


def stage_changed_envelope(
    *,
    project_id: uuid.UUID,
    stage_event_id: uuid.UUID,
    from_status: str | None,
    to_status: str,
    actor_id: str | None,
    occurred_at: datetime,
) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": "project.stage_changed",
        "occurred_at": occurred_at.isoformat(),
        "actor_user_id": actor_id,
        "payload": {
            "project_id": str(project_id),
            "stage_event_id": str(stage_event_id),
            "from_status": from_status,
            "to_status": to_status,
        },
    }


def publish(envelope: dict[str, Any]) -> None:
    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()

    published_events.append(envelope)
    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
