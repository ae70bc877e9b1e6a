from __future__ import annotations

from enum import StrEnum


class ProjectStatus(StrEnum):
    BACKLOG = "Backlog"
    CALL_ARRANGED = "Call Arranged"
    BRIEF_GATHERED = "Brief Gathered"
    UI_STAGE = "UI Stage"
    DB_STAGE = "DB Stage"
    AUTH_STAGE = "Auth Stage"
    BUILD = "Build"
    QA = "QA"
    HANDOVER = "Handover"
    CLOSED = "Closed"


DEFAULT_PROJECT_STATUS = ProjectStatus.BACKLOG

# Kanban columns, in board order.
PIPELINE_STATUSES: tuple[ProjectStatus, ...] = (
    ProjectStatus.BACKLOG,
    ProjectStatus.CALL_ARRANGED,
    ProjectStatus.BRIEF_GATHERED,
    ProjectStatus.BUILD,
    ProjectStatus.CLOSED,
)

TERMINAL_STATUSES: frozenset[ProjectStatus] = frozenset({ProjectStatus.CLOSED})

ACTIVE_PIPELINE_STATUSES: tuple[ProjectStatus, ...] = tuple(
    status for status in ProjectStatus if status not in TERMINAL_STATUSES
)


def parse_project_status(value: object) -> ProjectStatus | None:
    if not isinstance(value, str):
        return None
    try:
        return ProjectStatus(value)
    except ValueError:
        return None
