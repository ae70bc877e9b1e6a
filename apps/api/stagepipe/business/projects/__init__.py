from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.business.projects.statuses import (
    ACTIVE_PIPELINE_STATUSES,
    DEFAULT_PROJECT_STATUS,
    PIPELINE_STATUSES,
    TERMINAL_STATUSES,
    ProjectStatus,
    parse_project_status,
)

__all__ = [
    "ACTIVE_PIPELINE_STATUSES",
    "DEFAULT_PROJECT_STATUS",
    "PIPELINE_STATUSES",
    "TERMINAL_STATUSES",
    "Project",
    "ProjectStageEvent",
    "ProjectStatus",
    "parse_project_status",
]
