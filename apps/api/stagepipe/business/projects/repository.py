from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.platform.security.repository import ScopedRepository
from stagepipe.platform.security.scope import AccessScope


class ProjectRepository(ScopedRepository):
    resource = "projects.project"


class ProjectStageEventRepository(ScopedRepository):
    resource = "projects.stage_event"

    def apply_scope_query(self, query: Select[Any], scope: AccessScope) -> Select[Any]:
        joined = query.join(Project, Project.id == ProjectStageEvent.project_id)
        return super().apply_scope_query(joined, scope)
