from __future__ import annotations

from stagepipe.business.projects.repository import ProjectRepository, ProjectStageEventRepository


class PipelineProjectRepository(ProjectRepository):
    resource = "reports.pipeline.project"


class PipelineActivityRepository(ProjectStageEventRepository):
    resource = "reports.pipeline.activity"
