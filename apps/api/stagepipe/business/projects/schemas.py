from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StatusUpdateRequest(BaseModel):
    status: str


class ProjectStatusRead(BaseModel):
    id: UUID
    status: str


class UpdatedProjectResponse(BaseModel):
    project: ProjectStatusRead


class StageEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: UUID
    project_id: UUID
    from_status: str | None
    to_status: str
    changed_by_profile_id: str | None
    changed_at: datetime


class KanbanProjectRead(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: UUID
    name: str
    status: str
    due_date: date | None
    client_id: UUID
    client_name: str | None
    created_at: datetime
