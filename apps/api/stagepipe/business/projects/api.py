from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stagepipe.business.projects.schemas import (
    KanbanProjectRead,
    StageEventRead,
    StatusUpdateRequest,
    UpdatedProjectResponse,
)
from stagepipe.business.projects.service import stage_transition_engine
from stagepipe.core.auth import Principal, get_current_principal
from stagepipe.core.clock import Clock, get_clock
from stagepipe.core.database import get_db
from stagepipe.platform.security.dependencies import get_access_scope
from stagepipe.platform.security.scope import AccessScope


router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("/kanban", response_model=list[KanbanProjectRead])
def list_pipeline_board(
    db: Session = Depends(get_db),
    scope: AccessScope = Depends(get_access_scope),
) -> list[KanbanProjectRead]:
    return stage_transition_engine.list_pipeline_board(db, scope)


@router.patch("/{project_id}/status", response_model=UpdatedProjectResponse)
def update_project_status(
    project_id: uuid.UUID,
    payload: StatusUpdateRequest,
    db: Session = Depends(get_db),
    scope: AccessScope = Depends(get_access_scope),
    principal: Principal | None = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
) -> UpdatedProjectResponse:
    project = stage_transition_engine.transition(
        db,
        scope,
        project_id,
        payload.status,
        actor_id=principal.sub if principal is not None else None,
        now=clock(),
    )
    return UpdatedProjectResponse(project=project)


@router.get("/{project_id}/stage-events", response_model=list[StageEventRead])
def list_stage_events(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    scope: AccessScope = Depends(get_access_scope),
) -> list[StageEventRead]:
    return stage_transition_engine.list_stage_events(db, scope, project_id)
