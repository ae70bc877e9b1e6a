from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stagepipe import events
from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.business.projects.repository import ProjectRepository
from stagepipe.business.projects.schemas import KanbanProjectRead, ProjectStatusRead, StageEventRead
from stagepipe.business.projects.statuses import PIPELINE_STATUSES, ProjectStatus, parse_project_status
from stagepipe.business.workspace.models import Client
from stagepipe.core.clock import Clock, utcnow
from stagepipe.core.config import get_settings
from stagepipe.core.errors import CollaboratorUnavailableError, ConflictError, InvalidStatusError, NotFoundError
from stagepipe.metrics import observe_stage_transition
from stagepipe.otel import traced
from stagepipe.platform.security.scope import AccessScope


logger = logging.getLogger("stagepipe.projects")


class _StaleProjectState(Exception):
    """Another writer changed the project between our read and our write."""


@dataclass(slots=True)
class StageTransitionEngine:
    """Sole writer of ``Project.status``; every accepted change appends one stage event in the same transaction."""

    projects: ProjectRepository = field(default_factory=ProjectRepository)
    clock: Clock = utcnow
    max_attempts: int | None = None

    def transition(
        self,
        session: Session,
        scope: AccessScope,
        project_id: uuid.UUID,
        requested_status: str,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
    ) -> ProjectStatusRead:
        log_extra: dict[str, Any] = {
            "project_id": str(project_id),
            "principal_id": actor_id,
            "attempted_status": requested_status,
        }
        target = parse_project_status(requested_status)
        if target is None:
            observe_stage_transition("invalid_status")
            logger.info("project.transition.invalid_status", extra=log_extra)
            raise InvalidStatusError()

        attempts = max(1, self.max_attempts or get_settings().transition_max_attempts)
        with traced("stagepipe.projects", "project.transition", project_id=project_id, attempted_status=target.value):
            for attempt in range(1, attempts + 1):
                moment = now or self.clock()
                try:
                    current = self._load_project(session, scope, project_id)
                    if current is None:
                        observe_stage_transition("not_found")
                        logger.info("project.transition.not_found", extra=log_extra)
                        raise NotFoundError()

                    previous_status = current.status
                    if previous_status == target.value:
                        observe_stage_transition("unchanged")
                        return ProjectStatusRead(id=project_id, status=target.value)

                    self._compare_and_set(session, current.id, previous_status, current.row_version, target, moment)
                    stage_event = self._append_stage_event(
                        session,
                        project_id=project_id,
                        from_status=previous_status,
                        to_status=target.value,
                        actor_id=actor_id,
                        changed_at=moment,
                    )
                    session.commit()
                except _StaleProjectState:
                    session.rollback()
                    logger.info("project.transition.retry", extra={**log_extra, "attempt": attempt})
                    continue
                except SQLAlchemyError as exc:
                    session.rollback()
                    observe_stage_transition("failed")
                    logger.exception("project.transition.failed", extra={**log_extra, "error": str(exc)})
                    raise CollaboratorUnavailableError() from exc

                observe_stage_transition("applied")
                logger.info(
                    "project.transition.applied",
                    extra={**log_extra, "previous_status": previous_status, "attempt": attempt},
                )
                events.publish(
                    events.stage_changed_envelope(
                        project_id=project_id,
                        stage_event_id=stage_event.id,
                        from_status=previous_status,
                        to_status=target.value,
                        actor_id=actor_id,
                        occurred_at=moment,
                    )
                )
                return ProjectStatusRead(id=project_id, status=target.value)

        observe_stage_transition("conflict")
        logger.warning("project.transition.conflict", extra={**log_extra, "attempt": attempts})
        raise ConflictError()

    def open_stage_history(
        self,
        session: Session,
        scope: AccessScope,
        project_id: uuid.UUID,
        *,
        actor_id: str | None = None,
        now: datetime | None = None,
    ) -> StageEventRead | None:
        """Record the project's starting status as its first stage event; no-op once history exists."""

        try:
            current = self._load_project(session, scope, project_id)
            if current is None:
                raise NotFoundError()
            existing = session.scalar(
                select(ProjectStageEvent.id).where(ProjectStageEvent.project_id == project_id).limit(1)
            )
            if existing is not None:
                return None
            stage_event = self._append_stage_event(
                session,
                project_id=project_id,
                from_status=None,
                to_status=current.status,
                actor_id=actor_id,
                changed_at=now or self.clock(),
            )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "project.history.open_failed",
                extra={"project_id": str(project_id), "principal_id": actor_id, "error": str(exc)},
            )
            raise CollaboratorUnavailableError() from exc
        return StageEventRead.model_validate(stage_event)

    def list_stage_events(self, session: Session, scope: AccessScope, project_id: uuid.UUID) -> list[StageEventRead]:
        try:
            if self._load_project(session, scope, project_id) is None:
                raise NotFoundError()
            rows = session.scalars(
                select(ProjectStageEvent)
                .where(ProjectStageEvent.project_id == project_id)
                .order_by(ProjectStageEvent.changed_at.asc(), ProjectStageEvent.id.asc())
            ).all()
        except SQLAlchemyError as exc:
            logger.exception("project.history.read_failed", extra={"project_id": str(project_id), "error": str(exc)})
            raise CollaboratorUnavailableError("Unable to load project history.") from exc
        return [StageEventRead.model_validate(row) for row in rows]

    def list_pipeline_board(self, session: Session, scope: AccessScope) -> list[KanbanProjectRead]:
        query = (
            select(Project, Client.name)
            .outerjoin(Client, Client.id == Project.client_id)
            .where(Project.status.in_([status.value for status in PIPELINE_STATUSES]))
            .order_by(Project.created_at.desc())
        )
        try:
            rows = session.execute(self.projects.apply_scope_query(query, scope)).all()
        except SQLAlchemyError as exc:
            logger.exception("project.board.read_failed", extra={"error": str(exc)})
            raise CollaboratorUnavailableError("Unable to load projects.") from exc
        return [
            KanbanProjectRead(
                id=project.id,
                name=project.name,
                status=project.status,
                due_date=project.due_date,
                client_id=project.client_id,
                client_name=client_name,
                created_at=project.created_at,
            )
            for project, client_name in rows
        ]

    def _load_project(self, session: Session, scope: AccessScope, project_id: uuid.UUID) -> Any:
        query = select(Project.id, Project.status, Project.row_version).where(Project.id == project_id)
        return session.execute(self.projects.apply_scope_query(query, scope)).one_or_none()

    def _compare_and_set(
        self,
        session: Session,
        project_id: uuid.UUID,
        previous_status: str,
        row_version: int,
        target: ProjectStatus,
        moment: datetime,
    ) -> None:
        result = session.execute(
            update(Project)
            .where(
                and_(
                    Project.id == project_id,
                    Project.status == previous_status,
                    Project.row_version == row_version,
                )
            )
            .values(status=target.value, row_version=Project.row_version + 1, updated_at=moment)
        )
        if result.rowcount == 0:
            raise _StaleProjectState()

    def _append_stage_event(
        self,
        session: Session,
        *,
        project_id: uuid.UUID,
        from_status: str | None,
        to_status: str,
        actor_id: str | None,
        changed_at: datetime,
    ) -> ProjectStageEvent:
        stage_event = ProjectStageEvent(
            project_id=project_id,
            from_status=from_status,
            to_status=to_status,
            changed_by_profile_id=actor_id,
            changed_at=changed_at,
        )
        session.add(stage_event)
        session.flush()
        return stage_event


stage_transition_engine = StageTransitionEngine()
