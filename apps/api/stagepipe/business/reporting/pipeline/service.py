from __future__ import annotations

import contextvars
import logging
import time
import uuid
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from stagepipe.business.billing.models import Invoice
from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.business.projects.statuses import ACTIVE_PIPELINE_STATUSES
from stagepipe.business.reporting.pipeline.formatting import describe_transition, due_in_days, format_time_ago
from stagepipe.business.reporting.pipeline.repository import PipelineActivityRepository, PipelineProjectRepository
from stagepipe.business.reporting.pipeline.revenue import InvoiceFact, summarize_revenue
from stagepipe.business.reporting.pipeline.schemas import (
    ActivityFeedItem,
    DashboardRead,
    DashboardSectionError,
    PipelineOverviewItem,
    RevenuePerformanceItem,
    UpcomingProject,
    VelocityItem,
    WinRate,
)
from stagepipe.business.reporting.pipeline.velocity import StageEventFact, compute_stage_velocity
from stagepipe.business.workspace.models import Client, Profile
from stagepipe.core.config import get_settings
from stagepipe.core.errors import CollaboratorUnavailableError
from stagepipe.metrics import observe_dashboard_section, observe_dashboard_section_failure
from stagepipe.otel import traced
from stagepipe.platform.security.rls import restrict_to_projects
from stagepipe.platform.security.scope import AccessScope, ClientScope, MemberScope


logger = logging.getLogger("stagepipe.reporting.pipeline")

ProjectIds = frozenset[uuid.UUID] | None
SectionRunner = Callable[[Session, AccessScope, ProjectIds, datetime], Any]

SECTIONS = ("pipeline", "revenue", "velocity", "upcoming", "activity")


@dataclass(slots=True)
class PipelineAnalyticsService:
    project_repository: PipelineProjectRepository = field(default_factory=PipelineProjectRepository)
    activity_repository: PipelineActivityRepository = field(default_factory=PipelineActivityRepository)
    max_workers: int | None = None
    section_timeout_seconds: float | None = None
    upcoming_limit: int = 6
    activity_limit: int = 6
    velocity_limit: int = 5

    def get_dashboard(
        self,
        session: Session,
        scope: AccessScope,
        *,
        session_factory: sessionmaker[Session],
        now: datetime,
    ) -> DashboardRead:
        """Compute every dashboard section concurrently; a failed section is emptied and listed in ``errors``."""

        if isinstance(scope, ClientScope) and not scope.allowed_client_ids:
            return DashboardRead.empty()

        try:
            project_ids = self.accessible_project_ids(session, scope)
        except SQLAlchemyError as exc:
            logger.exception("dashboard.scope_failed", extra={"principal_id": scope.principal_id, "error": str(exc)})
            raise CollaboratorUnavailableError("Unable to load dashboard.") from exc

        if project_ids is not None and not project_ids:
            return DashboardRead.empty()

        runners: dict[str, SectionRunner] = {
            "pipeline": self.pipeline_overview,
            "revenue": self.revenue_performance,
            "velocity": self.velocity_by_stage,
            "upcoming": self.upcoming_projects,
            "activity": self.activity_feed,
        }
        results, failed = self._run_sections(runners, session_factory, scope, project_ids, now)

        dashboard = DashboardRead.empty()
        if "pipeline" in results:
            dashboard.pipeline_overview = results["pipeline"]
        if "revenue" in results:
            dashboard.revenue_performance, dashboard.win_rate = results["revenue"]
        else:
            dashboard.win_rate = WinRate()
        if "velocity" in results:
            dashboard.velocity_by_stage = results["velocity"]
        if "upcoming" in results:
            dashboard.upcoming_projects = results["upcoming"]
        if "activity" in results:
            dashboard.activity_feed = results["activity"]
        dashboard.errors = [
            DashboardSectionError(section=section, message=f"Unable to load {section}.")
            for section in SECTIONS
            if section in failed
        ]
        return dashboard

    def accessible_project_ids(self, session: Session, scope: AccessScope) -> ProjectIds:
        """Project ids visible to ``scope``; ``None`` for a member with no tenant account (unrestricted)."""

        if isinstance(scope, MemberScope) and scope.tenant_account_id is None:
            return None
        query = self.project_repository.apply_scope_query(select(Project.id), scope)
        return frozenset(session.scalars(query).all())

    def pipeline_overview(
        self, session: Session, scope: AccessScope, project_ids: ProjectIds, now: datetime
    ) -> list[PipelineOverviewItem]:
        active = [status.value for status in ACTIVE_PIPELINE_STATUSES]
        query = (
            select(Project.status, func.count(Project.id))
            .where(and_(Project.archived.is_(False), Project.status.in_(active)))
            .group_by(Project.status)
        )
        query = restrict_to_projects(self.project_repository.apply_scope_query(query, scope), Project.id, project_ids)
        counts = {status: count for status, count in session.execute(query).all()}
        return [
            PipelineOverviewItem(stage=status, count=counts[status])
            for status in active
            if counts.get(status, 0) > 0
        ]

    def revenue_performance(
        self, session: Session, scope: AccessScope, project_ids: ProjectIds, now: datetime
    ) -> tuple[list[RevenuePerformanceItem], WinRate]:
        query = select(Invoice.status, Invoice.amount, Invoice.issued_at).join(Project, Project.id == Invoice.project_id)
        query = restrict_to_projects(self.project_repository.apply_scope_query(query, scope), Invoice.project_id, project_ids)
        facts = [
            InvoiceFact(status=status, amount=Decimal(amount or 0), issued_at=issued_at)
            for status, amount, issued_at in session.execute(query).all()
        ]
        return summarize_revenue(facts, now)

    def velocity_by_stage(
        self, session: Session, scope: AccessScope, project_ids: ProjectIds, now: datetime
    ) -> list[VelocityItem]:
        query = select(
            ProjectStageEvent.project_id,
            ProjectStageEvent.from_status,
            ProjectStageEvent.to_status,
            ProjectStageEvent.changed_at,
        )
        query = self.activity_repository.apply_scope_query(query, scope)
        query = restrict_to_projects(query, ProjectStageEvent.project_id, project_ids).order_by(
            ProjectStageEvent.project_id.asc(), ProjectStageEvent.changed_at.asc()
        )
        facts = [
            StageEventFact(project_id=project_id, from_status=from_status, to_status=to_status, changed_at=changed_at)
            for project_id, from_status, to_status, changed_at in session.execute(query).all()
        ]
        return compute_stage_velocity(facts, limit=self.velocity_limit)

    def upcoming_projects(
        self, session: Session, scope: AccessScope, project_ids: ProjectIds, now: datetime
    ) -> list[UpcomingProject]:
        query = (
            select(Project.id, Project.name, Project.due_date, Client.name)
            .outerjoin(Client, Client.id == Project.client_id)
            .where(and_(Project.due_date.is_not(None), Project.archived.is_(False)))
        )
        query = restrict_to_projects(self.project_repository.apply_scope_query(query, scope), Project.id, project_ids)
        rows = session.execute(query.order_by(Project.due_date.asc()).limit(self.upcoming_limit)).all()
        return [
            UpcomingProject(
                id=project_id,
                name=name,
                client=client_name or "Unknown client",
                due_in=due_in_days(due_date, now),
            )
            for project_id, name, due_date, client_name in rows
        ]

    def activity_feed(
        self, session: Session, scope: AccessScope, project_ids: ProjectIds, now: datetime
    ) -> list[ActivityFeedItem]:
        # Members without a tenant account have nothing to scope the feed by.
        if project_ids is None:
            return []
        query = select(
            ProjectStageEvent.id,
            ProjectStageEvent.from_status,
            ProjectStageEvent.to_status,
            ProjectStageEvent.changed_at,
            Project.name,
            Profile.full_name,
        ).select_from(ProjectStageEvent)
        query = self.activity_repository.apply_scope_query(query, scope)
        query = query.outerjoin(Profile, Profile.id == ProjectStageEvent.changed_by_profile_id)
        query = restrict_to_projects(query, ProjectStageEvent.project_id, project_ids)
        rows = session.execute(
            query.order_by(ProjectStageEvent.changed_at.desc()).limit(self.activity_limit)
        ).all()
        return [
            ActivityFeedItem(
                id=event_id,
                author=full_name or "System",
                description=f"{project_name or 'Project update'} · {describe_transition(from_status, to_status)}",
                time_ago=format_time_ago(changed_at, now),
            )
            for event_id, from_status, to_status, changed_at, project_name, full_name in rows
        ]

    def _run_sections(
        self,
        runners: dict[str, SectionRunner],
        session_factory: sessionmaker[Session],
        scope: AccessScope,
        project_ids: ProjectIds,
        now: datetime,
    ) -> tuple[dict[str, Any], set[str]]:
        settings = get_settings()
        max_workers = self.max_workers or settings.analytics_max_workers
        timeout = self.section_timeout_seconds or settings.analytics_section_timeout_seconds

        results: dict[str, Any] = {}
        failed: set[str] = set()
        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="dashboard")
        try:
            futures: dict[Future[Any], str] = {}
            for section, runner in runners.items():
                context = contextvars.copy_context()
                future = executor.submit(
                    context.run, self._run_section, section, runner, session_factory, scope, project_ids, now
                )
                futures[future] = section

            done, not_done = wait(futures, timeout=timeout)
            for future in not_done:
                section = futures[future]
                future.cancel()
                failed.add(section)
                observe_dashboard_section_failure(section)
                logger.warning("dashboard.section_failed", extra={"section": section, "error": "timed out"})

            for future in done:
                section = futures[future]
                try:
                    results[section] = future.result()
                except Exception as exc:
                    failed.add(section)
                    observe_dashboard_section_failure(section)
                    logger.warning(
                        "dashboard.section_failed",
                        exc_info=exc,
                        extra={"section": section, "principal_id": scope.principal_id, "error": str(exc)},
                    )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return results, failed

    @staticmethod
    def _run_section(
        section: str,
        runner: SectionRunner,
        session_factory: sessionmaker[Session],
        scope: AccessScope,
        project_ids: ProjectIds,
        now: datetime,
    ) -> Any:
        started = time.perf_counter()
        try:
            with traced("stagepipe.reporting.pipeline", f"dashboard.{section}", principal_id=scope.principal_id):
                with session_factory() as session:
                    return runner(session, scope, project_ids, now)
        finally:
            observe_dashboard_section(section, time.perf_counter() - started)


pipeline_analytics_service = PipelineAnalyticsService()
