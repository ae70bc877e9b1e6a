from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stagepipe import events
from stagepipe.business.projects.models import Project, ProjectStageEvent
from stagepipe.business.projects.service import StageTransitionEngine
from stagepipe.business.workspace.models import Client
from stagepipe.core.config import get_settings
from stagepipe.core.database import Base
from stagepipe.core.errors import CollaboratorUnavailableError, ConflictError, InvalidStatusError, NotFoundError
from stagepipe.platform.security.scope import ClientScope, MemberScope


NOW = datetime(2026, 10, 19, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def tenant_id() -> uuid.UUID:
    return uuid.uuid4()


def _seed_project(session: Session, tenant_id: uuid.UUID, *, status: str = "Backlog", name: str = "Website") -> Project:
    client = Client(tenant_account_id=tenant_id, name="Acme")
    session.add(client)
    session.flush()
    project = Project(tenant_account_id=tenant_id, client_id=client.id, name=name, status=status)
    session.add(project)
    session.commit()
    return project


def _member(tenant_id: uuid.UUID) -> MemberScope:
    return MemberScope(principal_id="owner-1", tenant_account_id=tenant_id)


def _events_for(session: Session, project_id: uuid.UUID) -> list[ProjectStageEvent]:
    return list(
        session.scalars(
            select(ProjectStageEvent)
            .where(ProjectStageEvent.project_id == project_id)
            .order_by(ProjectStageEvent.changed_at.asc())
        ).all()
    )


def test_transition_appends_single_stage_event(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    result = engine.transition(db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW)

    assert result.id == project.id
    assert result.status == "Build"
    stage_events = _events_for(db_session, project.id)
    assert len(stage_events) == 1
    assert stage_events[0].from_status == "Backlog"
    assert stage_events[0].to_status == "Build"
    assert stage_events[0].changed_by_profile_id == "owner-1"
    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Build"
    assert db_session.scalar(select(Project.row_version).where(Project.id == project.id)) == 2


def test_repeating_same_status_does_not_append_event(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    engine.transition(db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW)
    again = engine.transition(
        db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW + timedelta(hours=1)
    )

    assert again.status == "Build"
    assert len(_events_for(db_session, project.id)) == 1
    stage_changed = [item for item in events.published_events if item.get("event_type") == "project.stage_changed"]
    assert len(stage_changed) == 1
    assert stage_changed[0]["payload"]["from_status"] == "Backlog"
    assert stage_changed[0]["payload"]["to_status"] == "Build"


def test_status_matches_last_event_after_sequence(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()
    sequence = ["Call Arranged", "Brief Gathered", "Brief Gathered", "Backlog", "Build", "QA", "Closed"]

    for offset, status in enumerate(sequence):
        engine.transition(
            db_session, _member(tenant_id), project.id, status, actor_id="owner-1", now=NOW + timedelta(hours=offset)
        )

    stage_events = _events_for(db_session, project.id)
    assert len(stage_events) == len(sequence) - 1
    assert stage_events[-1].to_status == "Closed"
    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Closed"
    for earlier, later in zip(stage_events, stage_events[1:]):
        assert later.from_status == earlier.to_status


def test_project_without_events_keeps_default_status(db_session: Session, tenant_id: uuid.UUID) -> None:
    client = Client(tenant_account_id=tenant_id, name="Acme")
    db_session.add(client)
    db_session.flush()
    project = Project(tenant_account_id=tenant_id, client_id=client.id, name="Fresh")
    db_session.add(project)
    db_session.commit()

    assert project.status == "Backlog"
    assert _events_for(db_session, project.id) == []


def test_unknown_status_is_rejected_without_leaking_values(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    with pytest.raises(InvalidStatusError) as exc_info:
        engine.transition(db_session, _member(tenant_id), project.id, "Shipped", actor_id="owner-1", now=NOW)

    assert "Backlog" not in exc_info.value.message
    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Backlog"
    assert _events_for(db_session, project.id) == []


def test_out_of_scope_project_looks_missing(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    with pytest.raises(NotFoundError):
        engine.transition(db_session, _member(uuid.uuid4()), project.id, "Build", actor_id="intruder", now=NOW)
    with pytest.raises(NotFoundError):
        engine.transition(db_session, _member(tenant_id), uuid.uuid4(), "Build", actor_id="owner-1", now=NOW)

    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Backlog"


def test_client_scope_limits_transitions_to_member_clients(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    with pytest.raises(NotFoundError):
        engine.transition(
            db_session,
            ClientScope(principal_id="client-user", allowed_client_ids=frozenset()),
            project.id,
            "Build",
            actor_id="client-user",
            now=NOW,
        )
    with pytest.raises(NotFoundError):
        engine.transition(
            db_session,
            ClientScope(principal_id="client-user", allowed_client_ids=frozenset({uuid.uuid4()})),
            project.id,
            "Build",
            actor_id="client-user",
            now=NOW,
        )

    result = engine.transition(
        db_session,
        ClientScope(principal_id="client-user", allowed_client_ids=frozenset({project.client_id})),
        project.id,
        "Build",
        actor_id="client-user",
        now=NOW,
    )
    assert result.status == "Build"


class FailingEventEngine(StageTransitionEngine):
    def _append_stage_event(self, session: Session, **kwargs: object) -> ProjectStageEvent:
        raise SQLAlchemyError("stage event insert failed")


def test_failed_event_insert_rolls_back_status(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = FailingEventEngine()

    with pytest.raises(CollaboratorUnavailableError):
        engine.transition(db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW)

    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Backlog"
    assert db_session.scalar(select(Project.row_version).where(Project.id == project.id)) == 1
    assert _events_for(db_session, project.id) == []
    assert list(events.published_events) == []


class StaleReadEngine(StageTransitionEngine):
    def _load_project(self, session: Session, scope: object, project_id: uuid.UUID) -> object:
        row = StageTransitionEngine._load_project(self, session, scope, project_id)  # type: ignore[arg-type]
        if row is None:
            return None
        return SimpleNamespace(id=row.id, status=row.status, row_version=row.row_version + 100)


def test_persistent_conflict_is_reported(
    db_session: Session,
    tenant_id: uuid.UUID,
    caplog: pytest.LogCaptureFixture,
) -> None:
    caplog.set_level(logging.INFO)
    project = _seed_project(db_session, tenant_id)
    engine = StaleReadEngine(max_attempts=2)

    with pytest.raises(ConflictError):
        engine.transition(db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW)

    assert db_session.scalar(select(Project.status).where(Project.id == project.id)) == "Backlog"
    assert _events_for(db_session, project.id) == []
    conflict_records = [record for record in caplog.records if record.getMessage() == "project.transition.conflict"]
    assert conflict_records
    assert getattr(conflict_records[-1], "project_id", None) == str(project.id)
    assert getattr(conflict_records[-1], "attempted_status", None) == "Build"


def test_concurrent_writer_is_retried_with_fresh_state(tmp_path: Path, tenant_id: uuid.UUID) -> None:
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'transitions.db'}",
        connect_args={"check_same_thread": False},
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as setup_session:
        project_id = _seed_project(setup_session, tenant_id).id

    class InterleavedEngine(StageTransitionEngine):
        interfered = False

        def _load_project(self, session: Session, scope: object, project_id: uuid.UUID) -> object:
            row = StageTransitionEngine._load_project(self, session, scope, project_id)  # type: ignore[arg-type]
            if not InterleavedEngine.interfered:
                InterleavedEngine.interfered = True
                with SessionLocal() as other_session:
                    StageTransitionEngine().transition(
                        other_session, _member(tenant_id), project_id, "Call Arranged", actor_id="other", now=NOW
                    )
            return row

    try:
        with SessionLocal() as session:
            result = InterleavedEngine().transition(
                session,
                _member(tenant_id),
                project_id,
                "Build",
                actor_id="owner-1",
                now=NOW + timedelta(minutes=5),
            )
            assert result.status == "Build"

        with SessionLocal() as check_session:
            stage_events = _events_for(check_session, project_id)
            assert [(item.from_status, item.to_status) for item in stage_events] == [
                ("Backlog", "Call Arranged"),
                ("Call Arranged", "Build"),
            ]
            assert check_session.scalar(select(Project.row_version).where(Project.id == project_id)) == 3
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_open_stage_history_records_initial_status_once(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()

    first = engine.open_stage_history(db_session, _member(tenant_id), project.id, actor_id="owner-1", now=NOW)
    second = engine.open_stage_history(db_session, _member(tenant_id), project.id, actor_id="owner-1", now=NOW)

    assert first is not None
    assert first.from_status is None
    assert first.to_status == "Backlog"
    assert second is None
    assert db_session.scalar(
        select(func.count(ProjectStageEvent.id)).where(ProjectStageEvent.project_id == project.id)
    ) == 1


def test_list_stage_events_is_ordered_and_scoped(db_session: Session, tenant_id: uuid.UUID) -> None:
    project = _seed_project(db_session, tenant_id)
    engine = StageTransitionEngine()
    engine.transition(db_session, _member(tenant_id), project.id, "Build", actor_id="owner-1", now=NOW)
    engine.transition(
        db_session, _member(tenant_id), project.id, "QA", actor_id="owner-1", now=NOW + timedelta(days=2)
    )

    history = engine.list_stage_events(db_session, _member(tenant_id), project.id)
    assert [(item.from_status, item.to_status) for item in history] == [("Backlog", "Build"), ("Build", "QA")]

    with pytest.raises(NotFoundError):
        engine.list_stage_events(db_session, _member(uuid.uuid4()), project.id)


def test_pipeline_board_lists_kanban_columns_only(db_session: Session, tenant_id: uuid.UUID) -> None:
    backlog = _seed_project(db_session, tenant_id, status="Backlog", name="Backlog project")
    _seed_project(db_session, tenant_id, status="QA", name="QA project")
    closed = _seed_project(db_session, tenant_id, status="Closed", name="Closed project")
    _seed_project(db_session, uuid.uuid4(), status="Build", name="Other tenant")
    engine = StageTransitionEngine()

    board = engine.list_pipeline_board(db_session, _member(tenant_id))

    assert {item.id for item in board} == {backlog.id, closed.id}
    assert all(item.client_name == "Acme" for item in board)
    assert engine.list_pipeline_board(db_session, ClientScope(principal_id="c", allowed_client_ids=frozenset())) == []


def test_failing_subscriber_does_not_undo_committed_transition(
    db_session: Session,
    tenant_id: uuid.UUID,
    caplog: pytest.LogCaptureFixture,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    caplog.set_level(logging.WARNING)
    project = _seed_project(db_session, tenant_id)
    bus = events.InProcessEventBus()

    def broken_handler(event: events.InternalEvent) -> None:
        raise RuntimeError("subscriber offline")

    bus.subscribe("project.stage_changed", broken_handler)
    monkeypatch.setattr(events, "event_bus", bus)

    result = StageTransitionEngine().transition(db_session, _member(tenant_id), project.id, "QA", now=NOW)

    assert result.status == "QA"
    assert len(_events_for(db_session, project.id)) == 1
    records = [record for record in caplog.records if record.getMessage() == "event.handler_failed"]
    assert records
    assert getattr(records[-1], "event_name", None) == "project.stage_changed"


def test_published_event_record_is_bounded() -> None:
    for _ in range(events.MAX_RECORDED_EVENTS + 5):
        events.publish({"event_type": "test.noop", "payload": {}})

    assert len(events.published_events) == events.MAX_RECORDED_EVENTS
    events.published_events.clear()
