from __future__ import annotations

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from stagepipe import events
from stagepipe.business.projects.models import Project
from stagepipe.business.workspace.models import AccountMember, Client, Profile
from stagepipe.core.auth import Principal, get_current_principal
from stagepipe.core.config import get_settings
from stagepipe.core.database import Base, get_db
from stagepipe.main import app


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
def project_id(db_session: Session) -> uuid.UUID:
    account_id = uuid.uuid4()
    client = Client(tenant_account_id=account_id, name="Corr Client")
    db_session.add_all(
        [client, Profile(id="user-1", role="owner"), AccountMember(account_id=account_id, profile_id="user-1")]
    )
    db_session.flush()
    project = Project(tenant_account_id=account_id, client_id=client.id, name="Corr Project")
    db_session.add(project)
    db_session.commit()
    return project.id


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_principal] = lambda: Principal(sub="user-1")
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.get(f"/projects/{uuid.uuid4()}/stage-events")
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    assert response.headers.get("x-request-id") == header_value
    body = response.json()
    assert body["correlation_id"] == header_value


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get(f"/projects/{uuid.uuid4()}/stage-events", headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.headers.get("x-request-id") != "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_oversized_correlation_id_is_replaced(client: TestClient) -> None:
    response = client.get(f"/projects/{uuid.uuid4()}/stage-events", headers={"X-Correlation-Id": "x" * 500})
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    assert header_value != "x" * 500
    assert response.json()["correlation_id"] == header_value


def test_event_envelope_includes_correlation_id(client: TestClient, project_id: uuid.UUID) -> None:
    response = client.patch(
        f"/projects/{project_id}/status",
        json={"status": "Call Arranged"},
        headers={"X-Correlation-Id": "corr-event-1"},
    )
    assert response.status_code == 200

    stage_events = [item for item in events.published_events if item.get("event_type") == "project.stage_changed"]
    assert stage_events
    assert stage_events[-1].get("correlation_id") == "corr-event-1"
    assert stage_events[-1]["payload"]["from_status"] == "Backlog"
    assert stage_events[-1]["payload"]["to_status"] == "Call Arranged"
