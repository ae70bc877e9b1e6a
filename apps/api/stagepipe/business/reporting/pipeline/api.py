from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, sessionmaker

from stagepipe.business.reporting.pipeline.schemas import DashboardRead
from stagepipe.business.reporting.pipeline.service import pipeline_analytics_service
from stagepipe.core.clock import Clock, get_clock
from stagepipe.core.database import get_db, get_session_factory
from stagepipe.platform.security.dependencies import get_access_scope
from stagepipe.platform.security.scope import AccessScope


router = APIRouter(prefix="/dashboard", tags=["reports", "dashboard"])


@router.get("", response_model=DashboardRead)
def get_dashboard(
    db: Session = Depends(get_db),
    scope: AccessScope = Depends(get_access_scope),
    session_factory: sessionmaker[Session] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> DashboardRead:
    return pipeline_analytics_service.get_dashboard(db, scope, session_factory=session_factory, now=clock())
