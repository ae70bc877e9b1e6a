from __future__ import annotations

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from stagepipe.business.billing.sync import CeleryBillingReconciler, run_billing_reconciliation
from stagepipe.core.auth import Principal, get_current_principal
from stagepipe.core.config import get_settings
from stagepipe.core.database import get_db
from stagepipe.platform.security.resolver import access_scope_resolver
from stagepipe.platform.security.scope import AccessScope


def get_billing_reconciler() -> CeleryBillingReconciler:
    return CeleryBillingReconciler()


def get_access_scope(
    request: Request,
    background_tasks: BackgroundTasks,
    principal: Principal | None = Depends(get_current_principal),
    db: Session = Depends(get_db),
    reconciler: CeleryBillingReconciler = Depends(get_billing_reconciler),
) -> AccessScope:
    def schedule(account_id: str) -> None:
        background_tasks.add_task(run_billing_reconciliation, reconciler, account_id)

    return access_scope_resolver.resolve(
        db,
        principal,
        correlation_id=getattr(request.state, "correlation_id", None),
        schedule_reconciliation=schedule if get_settings().billing_sync_enabled else None,
    )
