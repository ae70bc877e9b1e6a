from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

from stagepipe.core.clock import as_utc, utcnow
from stagepipe.metrics import observe_billing_sync_failure
from stagepipe.otel import traced


logger = logging.getLogger("stagepipe.billing")

_PAID_SUBSCRIPTION_STATUSES = {"active", "trialing", "past_due"}


class PaymentProcessorClient(Protocol):
    def fetch_subscription(self, account_id: str) -> dict[str, Any] | None: ...


class StubPaymentProcessorClient:
    """Local stand-in for the payment processor; every workspace is on the free plan."""

    def fetch_subscription(self, account_id: str) -> dict[str, Any] | None:
        with traced("stagepipe.billing", "billing.fetch_subscription", account_id=account_id):
            return None


class BillingReconciler(Protocol):
    def reconcile(self, account_id: str) -> None: ...


class CeleryBillingReconciler:
    def reconcile(self, account_id: str) -> None:
        from stagepipe.core.celery_app import sync_workspace_subscription_task

        sync_workspace_subscription_task.delay(account_id)


def has_paid_access(subscription: dict[str, Any] | None, now: datetime) -> bool:
    if not subscription:
        return False
    if str(subscription.get("status", "")).lower() not in _PAID_SUBSCRIPTION_STATUSES:
        return False
    period_end = subscription.get("current_period_end")
    if isinstance(period_end, datetime) and as_utc(period_end) <= now:
        return False
    cancel_at = subscription.get("cancel_at")
    if isinstance(cancel_at, datetime) and as_utc(cancel_at) <= now:
        return False
    return True


def reconcile_workspace_subscription(
    account_id: str,
    client: PaymentProcessorClient | None = None,
    now: datetime | None = None,
) -> str:
    processor = client or StubPaymentProcessorClient()
    moment = now or utcnow()
    subscription = processor.fetch_subscription(account_id)
    plan = "paid" if has_paid_access(subscription, moment) else "free"
    logger.info("billing.sync_completed", extra={"account_id": account_id})
    return plan


def run_billing_reconciliation(reconciler: BillingReconciler, account_id: str) -> None:
    """Fire the reconciliation; failures are logged and counted, never raised."""

    try:
        reconciler.reconcile(account_id)
    except Exception as exc:
        observe_billing_sync_failure()
        logger.warning("billing.sync_failed", extra={"account_id": account_id, "error": str(exc)})
