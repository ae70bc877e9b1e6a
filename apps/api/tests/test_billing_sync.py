from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any

import pytest

from stagepipe.business.billing.sync import (
    CeleryBillingReconciler,
    has_paid_access,
    reconcile_workspace_subscription,
)
from stagepipe.core import celery_app as celery_app_module
from stagepipe.core.celery_app import sync_workspace_subscription_task


NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class _FakeProcessor:
    def __init__(self, subscription: dict[str, Any] | None) -> None:
        self.subscription = subscription
        self.requested: list[str] = []

    def fetch_subscription(self, account_id: str) -> dict[str, Any] | None:
        self.requested.append(account_id)
        return self.subscription


def test_has_paid_access_requires_live_paid_status() -> None:
    assert has_paid_access({"status": "active"}, NOW) is True
    assert has_paid_access({"status": "Trialing"}, NOW) is True
    assert has_paid_access({"status": "canceled"}, NOW) is False
    assert has_paid_access(None, NOW) is False
    assert has_paid_access({}, NOW) is False


def test_has_paid_access_honours_period_end_and_cancellation() -> None:
    assert has_paid_access({"status": "active", "current_period_end": NOW + timedelta(days=3)}, NOW) is True
    assert has_paid_access({"status": "active", "current_period_end": NOW - timedelta(seconds=1)}, NOW) is False
    assert has_paid_access({"status": "active", "cancel_at": NOW}, NOW) is False
    naive_future = (NOW + timedelta(hours=1)).replace(tzinfo=None)
    assert has_paid_access({"status": "past_due", "current_period_end": naive_future}, NOW) is True


def test_reconcile_reports_plan_and_logs(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)
    processor = _FakeProcessor({"status": "active"})

    plan = reconcile_workspace_subscription("account-9", client=processor, now=NOW)

    assert plan == "paid"
    assert processor.requested == ["account-9"]
    records = [record for record in caplog.records if record.getMessage() == "billing.sync_completed"]
    assert records
    assert getattr(records[-1], "account_id", None) == "account-9"


def test_reconcile_defaults_to_free_plan_without_processor() -> None:
    assert reconcile_workspace_subscription("account-10", now=NOW) == "free"


def test_celery_task_runs_reconciliation_locally() -> None:
    result = sync_workspace_subscription_task.apply(args=["account-11"])

    assert result.successful()
    assert result.get() == "free"


def test_celery_reconciler_enqueues_task(monkeypatch: pytest.MonkeyPatch) -> None:
    queued: list[str] = []
    monkeypatch.setattr(
        celery_app_module,
        "sync_workspace_subscription_task",
        SimpleNamespace(delay=queued.append),
    )

    CeleryBillingReconciler().reconcile("account-12")

    assert queued == ["account-12"]
