from celery import Celery

from stagepipe.core.config import get_settings

settings = get_settings()

celery_app = Celery("stagepipe_api", broker=settings.redis_url, backend=settings.redis_url)


@celery_app.task(name="stagepipe.billing.sync_workspace_subscription")
def sync_workspace_subscription_task(account_id: str) -> str:
    from stagepipe.business.billing.sync import reconcile_workspace_subscription

    return reconcile_workspace_subscription(account_id)
