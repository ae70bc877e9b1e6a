from stagepipe.business.billing.models import Invoice
from stagepipe.business.billing.statuses import InvoiceStatus, RevenueBucket, bucket_for_status, is_cancelled, is_paid

__all__ = [
    "Invoice",
    "InvoiceStatus",
    "RevenueBucket",
    "bucket_for_status",
    "is_cancelled",
    "is_paid",
]
