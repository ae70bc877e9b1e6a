from __future__ import annotations

from enum import StrEnum


class InvoiceStatus(StrEnum):
    DRAFT = "Draft"
    QUOTE = "Quote"
    SENT = "Sent"
    INVOICE_SENT = "Invoice Sent"
    PAID = "Paid"
    PAYMENT_MADE = "Payment Made"
    CANCELLED = "Cancelled"
    VOID = "Void"


class RevenueBucket(StrEnum):
    QUOTED = "quoted"
    INVOICED = "invoiced"
    PAID = "paid"
    IGNORED = "ignored"


_BUCKETS: dict[str, RevenueBucket] = {
    InvoiceStatus.QUOTE.value: RevenueBucket.QUOTED,
    InvoiceStatus.SENT.value: RevenueBucket.INVOICED,
    InvoiceStatus.INVOICE_SENT.value: RevenueBucket.INVOICED,
    InvoiceStatus.PAID.value: RevenueBucket.PAID,
    InvoiceStatus.PAYMENT_MADE.value: RevenueBucket.PAID,
}

_CANCELLED_STATUSES = frozenset({InvoiceStatus.CANCELLED.value, InvoiceStatus.VOID.value})


def bucket_for_status(status: str | None) -> RevenueBucket:
    if status is None:
        return RevenueBucket.IGNORED
    return _BUCKETS.get(status, RevenueBucket.IGNORED)


def is_cancelled(status: str | None) -> bool:
    return status in _CANCELLED_STATUSES


def is_paid(status: str | None) -> bool:
    return bucket_for_status(status) is RevenueBucket.PAID
