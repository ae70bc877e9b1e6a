from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from stagepipe.business.billing.statuses import RevenueBucket, bucket_for_status, is_cancelled, is_paid
from stagepipe.business.reporting.pipeline.schemas import RevenuePerformanceItem, WinRate
from stagepipe.core.clock import as_utc


@dataclass(frozen=True, slots=True)
class InvoiceFact:
    status: str | None
    amount: Decimal
    issued_at: datetime | None


_SUMMED_BUCKETS = (RevenueBucket.QUOTED, RevenueBucket.INVOICED, RevenueBucket.PAID)


def _q(value: Decimal) -> Decimal:
    return Decimal(value).quantize(Decimal("0.000001"))


def _empty_totals() -> dict[RevenueBucket, Decimal]:
    return {bucket: Decimal("0") for bucket in _SUMMED_BUCKETS}


def _row(period: str, totals: dict[RevenueBucket, Decimal], divisor: int = 1) -> RevenuePerformanceItem:
    return RevenuePerformanceItem(
        period=period,
        quoted=_q(totals[RevenueBucket.QUOTED] / divisor),
        invoiced=_q(totals[RevenueBucket.INVOICED] / divisor),
        paid=_q(totals[RevenueBucket.PAID] / divisor),
    )


def summarize_revenue(invoices: Iterable[InvoiceFact], now: datetime) -> tuple[list[RevenuePerformanceItem], WinRate]:
    """Revenue per bucket for this month, last month and the year-to-date monthly average, plus win-rate counts."""

    anchor = as_utc(now)
    if anchor.month == 1:
        last_month = (anchor.year - 1, 12)
    else:
        last_month = (anchor.year, anchor.month - 1)

    this_month_totals = _empty_totals()
    last_month_totals = _empty_totals()
    ytd_totals = _empty_totals()
    quotes = 0
    paid = 0

    for invoice in invoices:
        if invoice.status is None:
            continue
        if not is_cancelled(invoice.status):
            quotes += 1
        if is_paid(invoice.status):
            paid += 1

        bucket = bucket_for_status(invoice.status)
        if bucket is RevenueBucket.IGNORED or invoice.issued_at is None:
            continue

        issued_at = as_utc(invoice.issued_at)
        amount = Decimal(invoice.amount or 0)
        if (issued_at.year, issued_at.month) == (anchor.year, anchor.month):
            this_month_totals[bucket] += amount
        if (issued_at.year, issued_at.month) == last_month:
            last_month_totals[bucket] += amount
        if issued_at.year == anchor.year:
            ytd_totals[bucket] += amount

    rows = [
        _row("This Month", this_month_totals),
        _row("Last Month", last_month_totals),
        _row("YTD Avg", ytd_totals, divisor=anchor.month),
    ]
    return rows, WinRate(quotes=quotes, paid=paid)
