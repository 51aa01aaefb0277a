# backend/billsplit/domain/analytics.py
from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Sequence, Tuple

from billsplit.domain.models import AnalyticsSnapshot, Bill, MonthlyTotal

MAX_ANALYTICS_MONTHS = 120

_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class AnalyticsError(ValueError):
    """Raised when an analytics window is invalid."""


def _shift_months(year: int, month: int, delta: int) -> Tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_buckets(until: datetime, months: int) -> List[Tuple[int, int]]:
    """
    The `months` calendar months ending with until's month, oldest first.
    """
    return [_shift_months(until.year, until.month, -offset) for offset in range(months - 1, -1, -1)]


def trailing_window(now: datetime, period: str) -> Tuple[datetime, datetime]:
    """
    Window for the history filters: "week", "month" or "year" back from now.
    """
    if period == "week":
        return now - timedelta(days=7), now
    if period == "month":
        year, month = _shift_months(now.year, now.month, -1)
    elif period == "year":
        year, month = now.year - 1, now.month
    else:
        raise AnalyticsError(f"unknown period: {period}")

    day = min(now.day, calendar.monthrange(year, month)[1])
    return now.replace(year=year, month=month, day=day), now


def summarize(bills: Sequence[Bill], since: datetime, until: datetime, months: int = 6) -> AnalyticsSnapshot:
    """
    Aggregate bill totals inside [since, until] by category and by
    calendar month (the `months` months ending with until's month).

    Does not read the clock; the caller supplies the window.
    """
    aware = since.tzinfo is not None
    if (until.tzinfo is not None) != aware:
        raise AnalyticsError("since and until must both be timezone-aware or both naive")
    for bill in bills:
        if (bill.created_at.tzinfo is not None) != aware:
            raise AnalyticsError(f"bill {bill.id} timestamp does not match the window's timezone awareness")
    if since > until:
        raise AnalyticsError("since must not be after until")
    if not isinstance(months, int) or isinstance(months, bool) or not 0 <= months <= MAX_ANALYTICS_MONTHS:
        raise AnalyticsError(f"months must be an int between 0 and {MAX_ANALYTICS_MONTHS}")

    in_window = [b for b in bills if since <= b.created_at <= until]

    category_totals: Dict[str, int] = {}
    for bill in in_window:
        key = bill.category.value
        category_totals[key] = category_totals.get(key, 0) + bill.total_cents

    buckets = month_buckets(until, months)
    by_month: Dict[Tuple[int, int], int] = {ym: 0 for ym in buckets}
    for bill in in_window:
        ym = (bill.created_at.year, bill.created_at.month)
        if ym in by_month:
            by_month[ym] += bill.total_cents

    monthly_totals = tuple(
        MonthlyTotal(
            period_label=f"{_MONTH_NAMES[month - 1]} {year}",
            year=year,
            month=month,
            total_cents=by_month[(year, month)],
        )
        for year, month in buckets
    )

    grand_total = sum(b.total_cents for b in in_window)
    average = 0
    if in_window:
        average = int((Decimal(grand_total) / len(in_window)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    highest = None
    for key, cents in category_totals.items():
        if highest is None or cents > category_totals[highest]:
            highest = key

    return AnalyticsSnapshot(
        category_totals=category_totals,
        monthly_totals=monthly_totals,
        grand_total_cents=grand_total,
        bill_count=len(in_window),
        average_cents=average,
        highest_category=highest,
    )
