from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Optional

from ipd.domain.models import DailyPoint, DateRange, Kpis, Product, Sale

CLOCK_SKEW = timedelta(seconds=60)


def _amount(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def _utc(value: Any) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_bounds(
    date_range: DateRange, today: date | None = None, skew: timedelta = CLOCK_SKEW
) -> tuple[datetime, datetime] | None:
    """Inclusive UTC bounds of the reporting window, widened by ``skew`` on both sides."""
    if date_range is None or date_range.start is None:
        return None
    end_day = date_range.end or today or datetime.now(timezone.utc).date()
    start = datetime.combine(date_range.start, time.min, tzinfo=timezone.utc)
    end = datetime.combine(end_day, time.max, tzinfo=timezone.utc)
    return start - skew, end + skew


def filter_sales(
    sales: Iterable[Sale],
    products: Iterable[Product],
    date_range: DateRange,
    *,
    today: date | None = None,
    skew: timedelta = CLOCK_SKEW,
) -> list[Sale]:
    bounds = window_bounds(date_range, today=today, skew=skew)
    if bounds is None:
        return []
    lo, hi = bounds
    existing = {p.id for p in products}

    out = []
    for s in sales:
        # Stray duplicates share a live product_id and count until reconciliation removes them.
        if not s.product_id or s.product_id not in existing:
            continue
        sold_at = _utc(s.sold_at)
        if sold_at is None:
            continue
        if lo <= sold_at <= hi:
            out.append(s)
    return out


def compute_kpis(products: Iterable[Product], qualifying_sales: Iterable[Sale]) -> Kpis:
    # Cost is what is on the shelf right now, independent of the window.
    total_cost = sum(_amount(p.buy_price) for p in products if not p.sold)
    sales = list(qualifying_sales)
    return Kpis(
        total_revenue=sum(_amount(s.sold_price) for s in sales),
        total_cost=total_cost,
        total_profit=sum(_amount(s.profit) for s in sales),
        items_sold=len(sales),
    )


def daily_series(qualifying_sales: Iterable[Sale]) -> list[DailyPoint]:
    by_day: dict[date, list[float]] = defaultdict(lambda: [0.0, 0.0])
    for s in qualifying_sales:
        sold_at = _utc(s.sold_at)
        if sold_at is None:
            continue
        bucket = by_day[sold_at.date()]
        bucket[0] += _amount(s.sold_price)
        bucket[1] += _amount(s.profit)
    return [DailyPoint(day=d, revenue=v[0], profit=v[1]) for d, v in sorted(by_day.items())]


@dataclass(frozen=True)
class Dashboard:
    date_range: DateRange
    sales: list[Sale]
    kpis: Kpis
    series: list[DailyPoint]


class ReportingService:
    def __init__(self, repo, skew: timedelta = CLOCK_SKEW):
        self.repo = repo
        self.skew = skew

    def dashboard(self, date_range: DateRange, today: date | None = None) -> Dashboard:
        snap = self.repo.snapshot()
        return self.dashboard_for(snap.products, snap.sales, date_range, today=today)

    def dashboard_for(
        self,
        products: list[Product],
        sales: list[Sale],
        date_range: DateRange,
        today: date | None = None,
    ) -> Dashboard:
        qualifying = filter_sales(sales, products, date_range, today=today, skew=self.skew)
        return Dashboard(
            date_range=date_range,
            sales=qualifying,
            kpis=compute_kpis(products, qualifying),
            series=daily_series(qualifying),
        )
