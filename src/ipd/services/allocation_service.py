from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

from ipd.domain.models import Owner, Product, Sale

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _finite(value) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return n if math.isfinite(n) else 0.0


def _event_time(sale: Sale) -> datetime:
    ts = sale.sold_at or sale.created_at
    if not isinstance(ts, datetime):
        return _OLDEST
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def latest_sale(sales: Iterable[Sale], products: Iterable[Product]) -> Optional[Sale]:
    """Most recent sale by ``sold_at`` (falling back to ``created_at``).

    Sales whose product still exists win; when there are none, any sale that
    carries a product id is considered so a short desync does not blank the
    view. Equal timestamps resolve to the highest sale id.
    """
    with_pid = [s for s in sales if s.product_id]
    existing = {p.id for p in products}
    candidates = [s for s in with_pid if s.product_id in existing] or with_pid
    if not candidates:
        return None
    return max(candidates, key=lambda s: (_event_time(s), s.id))


def total_contribution(owners: Iterable[Owner]) -> float:
    return sum(max(0.0, _finite(o.contribution)) for o in owners)


def weights(owners: Iterable[Owner], total: float) -> dict[str, float]:
    owners = list(owners)
    if not owners:
        return {}
    if total > 0:
        return {o.id: max(0.0, _finite(o.contribution)) / total for o in owners}
    equal = 1.0 / len(owners)
    return {o.id: equal for o in owners}


def shares(owners: Iterable[Owner], sale: Optional[Sale]) -> dict[str, float]:
    owners = list(owners)
    if sale is None:
        return {o.id: 0.0 for o in owners}
    profit = _finite(sale.profit)
    w = weights(owners, total_contribution(owners))
    return {o.id: profit * w.get(o.id, 0.0) for o in owners}


@dataclass(frozen=True)
class Allocation:
    latest_sale: Optional[Sale]
    latest_revenue: float
    latest_profit: float
    total_contribution: float
    weights: dict[str, float] = field(default_factory=dict)
    shares: dict[str, float] = field(default_factory=dict)


class AllocationService:
    def __init__(self, repo):
        self.repo = repo

    def latest_allocation(self) -> Allocation:
        snap = self.repo.snapshot()
        return self.allocation_for(snap.owners, snap.sales, snap.products)

    def allocation_for(self, owners: list[Owner], sales: list[Sale], products: list[Product]) -> Allocation:
        sale = latest_sale(sales, products)
        total = total_contribution(owners)
        return Allocation(
            latest_sale=sale,
            latest_revenue=_finite(sale.sold_price) if sale else 0.0,
            latest_profit=_finite(sale.profit) if sale else 0.0,
            total_contribution=total,
            weights=weights(owners, total) if sale else {},
            shares=shares(owners, sale),
        )
