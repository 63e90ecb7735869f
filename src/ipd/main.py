from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta, timezone

from ipd.application.container import AppContainer, build_container
from ipd.config import get_app_paths, load_settings
from ipd.domain.models import DateRange
from ipd.logging_config import setup_logging


def build_summary(container: AppContainer, today: date) -> dict:
    board = container.reporting.dashboard(DateRange(start=today - timedelta(days=29), end=today), today=today)
    allocation = container.allocation.latest_allocation()
    names = {o.id: o.name for o in container.owners.list_owners()}

    return {
        "window": [board.date_range.start.isoformat(), board.date_range.end.isoformat()],
        "kpis": board.kpis.__dict__,
        "daily": [{"day": p.day.isoformat(), "revenue": p.revenue, "profit": p.profit} for p in board.series],
        "latest_sale": allocation.latest_sale.id if allocation.latest_sale else None,
        "shares": {
            oid: {"name": names.get(oid, ""), "amount": amount} for oid, amount in allocation.shares.items()
        },
    }


def main() -> None:
    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths.db_path, load_settings())
    container.sync.retry_pending_reconciliations()

    summary = build_summary(container, datetime.now(timezone.utc).date())
    print(json.dumps(summary, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
