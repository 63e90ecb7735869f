from datetime import datetime, timezone
from pathlib import Path

import pytest
from conftest import StepClock, make_repo

from ipd.domain.models import Owner, Product, Sale
from ipd.services.allocation_service import AllocationService, latest_sale, shares, total_contribution, weights
from ipd.services.inventory_service import InventoryService
from ipd.services.owner_service import OwnerService
from ipd.services.sync_service import SyncService

UTC = timezone.utc


def _sale(sid, pid, profit, sold_at=None, created_at=None):
    return Sale(
        id=sid, product_id=pid, product_name=sid, buy_price=0.0, sold_price=profit,
        profit=profit, sold_at=sold_at, created_at=created_at,
    )


def _owners(*contributions):
    return [Owner(id=f"o{i}", name=f"Owner {i}", contribution=c) for i, c in enumerate(contributions)]


def test_shares_follow_contribution_weights():
    owners = _owners(30.0, 70.0)
    sale = _sale("s", "p", 20.0, datetime(2025, 3, 1, tzinfo=UTC))

    result = shares(owners, sale)

    assert result["o0"] == pytest.approx(6.0)
    assert result["o1"] == pytest.approx(14.0)
    assert sum(result.values()) == pytest.approx(20.0)


def test_zero_contributions_split_equally():
    owners = _owners(0.0, 0.0)
    sale = _sale("s", "p", 20.0, datetime(2025, 3, 1, tzinfo=UTC))

    assert shares(owners, sale) == {"o0": pytest.approx(10.0), "o1": pytest.approx(10.0)}


def test_negative_contribution_never_gives_negative_weight():
    owners = _owners(-10.0, 50.0, None)

    total = total_contribution(owners)
    w = weights(owners, total)

    assert total == 50.0
    assert w == {"o0": 0.0, "o1": 1.0, "o2": 0.0}


def test_no_sale_means_zero_shares_and_no_owners_means_no_weights():
    assert shares(_owners(10.0, 5.0), None) == {"o0": 0.0, "o1": 0.0}
    assert weights([], 0.0) == {}


def test_latest_sale_prefers_existing_products_and_falls_back_to_created_at():
    products = [Product(id="a", name="a", buy_price=1.0, sold=True), Product(id="b", name="b", buy_price=1.0, sold=True)]
    sales = [
        _sale("a", "a", 1.0, sold_at=datetime(2025, 3, 1, tzinfo=UTC)),
        _sale("b", "b", 2.0, created_at=datetime(2025, 3, 5, tzinfo=UTC)),
        _sale("gone", "gone", 9.0, sold_at=datetime(2025, 3, 9, tzinfo=UTC)),
    ]

    assert latest_sale(sales, products).id == "b"


def test_latest_sale_falls_back_to_any_sale_with_a_product_id():
    sales = [
        _sale("x", "deleted-1", 1.0, sold_at=datetime(2025, 3, 1, tzinfo=UTC)),
        _sale("y", "deleted-2", 2.0, sold_at=datetime(2025, 3, 2, tzinfo=UTC)),
        _sale("z", None, 3.0, sold_at=datetime(2025, 3, 3, tzinfo=UTC)),
    ]

    assert latest_sale(sales, []).id == "y"
    assert latest_sale([_sale("z", None, 3.0)], []) is None


def test_latest_sale_ties_resolve_to_highest_id():
    at = datetime(2025, 3, 1, tzinfo=UTC)
    products = [Product(id=i, name=i, buy_price=0.0, sold=True) for i in ("m", "q", "c")]
    sales = [_sale(i, i, 1.0, sold_at=at) for i in ("m", "q", "c")]

    assert latest_sale(sales, products).id == "q"


def test_latest_allocation_from_store(tmp_path: Path):
    clock = StepClock()
    repo = make_repo(tmp_path, "alloc.db", clock)
    owners = OwnerService(repo)
    a = owners.create_owner("A", 30.0)
    b = owners.create_owner("B", 70.0)
    inv = InventoryService(repo)
    sync = SyncService(repo)
    first = inv.add_product("First", 1.0)
    second = inv.add_product("Second", 10.0)
    sync.mark_sold(first, 100.0)
    clock.advance(minutes=10)
    sync.mark_sold(second, 30.0)

    allocation = AllocationService(repo).latest_allocation()

    assert allocation.latest_sale.id == second
    assert allocation.latest_revenue == 30.0
    assert allocation.latest_profit == 20.0
    assert allocation.total_contribution == 100.0
    assert allocation.shares[a] == pytest.approx(6.0)
    assert allocation.shares[b] == pytest.approx(14.0)


def test_allocation_without_sales_is_all_zero(tmp_path: Path):
    repo = make_repo(tmp_path, "alloc-empty.db")
    OwnerService(repo).seed_default_owners(["A", "B"])

    allocation = AllocationService(repo).latest_allocation()

    assert allocation.latest_sale is None
    assert allocation.weights == {}
    assert set(allocation.shares.values()) == {0.0}
