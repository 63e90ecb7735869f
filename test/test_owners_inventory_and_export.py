from pathlib import Path

import pytest
from conftest import StepClock, make_repo
from openpyxl import load_workbook

from ipd.application.container import build_container
from ipd.config import AppSettings, load_settings
from ipd.domain.errors import NotFoundError, ValidationError
from ipd.main import build_summary
from ipd.repositories.unit_of_work import Write
from ipd.services.export_service import EXPORT_HEADERS, ExportService
from ipd.services.inventory_service import InventoryService, search_products
from ipd.services.owner_service import OwnerService
from ipd.services.sync_service import SyncService


def test_seeding_owners_is_idempotent(tmp_path: Path):
    repo = make_repo(tmp_path, "seed.db")
    owners = OwnerService(repo)

    assert owners.seed_default_owners(["Yousif", "Hawra", "Bayan"]) == 3
    assert owners.seed_default_owners(["Someone"]) == 0

    listed = owners.list_owners()
    assert sorted(o.name for o in listed) == ["Bayan", "Hawra", "Yousif"]
    assert all(o.contribution == 0.0 for o in listed)


def test_contributions_increment_and_validate(tmp_path: Path):
    clock = StepClock()
    repo = make_repo(tmp_path, "contrib.db", clock)
    owners = OwnerService(repo)
    oid = owners.create_owner("Ann", 5.0)

    later = clock.advance(days=1)
    owners.add_contribution(oid, 7.5)

    owner = repo.get_owner(oid)
    assert owner.contribution == 12.5
    assert owner.updated_at == later

    with pytest.raises(ValidationError):
        owners.add_contribution(oid, 0)
    with pytest.raises(NotFoundError):
        owners.add_contribution("nobody", 1.0)
    with pytest.raises(ValidationError):
        owners.create_owner("Bob", -1.0)
    with pytest.raises(ValidationError):
        owners.create_owner("  ")


def test_add_product_validates_input(tmp_path: Path):
    inv = InventoryService(make_repo(tmp_path, "add.db"))

    with pytest.raises(ValidationError) as exc:
        inv.add_product("", 1.0)
    assert exc.value.code == "missing_name"

    with pytest.raises(ValidationError) as exc:
        inv.add_product("Cup", -2.0)
    assert exc.value.code == "invalid_buy_price"


def test_delete_product_removes_its_sales_and_asset(tmp_path: Path):
    repo = make_repo(tmp_path, "delete.db")
    removed = []
    inv = InventoryService(repo, asset_remover=removed.append)
    pid = inv.add_product("Rug", 20.0, image_url="https://cdn.example.com/rug.png")
    keep = inv.add_product("Mat", 3.0)
    SyncService(repo).mark_sold(pid, 25.0)
    repo.commit_batch([Write("create", "sales", "legacy", {"product_id": pid, "product_name": "Rug"})])

    inv.delete_product(pid)

    assert repo.get_product(pid) is None
    assert repo.list_sales_for_product(pid) == []
    assert repo.get_product(keep) is not None
    assert removed == ["https://cdn.example.com/rug.png"]


def test_asset_removal_failure_does_not_fail_delete(tmp_path: Path):
    repo = make_repo(tmp_path, "delete2.db")

    def broken(_url: str) -> None:
        raise OSError("bucket unavailable")

    inv = InventoryService(repo, asset_remover=broken)
    pid = inv.add_product("Rug", 20.0, image_url="https://cdn.example.com/rug.png")

    inv.delete_product(pid)
    assert repo.get_product(pid) is None


def test_products_listed_newest_first_and_searchable(tmp_path: Path):
    clock = StepClock()
    repo = make_repo(tmp_path, "list.db", clock)
    inv = InventoryService(repo)
    inv.add_product("Green Teapot", 4.0)
    clock.advance(minutes=1)
    inv.add_product("Blue Mug", 2.0)

    products = inv.list_products()

    assert [p.name for p in products] == ["Blue Mug", "Green Teapot"]
    assert [p.name for p in search_products(products, "  teaPOT ")] == ["Green Teapot"]
    assert len(search_products(products, "")) == 2


def test_export_products_excel(tmp_path: Path):
    repo = make_repo(tmp_path, "export.db")
    inv = InventoryService(repo)
    pid = inv.add_product("Clock", 12.0, image_url="https://cdn.example.com/clock.jpg")
    inv.add_product("Frame", 3.0)
    SyncService(repo).mark_sold(pid, 20.0)
    out = tmp_path / "products.xlsx"

    count = ExportService(inv).export_products_excel(str(out))

    ws = load_workbook(out).active
    rows = list(ws.iter_rows(values_only=True))
    assert count == 2
    assert list(rows[0]) == EXPORT_HEADERS
    by_name = {r[0]: r for r in rows[1:]}
    assert by_name["Clock"][1] == "Sold"
    assert by_name["Clock"][3] == 20.0
    assert by_name["Clock"][5] != ""
    assert by_name["Frame"][1] == "Available"


def test_subscribers_receive_snapshots_after_commits(tmp_path: Path):
    repo = make_repo(tmp_path, "subs.db")
    seen = []

    def broken(_snap):
        raise RuntimeError("listener bug")

    repo.subscribe(broken)
    unsubscribe = repo.subscribe(seen.append)
    inv = InventoryService(repo)
    inv.add_product("Bell", 1.0)

    assert len(seen) == 1
    assert [p.name for p in seen[0].products] == ["Bell"]

    unsubscribe()
    inv.add_product("Whistle", 1.0)
    assert len(seen) == 1
    assert len(repo.list_products()) == 2


def test_load_settings_reads_environment():
    settings = load_settings({"IPD_DEFAULT_OWNERS": "Ann, Bo ,", "IPD_CLOCK_SKEW_SECONDS": "90"})
    assert settings.default_owners == ("Ann", "Bo")
    assert settings.clock_skew_seconds == 90

    assert load_settings({}) == AppSettings()
    with pytest.raises(ValueError):
        load_settings({"IPD_CLOCK_SKEW_SECONDS": "soon"})


def test_container_seeds_default_owners_once(tmp_path: Path):
    db = tmp_path / "container.db"
    container = build_container(db, AppSettings(default_owners=("A", "B")))
    build_container(db, AppSettings(default_owners=("C",)))

    assert sorted(o.name for o in container.owners.list_owners()) == ["A", "B"]
    assert container.reporting.skew.total_seconds() == 60


def test_summary_keeps_owners_with_the_same_name_apart(tmp_path: Path):
    container = build_container(tmp_path / "summary.db", AppSettings(default_owners=("Sam", "Sam")))
    pid = container.inventory.add_product("Kettle", 10.0)
    container.sync.mark_sold(pid, 30.0)
    today = container.repo.get_sale(pid).sold_at.date()

    summary = build_summary(container, today)

    assert summary["latest_sale"] == pid
    assert summary["kpis"]["items_sold"] == 1
    assert len(summary["shares"]) == 2
    assert {entry["name"] for entry in summary["shares"].values()} == {"Sam"}
    assert [entry["amount"] for entry in summary["shares"].values()] == [pytest.approx(10.0)] * 2
