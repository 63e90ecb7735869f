from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from ipd.config import AppSettings
from ipd.repositories.sqlite_repo import SqliteRepository
from ipd.services.allocation_service import AllocationService
from ipd.services.export_service import ExportService
from ipd.services.inventory_service import InventoryService
from ipd.services.owner_service import OwnerService
from ipd.services.reporting_service import ReportingService
from ipd.services.sync_service import SyncService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    settings: AppSettings
    sync: SyncService
    inventory: InventoryService
    owners: OwnerService
    reporting: ReportingService
    allocation: AllocationService
    export: ExportService


def build_container(db_path: Path | str, settings: AppSettings | None = None) -> AppContainer:
    settings = settings or AppSettings()
    repo = SqliteRepository(db_path)
    repo.init_db()

    inventory = InventoryService(repo)
    owners = OwnerService(repo)
    owners.seed_default_owners(settings.default_owners)

    return AppContainer(
        repo=repo,
        settings=settings,
        sync=SyncService(repo),
        inventory=inventory,
        owners=owners,
        reporting=ReportingService(repo, skew=timedelta(seconds=settings.clock_skew_seconds)),
        allocation=AllocationService(repo),
        export=ExportService(inventory),
    )
