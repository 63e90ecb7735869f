from .sync_service import SyncService
from .inventory_service import InventoryService
from .owner_service import OwnerService
from .reporting_service import ReportingService
from .allocation_service import AllocationService
from .export_service import ExportService

__all__ = [
    "SyncService",
    "InventoryService",
    "OwnerService",
    "ReportingService",
    "AllocationService",
    "ExportService",
]
