from .models import Product, Sale, Owner, ProductEdit, DateRange, Snapshot, Kpis, DailyPoint
from .errors import ValidationError, NotFoundError, CommitError, ReconciliationError

__all__ = [
    "Product",
    "Sale",
    "Owner",
    "ProductEdit",
    "DateRange",
    "Snapshot",
    "Kpis",
    "DailyPoint",
    "ValidationError",
    "NotFoundError",
    "CommitError",
    "ReconciliationError",
]
