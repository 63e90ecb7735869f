from __future__ import annotations

import logging
import math
import sqlite3
from dataclasses import dataclass
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from ipd.domain.errors import NotFoundError, ReconciliationError, ValidationError
from ipd.domain.models import Product, ProductEdit
from ipd.repositories.unit_of_work import SERVER_TIMESTAMP, RepositoryUnitOfWork, UnitOfWork, Write

log = logging.getLogger("ipd.sync")
reconcile_log = logging.getLogger("ipd.reconcile")

MAX_DESCRIPTION_LENGTH = 2000


@dataclass(frozen=True)
class EditPlan:
    product_write: Write
    sale_write: Write


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc)


def validate_sold_price(sold: bool, sold_price: Any) -> None:
    if sold and (not _is_number(sold_price) or float(sold_price) < 0):
        raise ValidationError("Sold price is required when marking a product as sold.", code="missing_sold_price")


def validate_edit(edit: ProductEdit) -> None:
    if not (edit.name or "").strip():
        raise ValidationError("Name is required.", code="missing_name")
    if not _is_number(edit.buy_price) or float(edit.buy_price) < 0:
        raise ValidationError("Buy price must be a number >= 0.", code="invalid_buy_price")
    validate_sold_price(edit.sold, edit.sold_price)
    link = (edit.link or "").strip()
    if link and not is_absolute_url(link):
        raise ValidationError("Enter a valid URL.", code="invalid_link")
    if edit.description and len(edit.description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError("Description is too long.", code="description_too_long")


def _sold_state_fields(current: Product, sold: bool, sold_price: Optional[float]) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "sold": bool(sold),
        "sold_price": sold_price,
        "updated_at": SERVER_TIMESTAMP,
    }
    if sold and not current.sold:
        fields["sold_at"] = SERVER_TIMESTAMP
    elif current.sold and not sold:
        fields["sold_at"] = None
    return fields


def _sale_write(
    product_id: str, product_name: str, buy_price: float, sold_price: Optional[float], sale_exists: bool
) -> Write:
    if sold_price is None:
        return Write("delete", "sales", product_id)

    fields: dict[str, Any] = {
        "product_id": product_id,
        "product_name": product_name,
        "buy_price": buy_price,
        "sold_price": sold_price,
        "profit": sold_price - buy_price,
        "updated_at": SERVER_TIMESTAMP,
    }
    if sale_exists:
        return Write("update", "sales", product_id, fields)

    fields["sold_at"] = SERVER_TIMESTAMP
    fields["created_at"] = SERVER_TIMESTAMP
    return Write("create", "sales", product_id, fields)


def plan_product_edit(current: Product, edit: ProductEdit, sale_exists: bool) -> EditPlan:
    """Build the product and sale writes for one edit.

    ``sale_exists`` selects between creating the canonical sale with its
    timestamps and updating it without touching ``sold_at``/``created_at``.
    Raises ``ValidationError`` before anything is built.
    """
    validate_edit(edit)

    buy_price = float(edit.buy_price)
    sold_price = float(edit.sold_price) if edit.sold else None
    name = edit.name.strip()

    product_fields: dict[str, Any] = {
        "name": name,
        "buy_price": buy_price,
        "link": (edit.link or "").strip() or None,
        "description": (edit.description or "").strip(),
        "image_url": edit.new_image_url or current.image_url,
    }
    product_fields.update(_sold_state_fields(current, edit.sold, sold_price))

    return EditPlan(
        Write("update", "products", current.id, product_fields),
        _sale_write(current.id, name, buy_price, sold_price, sale_exists),
    )


def plan_sold_toggle(current: Product, sold: bool, sold_price: Optional[float], sale_exists: bool) -> EditPlan:
    """Writes for flipping only the sold state; the rest of the product is left as stored."""
    validate_sold_price(sold, sold_price)

    price = float(sold_price) if sold else None
    buy_price = current.buy_price if _is_number(current.buy_price) else 0.0

    return EditPlan(
        Write("update", "products", current.id, _sold_state_fields(current, sold, price)),
        _sale_write(current.id, current.name, float(buy_price), price, sale_exists),
    )


class SyncService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.pending_reconciliations: set[str] = set()

    def _get_product(self, product_id: str) -> Product:
        product = self.repo.get_product(product_id)
        if not product:
            raise NotFoundError("Product not found.")
        return product

    def _commit(self, current: Product, plan: EditPlan, sold: bool) -> EditPlan:
        with self.uow_factory() as uow:
            uow.add(plan.product_write)
            uow.add(plan.sale_write)

        if sold and not current.sold:
            log.info("product_sold product_id=%s sold_price=%.3f", current.id, float(plan.sale_write.fields["sold_price"]))
        elif current.sold and not sold:
            log.info("product_reverted product_id=%s", current.id)
        else:
            log.info("product_updated product_id=%s sold=%s sale_op=%s", current.id, sold, plan.sale_write.op)

        self.reconcile_quietly(current.id)
        return plan

    def apply_product_edit(self, product_id: str, edit: ProductEdit) -> EditPlan:
        current = self._get_product(product_id)
        sale_exists = self.repo.get_sale(current.id) is not None
        plan = plan_product_edit(current, edit, sale_exists)
        return self._commit(current, plan, edit.sold)

    def mark_sold(self, product_id: str, sold_price: Optional[float]) -> EditPlan:
        current = self._get_product(product_id)
        sale_exists = self.repo.get_sale(current.id) is not None
        plan = plan_sold_toggle(current, True, sold_price, sale_exists)
        return self._commit(current, plan, True)

    def mark_available(self, product_id: str) -> EditPlan:
        current = self._get_product(product_id)
        plan = plan_sold_toggle(current, False, None, False)
        return self._commit(current, plan, False)

    def reconcile_duplicates(self, product_id: str) -> int:
        """Delete every sale for ``product_id`` stored under a different id.

        Runs outside the edit's batch and is safe to repeat: deleting a sale
        that is already gone is a no-op.
        """
        try:
            strays = [s for s in self.repo.list_sales_for_product(product_id) if s.id != product_id]
            if strays:
                with self.uow_factory() as uow:
                    for s in strays:
                        uow.delete("sales", s.id)
        except Exception as e:
            raise ReconciliationError(f"Duplicate cleanup failed for product {product_id}: {e}") from e

        if strays:
            reconcile_log.info(
                "duplicates_removed product_id=%s sale_ids=%s", product_id, ",".join(s.id for s in strays)
            )
        self.pending_reconciliations.discard(product_id)
        return len(strays)

    def reconcile_quietly(self, product_id: str) -> int:
        try:
            return self.reconcile_duplicates(product_id)
        except ReconciliationError as e:
            self.pending_reconciliations.add(product_id)
            reconcile_log.warning("reconcile_failed product_id=%s error=%s", product_id, e)
            return 0

    def retry_pending_reconciliations(self) -> int:
        """Re-run cleanup for queued products and for any stray sale still in the store.

        The store query covers cleanups that failed in an earlier process.
        """
        product_ids = set(self.pending_reconciliations)
        try:
            product_ids.update(self.repo.list_product_ids_with_stray_sales())
        except sqlite3.Error as e:
            reconcile_log.warning("stray_scan_failed error=%s", e)

        removed = 0
        for product_id in sorted(product_ids):
            removed += self.reconcile_quietly(product_id)
        return removed
