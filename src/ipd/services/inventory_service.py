from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from ipd.domain.errors import NotFoundError
from ipd.domain.models import Product, ProductEdit
from ipd.repositories.unit_of_work import SERVER_TIMESTAMP, RepositoryUnitOfWork, UnitOfWork
from ipd.services.sync_service import validate_edit

log = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def search_products(products: list[Product], query: str) -> list[Product]:
    q = (query or "").strip().lower()
    if not q:
        return list(products)
    return [p for p in products if q in (p.name or "").lower()]


class InventoryService:
    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
        asset_remover: Callable[[str], None] | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.asset_remover = asset_remover

    def list_products(self) -> list[Product]:
        return sorted(self.repo.list_products(), key=lambda p: p.created_at or _OLDEST, reverse=True)

    def get_product(self, product_id: str) -> Product:
        p = self.repo.get_product(product_id)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(
        self,
        name: str,
        buy_price: float,
        image_url: Optional[str] = None,
        link: Optional[str] = None,
        description: Optional[str] = None,
    ) -> str:
        validate_edit(ProductEdit(name=name, buy_price=buy_price, sold=False, link=link, description=description))

        product_id = uuid.uuid4().hex
        with self.uow_factory() as uow:
            uow.create(
                "products",
                product_id,
                {
                    "name": name.strip(),
                    "buy_price": float(buy_price),
                    "sold": False,
                    "link": (link or "").strip() or None,
                    "description": (description or "").strip(),
                    "image_url": image_url,
                    "created_at": SERVER_TIMESTAMP,
                    "updated_at": SERVER_TIMESTAMP,
                },
            )
        log.info("product_created product_id=%s buy_price=%.3f", product_id, float(buy_price))
        return product_id

    def delete_product(self, product_id: str) -> None:
        product = self.get_product(product_id)
        sale_ids = {s.id for s in self.repo.list_sales_for_product(product.id)}
        sale_ids.add(product.id)

        with self.uow_factory() as uow:
            uow.delete("products", product.id)
            for sale_id in sorted(sale_ids):
                uow.delete("sales", sale_id)
        log.info("product_deleted product_id=%s sales_removed=%s", product.id, len(sale_ids))

        if product.image_url and self.asset_remover is not None:
            try:
                self.asset_remover(product.image_url)
            except Exception as e:
                log.warning("asset_remove_failed product_id=%s url=%s error=%s", product.id, product.image_url, e)
