from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font

from ipd.domain.models import Product

EXPORT_HEADERS = ["name", "status", "buy_price", "sold_price", "created_at", "sold_at", "image_url"]


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else ""


def product_rows(products: Iterable[Product]) -> list[list]:
    return [
        [
            p.name,
            "Sold" if p.sold else "Available",
            p.buy_price if p.buy_price is not None else 0.0,
            p.sold_price if p.sold_price is not None else "",
            _iso(p.created_at),
            _iso(p.sold_at),
            p.image_url or "",
        ]
        for p in products
    ]


class ExportService:
    def __init__(self, inventory_service):
        self.inventory = inventory_service

    def export_products_excel(self, path: str, products: Iterable[Product] | None = None) -> int:
        rows = product_rows(self.inventory.list_products() if products is None else products)

        wb = Workbook()
        ws = wb.active
        ws.title = "Products"
        ws.append(EXPORT_HEADERS)
        for c in ws[1]:
            c.font = Font(bold=True)
        for row in rows:
            ws.append(row)
        for r in range(2, ws.max_row + 1):
            ws[f"C{r}"].number_format = "#,##0.000"
            ws[f"D{r}"].number_format = "#,##0.000"
        ws.freeze_panes = "A2"
        for col, width in {"A": 34, "B": 12, "C": 14, "D": 14, "E": 28, "F": 28, "G": 48}.items():
            ws.column_dimensions[col].width = width

        wb.save(path)
        return len(rows)
