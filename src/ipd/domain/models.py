from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    buy_price: Optional[float]
    sold: bool = False
    sold_price: Optional[float] = None
    link: Optional[str] = None
    description: str = ""
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    sold_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Sale:
    id: str
    product_id: Optional[str]
    product_name: str
    buy_price: Optional[float]
    sold_price: Optional[float]
    profit: Optional[float]
    sold_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Owner:
    id: str
    name: str
    contribution: Optional[float]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProductEdit:
    name: str
    buy_price: float
    sold: bool
    sold_price: Optional[float] = None
    link: Optional[str] = None
    description: Optional[str] = None
    new_image_url: Optional[str] = None


@dataclass(frozen=True)
class DateRange:
    start: Optional[date]
    end: Optional[date] = None


@dataclass(frozen=True)
class Snapshot:
    products: list[Product] = field(default_factory=list)
    sales: list[Sale] = field(default_factory=list)
    owners: list[Owner] = field(default_factory=list)


@dataclass(frozen=True)
class Kpis:
    total_revenue: float
    total_cost: float
    total_profit: float
    items_sold: int


@dataclass(frozen=True)
class DailyPoint:
    day: date
    revenue: float
    profit: float
