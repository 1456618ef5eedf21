"""
Canonical analytical records produced by the Rollup Engine.

All records are frozen dataclasses: plain data with no behavior beyond
derived read-only properties, safe to serialize with `to_dict`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import Any

from ingest.rows import SOURCE_PLANT
from inventory.health import InventoryBatch, StockStatus

CAUSE_STOCK_SHORT = "stock available but short"
CAUSE_STOCK_EXHAUSTED = "stock exhausted"


class ProductionStatus(str, Enum):
    PENDING = "pending"
    PROGRESS = "progress"
    COMPLETED = "completed"
    POOR = "poor"


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    return value


def to_dict(record: Any) -> dict[str, Any]:
    """JSON-friendly dict of any record in this module."""
    return _plain(asdict(record))


@dataclass(frozen=True)
class UnfulfilledOrder:
    customer_id: str
    customer_name: str
    product_code: str
    product_name: str
    qty: float
    value: float
    unit_price: float
    request_date: date | None
    days_delayed: int
    cause: str


@dataclass(frozen=True)
class InventorySnapshot:
    total_stock: float
    quality_stock: float
    batches: tuple[InventoryBatch, ...]
    status: StockStatus
    status_breakdown: dict[str, float]
    remaining_days: float
    risk_score: int
    ads: float = 0.0
    ads_30: float = 0.0
    ads_60: float = 0.0
    ads_90: float = 0.0

    @property
    def plant_stock(self) -> float:
        return sum(b.quantity for b in self.batches if b.source == SOURCE_PLANT)

    @property
    def external_stock(self) -> float:
        return sum(b.quantity for b in self.batches if b.source != SOURCE_PLANT)


@dataclass(frozen=True)
class ProductionRollup:
    plan_qty: float = 0.0
    received_qty: float = 0.0
    future_plan_qty: float = 0.0
    achievement_rate: float = 0.0


@dataclass(frozen=True)
class IntegratedItem:
    code: str
    name: str
    unit: str
    box_factor: float
    brand: str
    category: str
    family: str
    total_req_qty: float
    total_actual_qty: float
    total_unfulfilled_qty: float
    total_unfulfilled_value: float
    total_sales_amount: float
    inventory: InventorySnapshot
    production: ProductionRollup
    unfulfilled_orders: tuple[UnfulfilledOrder, ...] = ()


@dataclass(frozen=True)
class BoughtProduct:
    code: str
    name: str
    qty: float
    value: float
    unit: str
    box_factor: float


@dataclass(frozen=True)
class CustomerStat:
    id: str
    name: str
    order_count: int
    fulfilled_count: int
    total_revenue: float
    missed_revenue: float
    fulfillment_rate: float
    top_bought_products: tuple[BoughtProduct, ...] = ()
    unfulfilled_details: tuple[UnfulfilledOrder, ...] = ()


@dataclass(frozen=True)
class ProductionRow:
    scheduled_date: date | None
    plant: str
    code: str
    name: str
    unit: str
    box_factor: float
    plan_qty: float
    actual_qty: float
    rate: float
    status: ProductionStatus


@dataclass(frozen=True)
class Kpis:
    product_sales: float
    merchandise_sales: float
    overall_fulfillment_rate: float
    total_unfulfilled_value: float
    critical_delivery_count: int


@dataclass(frozen=True)
class FulfillmentSummary:
    total_orders: int
    fulfilled_orders: int
    unfulfilled_count: int
    total_customers: int
    average_rate: float


@dataclass(frozen=True)
class RankedEntry:
    name: str
    value: float


@dataclass(frozen=True)
class DashboardAnalysis:
    kpis: Kpis
    stock_health: dict[str, float]
    status_counts: dict[str, int]
    top_products: tuple[RankedEntry, ...]
    top_customers: tuple[RankedEntry, ...]
    integrated_items: tuple[IntegratedItem, ...]
    customer_stats: tuple[CustomerStat, ...]
    fulfillment: FulfillmentSummary
    production_rows: tuple[ProductionRow, ...] = field(default_factory=tuple)
