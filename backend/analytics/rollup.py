"""
Rollup Engine — fuse orders, plant inventory, external stock and production
into one canonical record per product and per customer.

Pipeline (single pass per stream, then a final KPI pass):
  1. Aggregate inventory snapshot per product (plant + external batches).
     Inventory is point-in-time, so it is never window-filtered.
  2. Fold order lines: sales rollup, shortfall detail, customer rollup.
     Only lines inside [start, end] accumulate.
  3. Fold production rows: window plan/received, plus future plan (≥ today)
     regardless of the window.
  4. Register inventory-only products so every product seen anywhere
     gets an IntegratedItem.
  5. Freeze builders into immutable records, attach ADS, compute KPIs.

Identity: a product is created the first time its code is seen in any
stream. Name / unit / box factor come from the first source that populates
them; an empty value never overwrites a populated one.

Shortfall valuation uses the line's own average selling price
(|revenue| / requested qty), not a catalog price.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

import structlog

from analytics.models import (
    CAUSE_STOCK_EXHAUSTED,
    CAUSE_STOCK_SHORT,
    BoughtProduct,
    CustomerStat,
    DashboardAnalysis,
    FulfillmentSummary,
    IntegratedItem,
    InventorySnapshot,
    Kpis,
    ProductionRollup,
    ProductionRow,
    ProductionStatus,
    RankedEntry,
    UnfulfilledOrder,
)
from analytics.rules import DEFAULT_FAMILY, infer_brand, is_manufactured
from analytics.velocity import SalesVelocity, compute_velocity
from core.config import Settings, get_settings
from ingest.rows import ExternalStockRecord, InventoryRecord, OrderLine, ProductionRecord
from inventory.health import (
    InventoryBatch,
    StockStatus,
    batch_from_external,
    batch_from_inventory,
    representative_status,
    risk_score,
    status_breakdown,
    summarize_stock_health,
)
from inventory.units import safe_factor

logger = structlog.get_logger()

UNKNOWN_CUSTOMER_ID = "UNKNOWN"
UNKNOWN_CUSTOMER_NAME = "unknown"


def _divide(numerator: float, denominator: float) -> float:
    """Division with a zero denominator replaced by 1."""
    return numerator / (denominator or 1)


def _in_window(day: date | None, start: date, end: date) -> bool:
    # Undated rows were already selected by the caller's window query
    return day is None or start <= day <= end


def days_delayed(request_date: date | None, today: date) -> int:
    if request_date is None:
        return 0
    return max(0, (today - request_date).days)


def classify_production(plan: float, actual: float, scheduled_date: date | None, today: date) -> ProductionStatus:
    """pending → progress → completed, or poor when a past plan received nothing."""
    if plan <= 0 and actual <= 0:
        return ProductionStatus.PENDING
    if actual >= plan:
        return ProductionStatus.COMPLETED
    if actual > 0:
        return ProductionStatus.PROGRESS
    if scheduled_date is not None and scheduled_date < today:
        return ProductionStatus.POOR
    return ProductionStatus.PENDING


# ──────────────────────────────────────────────────────────────────────────
# Builders
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class _InventoryAggregate:
    batches: list[InventoryBatch] = field(default_factory=list)
    quality_stock: float = 0.0
    first_row: InventoryRecord | None = None
    name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    brand: str = ""
    category: str = ""
    family: str = ""

    @property
    def total_stock(self) -> float:
        return sum(b.quantity for b in self.batches)

    def merge_master_data(self, name: str, unit: str, box_factor: float, brand="", category="", family="") -> None:
        self.name = self.name or name
        self.unit = self.unit or unit
        if self.box_factor <= 1 < box_factor:
            self.box_factor = box_factor
        self.brand = self.brand or brand
        self.category = self.category or category
        self.family = self.family or family


def aggregate_inventory(
    inventory: Iterable[InventoryRecord],
    external_stock: Iterable[ExternalStockRecord] = (),
    settings: Settings | None = None,
) -> "OrderedDict[str, _InventoryAggregate]":
    """Group plant and external batches per product. Non-positive quantities carry no batch."""
    settings = settings or get_settings()
    aggregates: OrderedDict[str, _InventoryAggregate] = OrderedDict()

    for record in inventory:
        if not record.product_code:
            continue
        agg = aggregates.setdefault(record.product_code, _InventoryAggregate())
        if agg.first_row is None:
            agg.first_row = record
        agg.merge_master_data(
            record.product_name,
            record.unit,
            record.box_factor,
            record.brand,
            record.category,
            record.family,
        )
        agg.quality_stock += record.quality_hold_qty
        if record.quantity > 0:
            agg.batches.append(batch_from_inventory(record, settings))

    for record in external_stock:
        if not record.product_code:
            continue
        agg = aggregates.setdefault(record.product_code, _InventoryAggregate())
        agg.merge_master_data(record.product_name, record.unit, record.box_factor)
        if record.available_qty > 0:
            agg.batches.append(batch_from_external(record, settings))

    return aggregates


@dataclass
class _ItemBuilder:
    code: str
    name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    req_qty: float = 0.0
    actual_qty: float = 0.0
    unfulfilled_qty: float = 0.0
    unfulfilled_value: float = 0.0
    sales_amount: float = 0.0
    plan_qty: float = 0.0
    received_qty: float = 0.0
    future_plan_qty: float = 0.0
    unfulfilled_orders: list[UnfulfilledOrder] = field(default_factory=list)

    def merge_identity(self, name: str, unit: str, box_factor: float) -> None:
        self.name = self.name or name
        self.unit = self.unit or unit
        if self.box_factor <= 1 < box_factor:
            self.box_factor = box_factor

    def freeze(
        self,
        inventory: _InventoryAggregate | None,
        velocity: SalesVelocity | None,
        settings: Settings,
    ) -> IntegratedItem:
        inventory = inventory or _InventoryAggregate()
        batches = tuple(inventory.batches)
        has_stock = inventory.total_stock > 0 or inventory.quality_stock > 0
        status, min_remaining = representative_status(self.code, batches, settings, fallback=inventory.first_row)
        if not has_stock:
            status = StockStatus.HEALTHY

        name = self.name or inventory.name
        if inventory.brand:
            brand, category = inventory.brand, inventory.category or "Unassigned"
        else:
            brand, category = infer_brand(name, settings.brand_keywords)

        return IntegratedItem(
            code=self.code,
            name=name,
            unit=self.unit or inventory.unit or settings.base_unit,
            box_factor=safe_factor(self.box_factor if self.box_factor > 1 else inventory.box_factor),
            brand=brand,
            category=category,
            family=inventory.family or DEFAULT_FAMILY,
            total_req_qty=self.req_qty,
            total_actual_qty=self.actual_qty,
            total_unfulfilled_qty=self.unfulfilled_qty,
            total_unfulfilled_value=self.unfulfilled_value,
            total_sales_amount=self.sales_amount,
            inventory=InventorySnapshot(
                total_stock=inventory.total_stock,
                quality_stock=inventory.quality_stock,
                batches=batches,
                status=status,
                status_breakdown=status_breakdown(batches),
                remaining_days=min_remaining,
                risk_score=risk_score(status),
                ads=velocity.ads() if velocity else 0.0,
                ads_30=velocity.ads_30 if velocity else 0.0,
                ads_60=velocity.ads_60 if velocity else 0.0,
                ads_90=velocity.ads_90 if velocity else 0.0,
            ),
            production=ProductionRollup(
                plan_qty=self.plan_qty,
                received_qty=self.received_qty,
                future_plan_qty=self.future_plan_qty,
                achievement_rate=(self.received_qty / self.plan_qty * 100) if self.plan_qty > 0 else 0.0,
            ),
            unfulfilled_orders=tuple(self.unfulfilled_orders),
        )


@dataclass
class _CustomerBuilder:
    id: str
    name: str = ""
    order_count: int = 0
    fulfilled_count: int = 0
    total_revenue: float = 0.0
    missed_revenue: float = 0.0
    bought: "OrderedDict[str, list]" = field(default_factory=OrderedDict)
    unfulfilled_details: list[UnfulfilledOrder] = field(default_factory=list)

    def merge_name(self, name: str) -> None:
        self.name = self.name or name

    def freeze(self, items: dict[str, _ItemBuilder], top_n: int) -> CustomerStat:
        products = [
            BoughtProduct(
                code=code,
                name=items[code].name,
                qty=qty,
                value=value,
                unit=items[code].unit,
                box_factor=safe_factor(items[code].box_factor),
            )
            for code, (qty, value) in self.bought.items()
        ]
        products.sort(key=lambda p: p.value, reverse=True)
        return CustomerStat(
            id=self.id,
            name=self.name or UNKNOWN_CUSTOMER_NAME,
            order_count=self.order_count,
            fulfilled_count=self.fulfilled_count,
            total_revenue=self.total_revenue,
            missed_revenue=self.missed_revenue,
            fulfillment_rate=(self.fulfilled_count / self.order_count * 100) if self.order_count else 0.0,
            top_bought_products=tuple(products[:top_n]),
            unfulfilled_details=tuple(self.unfulfilled_details),
        )


# ──────────────────────────────────────────────────────────────────────────
# Engine
# ──────────────────────────────────────────────────────────────────────────


def build_dashboard(
    orders: Iterable[OrderLine],
    inventory: Iterable[InventoryRecord],
    production: Iterable[ProductionRecord],
    start: date,
    end: date,
    today: date,
    external_stock: Iterable[ExternalStockRecord] | None = None,
    settings: Settings | None = None,
) -> DashboardAnalysis:
    """
    Build the integrated per-product / per-customer view for [start, end].

    Pure function of its inputs: same rows, window and `today` always give
    an identical result. An unavailable external warehouse is passed as None
    and treated as empty.
    """
    if start > end:
        raise ValueError(f"Invalid window: start {start} is after end {end}")

    settings = settings or get_settings()
    orders = list(orders)
    production = list(production)

    inventory_map = aggregate_inventory(inventory, external_stock or (), settings)
    items: OrderedDict[str, _ItemBuilder] = OrderedDict()
    customers: OrderedDict[str, _CustomerBuilder] = OrderedDict()
    product_sales = 0.0
    merchandise_sales = 0.0
    window_lines = 0

    def item_for(code: str) -> _ItemBuilder:
        if code not in items:
            items[code] = _ItemBuilder(code=code)
        return items[code]

    # ── Orders ────────────────────────────────────────────────────────
    for line in orders:
        code = line.product_code
        if not code:
            continue
        item = item_for(code)
        item.merge_identity(line.product_name, line.unit, line.box_factor)
        if not _in_window(line.request_date, start, end):
            continue

        window_lines += 1
        shortfall = line.shortfall
        unit_price = _divide(abs(line.revenue), line.requested_qty)

        item.req_qty += line.requested_qty
        item.actual_qty += line.delivered_qty
        item.sales_amount += line.revenue
        if is_manufactured(code, settings.manufactured_prefixes):
            product_sales += line.revenue
        else:
            merchandise_sales += line.revenue

        customer_id = line.customer_id or UNKNOWN_CUSTOMER_ID
        customer = customers.get(customer_id)
        if customer is None:
            customer = _CustomerBuilder(id=customer_id)
            customers[customer_id] = customer
        customer.merge_name(line.customer_name)
        customer.order_count += 1
        customer.total_revenue += line.revenue
        bought = customer.bought.setdefault(code, [0.0, 0.0])
        bought[0] += line.requested_qty
        bought[1] += line.revenue

        if shortfall <= 0:
            customer.fulfilled_count += 1
            continue

        stock_on_hand = inventory_map[code].total_stock if code in inventory_map else 0.0
        detail = UnfulfilledOrder(
            customer_id=customer_id,
            customer_name=customer.name or UNKNOWN_CUSTOMER_NAME,
            product_code=code,
            product_name=item.name,
            qty=shortfall,
            value=shortfall * unit_price,
            unit_price=unit_price,
            request_date=line.request_date,
            days_delayed=days_delayed(line.request_date, today),
            cause=CAUSE_STOCK_SHORT if stock_on_hand > 0 else CAUSE_STOCK_EXHAUSTED,
        )
        item.unfulfilled_qty += shortfall
        item.unfulfilled_value += detail.value
        item.unfulfilled_orders.append(detail)
        customer.missed_revenue += detail.value
        customer.unfulfilled_details.append(detail)

    # ── Production ────────────────────────────────────────────────────
    production_rows: list[ProductionRow] = []
    for record in production:
        code = record.product_code
        if not code:
            continue
        item = item_for(code)
        item.merge_identity(record.product_name, record.unit, record.box_factor)

        if record.scheduled_date is not None and record.scheduled_date >= today:
            item.future_plan_qty += record.planned_qty
        if not _in_window(record.scheduled_date, start, end):
            continue

        item.plan_qty += record.planned_qty
        item.received_qty += record.received_qty
        production_rows.append(
            ProductionRow(
                scheduled_date=record.scheduled_date,
                plant=record.plant or "-",
                code=code,
                name=record.product_name or item.name,
                unit=record.unit or item.unit or settings.base_unit,
                box_factor=safe_factor(record.box_factor if record.box_factor > 1 else item.box_factor),
                plan_qty=record.planned_qty,
                actual_qty=record.received_qty,
                rate=_divide(record.received_qty, record.planned_qty) * 100 if record.planned_qty > 0 else 0.0,
                status=classify_production(record.planned_qty, record.received_qty, record.scheduled_date, today),
            )
        )

    # ── Inventory-only products ───────────────────────────────────────
    for code, agg in inventory_map.items():
        item_for(code).merge_identity(agg.name, agg.unit, agg.box_factor)

    # ── Freeze + KPIs (after every row is folded) ─────────────────────
    velocity = compute_velocity(orders, today, settings)
    integrated = tuple(
        builder.freeze(inventory_map.get(code), velocity.get(code), settings) for code, builder in items.items()
    )
    customer_stats = tuple(
        sorted(
            (c.freeze(items, settings.top_customer_products) for c in customers.values()),
            key=lambda c: c.total_revenue,
            reverse=True,
        )
    )

    total_unfulfilled_value = sum(item.total_unfulfilled_value for item in integrated)
    critical_delivery_count = sum(
        1
        for item in integrated
        for order in item.unfulfilled_orders
        if order.days_delayed >= settings.critical_delay_days
    )
    fulfilled_lines = sum(c.fulfilled_count for c in customer_stats)

    status_counts = {status.value: 0 for status in StockStatus}
    for item in integrated:
        if item.inventory.total_stock > 0:
            status_counts[item.inventory.status.value] += 1

    top_n = settings.top_dashboard_entries
    top_products = tuple(
        RankedEntry(name=i.name, value=i.total_sales_amount)
        for i in sorted(integrated, key=lambda i: i.total_sales_amount, reverse=True)[:top_n]
    )
    top_customers = tuple(RankedEntry(name=c.name, value=c.total_revenue) for c in customer_stats[:top_n])

    analysis = DashboardAnalysis(
        kpis=Kpis(
            product_sales=product_sales,
            merchandise_sales=merchandise_sales,
            overall_fulfillment_rate=(fulfilled_lines / window_lines * 100) if window_lines else 0.0,
            total_unfulfilled_value=total_unfulfilled_value,
            critical_delivery_count=critical_delivery_count,
        ),
        stock_health=summarize_stock_health(item.inventory.batches for item in integrated),
        status_counts=status_counts,
        top_products=top_products,
        top_customers=top_customers,
        integrated_items=integrated,
        customer_stats=customer_stats,
        fulfillment=FulfillmentSummary(
            total_orders=window_lines,
            fulfilled_orders=fulfilled_lines,
            unfulfilled_count=window_lines - fulfilled_lines,
            total_customers=len(customer_stats),
            average_rate=(
                sum(c.fulfillment_rate for c in customer_stats) / len(customer_stats) if customer_stats else 0.0
            ),
        ),
        production_rows=tuple(production_rows),
    )

    logger.info(
        "rollup.completed",
        window=f"{start.isoformat()} → {end.isoformat()}",
        items=len(integrated),
        customers=len(customer_stats),
        unfulfilled_value=round(total_unfulfilled_value, 2),
        critical_deliveries=critical_delivery_count,
    )
    return analysis
