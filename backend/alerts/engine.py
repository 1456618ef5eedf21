"""
Daily Alert Engine — rule-based morning watch over orders, stock and production.

Alert Types:
  - SPIKE (WARNING): yesterday's demand > floor AND > ratio × trailing 7-day average
  - SHORTAGE (CRITICAL): stock + production(next 7d) - demand(next 7d) < 0
  - FRESHNESS (CRITICAL): stock that cannot be sold before expiry at current
    velocity (burn-down), or stock with no sales in 60 days (dead stock)
  - MISS (WARNING): yesterday's order lines delivered short, per (product, customer)

Windows, all relative to an explicit `today`:
  yesterday         = today - 1
  trailing week     = [today - 8, yesterday)      (7 days, yesterday excluded)
  ADS lookback      = [today - 60, today)
  forward horizon   = [today, today + 7]

Alerts are ordered CRITICAL before WARNING; within a level the detector
encounter order is kept.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Iterable

import structlog

from analytics.velocity import SalesVelocity, compute_velocity
from core.config import Settings, get_settings
from ingest.rows import ExternalStockRecord, InventoryRecord, OrderLine, ProductionRecord
from inventory.health import InventoryBatch, StockStatus, batch_from_external, batch_from_inventory
from inventory.units import format_magnitude

logger = structlog.get_logger()


class AlertType(str, Enum):
    SPIKE = "SPIKE"
    SHORTAGE = "SHORTAGE"
    FRESHNESS = "FRESHNESS"
    MISS = "MISS"


class AlertLevel(str, Enum):
    CRITICAL = "CRITICAL"
    WARNING = "WARNING"


@dataclass(frozen=True)
class DailyAlertItem:
    id: str
    type: AlertType
    level: AlertLevel
    product_code: str
    product_name: str
    message: str
    action: str
    qty: float
    magnitude: str
    unit: str = "EA"
    box_factor: float = 1.0


@dataclass(frozen=True)
class SummaryEntry:
    name: str
    qty: float
    unit: str
    box_factor: float


@dataclass(frozen=True)
class DailySummary:
    scanned_count: int
    top_orders: tuple[SummaryEntry, ...]
    lowest_balance: tuple[SummaryEntry, ...]


@dataclass(frozen=True)
class DailyWatchReport:
    run_date: date
    alerts: tuple[DailyAlertItem, ...]
    summary: DailySummary


# ──────────────────────────────────────────────────────────────────────────
# Per-product aggregates
# ──────────────────────────────────────────────────────────────────────────


@dataclass
class ProductSignal:
    """Everything the detectors need to know about one product."""

    code: str
    name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    yesterday_qty: float = 0.0
    week_qty: float = 0.0
    stock: float = 0.0
    forward_supply: float = 0.0
    forward_demand: float = 0.0
    batches: list[InventoryBatch] = field(default_factory=list)
    velocity: SalesVelocity | None = None

    @property
    def ads(self) -> float:
        return self.velocity.ads() if self.velocity else 0.0

    @property
    def projected_balance(self) -> float:
        return self.stock + self.forward_supply - self.forward_demand

    def merge_identity(self, name: str, unit: str, box_factor: float) -> None:
        self.name = self.name or name
        self.unit = self.unit or unit
        if self.box_factor <= 1 < box_factor:
            self.box_factor = box_factor


@dataclass
class _Windows:
    today: date
    yesterday: date
    week_start: date
    horizon_end: date

    @classmethod
    def for_today(cls, today: date, settings: Settings) -> "_Windows":
        yesterday = today - timedelta(days=1)
        return cls(
            today=today,
            yesterday=yesterday,
            week_start=yesterday - timedelta(days=settings.spike_lookback_days),
            horizon_end=today + timedelta(days=settings.forward_horizon_days),
        )

    def in_horizon(self, day: date | None) -> bool:
        return day is not None and self.today <= day <= self.horizon_end


def build_signals(
    orders: list[OrderLine],
    inventory: Iterable[InventoryRecord],
    production: Iterable[ProductionRecord],
    today: date,
    external_stock: Iterable[ExternalStockRecord] = (),
    settings: Settings | None = None,
) -> tuple["OrderedDict[str, ProductSignal]", set[str]]:
    """Fold the raw streams into per-product signals; also returns every code scanned."""
    settings = settings or get_settings()
    windows = _Windows.for_today(today, settings)
    signals: OrderedDict[str, ProductSignal] = OrderedDict()
    scanned: set[str] = set()

    def signal_for(code: str) -> ProductSignal:
        if code not in signals:
            signals[code] = ProductSignal(code=code)
        return signals[code]

    for line in orders:
        if not line.product_code:
            continue
        scanned.add(line.product_code)
        signal = signal_for(line.product_code)
        signal.merge_identity(line.product_name, line.unit, line.box_factor)
        day = line.request_date
        if day is None:
            continue
        if day == windows.yesterday:
            signal.yesterday_qty += line.requested_qty
        elif windows.week_start <= day < windows.yesterday:
            signal.week_qty += line.requested_qty
        if windows.in_horizon(day):
            signal.forward_demand += line.requested_qty

    for record in inventory:
        if not record.product_code:
            continue
        scanned.add(record.product_code)
        signal = signal_for(record.product_code)
        signal.merge_identity(record.product_name, record.unit, record.box_factor)
        if record.quantity > 0:
            signal.stock += record.quantity
            signal.batches.append(batch_from_inventory(record, settings))

    for record in external_stock:
        if not record.product_code:
            continue
        scanned.add(record.product_code)
        signal = signal_for(record.product_code)
        signal.merge_identity(record.product_name, record.unit, record.box_factor)
        if record.available_qty > 0:
            signal.stock += record.available_qty
            signal.batches.append(batch_from_external(record, settings))

    for record in production:
        if not record.product_code:
            continue
        scanned.add(record.product_code)
        signal = signal_for(record.product_code)
        signal.merge_identity(record.product_name, record.unit, record.box_factor)
        if windows.in_horizon(record.scheduled_date):
            signal.forward_supply += record.planned_qty

    velocity = compute_velocity(orders, today, settings)
    for code, signal in signals.items():
        signal.velocity = velocity.get(code)

    return signals, scanned


def _alert(
    alert_id: str,
    alert_type: AlertType,
    level: AlertLevel,
    signal: ProductSignal,
    message: str,
    action: str,
    qty: float,
    settings: Settings,
    product_name: str | None = None,
) -> DailyAlertItem:
    unit = signal.unit or settings.base_unit
    return DailyAlertItem(
        id=alert_id,
        type=alert_type,
        level=level,
        product_code=signal.code,
        product_name=product_name if product_name is not None else signal.name,
        message=message,
        action=action,
        qty=qty,
        magnitude=format_magnitude(qty, unit, signal.box_factor, settings.box_unit),
        unit=unit,
        box_factor=signal.box_factor,
    )


# ──────────────────────────────────────────────────────────────────────────
# Detection Rules
# ──────────────────────────────────────────────────────────────────────────


def spike_increase_pct(yesterday_qty: float, week_avg: float, sentinel: float = 999.0) -> float:
    """Percentage increase over the weekly average; sentinel when there is no baseline."""
    if week_avg == 0:
        return sentinel
    return (yesterday_qty - week_avg) / week_avg * 100


def detect_spikes(signals: Iterable[ProductSignal], settings: Settings | None = None) -> list[DailyAlertItem]:
    settings = settings or get_settings()
    alerts = []
    for signal in signals:
        week_avg = signal.week_qty / settings.spike_lookback_days
        if signal.yesterday_qty > settings.spike_min_qty and signal.yesterday_qty > week_avg * settings.spike_ratio:
            pct = spike_increase_pct(signal.yesterday_qty, week_avg, settings.spike_sentinel_pct)
            alerts.append(
                _alert(
                    f"spike-{signal.code}",
                    AlertType.SPIKE,
                    AlertLevel.WARNING,
                    signal,
                    f"Orders up {pct:.0f}% versus the trailing weekly average",
                    "Confirm with sales whether this is a one-off promotion volume",
                    signal.yesterday_qty,
                    settings,
                )
            )
    return alerts


def detect_shortages(signals: Iterable[ProductSignal], settings: Settings | None = None) -> list[DailyAlertItem]:
    settings = settings or get_settings()
    alerts = []
    for signal in signals:
        balance = signal.projected_balance
        if balance < 0:
            supply = signal.stock + signal.forward_supply
            alerts.append(
                _alert(
                    f"short-{signal.code}",
                    AlertType.SHORTAGE,
                    AlertLevel.CRITICAL,
                    signal,
                    (
                        f"Confirmed delivery requests for the next {settings.forward_horizon_days} days "
                        f"({round(signal.forward_demand):,}) exceed stock plus production ({round(supply):,})"
                    ),
                    "Raise production priority or negotiate split shipments",
                    balance,
                    settings,
                )
            )
    return alerts


def burn_down_risk(stock: float, ads: float, remaining_days: float) -> float:
    """Quantity that cannot be sold before expiry at the current velocity (0 if none)."""
    if stock <= 0 or ads <= 0:
        return 0.0
    if stock / ads <= remaining_days:
        return 0.0
    return stock - ads * remaining_days


def detect_freshness_risks(
    signals: Iterable[ProductSignal], settings: Settings | None = None
) -> list[DailyAlertItem]:
    """
    Burn-down and dead-stock detection, one alert per product.

    Risk quantities are summed across the product's batches while the most
    urgent remaining-days value is tracked for the message. Batches that
    never expire carry no freshness risk.
    """
    settings = settings or get_settings()
    alerts = []
    for signal in signals:
        ads = signal.ads
        risk_qty = 0.0
        min_days: float | None = None

        for batch in signal.batches:
            if batch.status == StockStatus.NO_EXPIRY or batch.quantity <= 0:
                continue
            if ads > 0:
                batch_risk = burn_down_risk(batch.quantity, ads, batch.remaining_days)
                if batch_risk <= settings.freshness_min_risk_qty:
                    continue
                risk_qty += batch_risk
            elif batch.remaining_days < settings.dead_stock_max_days:
                risk_qty += batch.quantity
            else:
                continue
            min_days = batch.remaining_days if min_days is None else min(min_days, batch.remaining_days)

        if min_days is None:
            continue

        if ads > 0:
            alerts.append(
                _alert(
                    f"burn-{signal.code}",
                    AlertType.FRESHNESS,
                    AlertLevel.CRITICAL,
                    signal,
                    f"Sales velocity ({ads:.1f}/day) too slow for remaining shelf life ({min_days:.0f} days left)",
                    "Cannot sell through before expiry. Urgent promotion needed",
                    risk_qty,
                    settings,
                )
            )
        else:
            alerts.append(
                _alert(
                    f"dead-{signal.code}",
                    AlertType.FRESHNESS,
                    AlertLevel.CRITICAL,
                    signal,
                    (
                        f"No sales in the last {settings.ads_canonical_days} days "
                        f"({min_days:.0f} days of shelf life left)"
                    ),
                    "Find a new channel, or decide on donation or disposal",
                    risk_qty,
                    settings,
                )
            )
    return alerts


def detect_missed_deliveries(
    orders: Iterable[OrderLine],
    signals: dict[str, ProductSignal],
    today: date,
    settings: Settings | None = None,
) -> list[DailyAlertItem]:
    """One alert per (product, customer) pair delivered short yesterday."""
    settings = settings or get_settings()
    yesterday = today - timedelta(days=1)
    pairs: OrderedDict[tuple[str, str], list] = OrderedDict()
    for line in orders:
        if not line.product_code or line.request_date != yesterday:
            continue
        key = (line.product_code, line.customer_id)
        entry = pairs.setdefault(key, [0.0, 0.0, line.customer_name, line.product_name])
        entry[0] += line.requested_qty
        entry[1] += line.delivered_qty

    alerts = []
    for (code, customer_id), (requested, delivered, customer_name, product_name) in pairs.items():
        missed = requested - delivered
        if missed <= 0:
            continue
        signal = signals.get(code) or ProductSignal(code=code, name=product_name)
        alerts.append(
            _alert(
                f"miss-{code}-{customer_id}",
                AlertType.MISS,
                AlertLevel.WARNING,
                signal,
                f"Yesterday's scheduled delivery was short ({customer_name or customer_id or 'unknown customer'})",
                "Find the cause and dispatch an urgent delivery today",
                missed,
                settings,
                product_name=product_name or signal.name,
            )
        )
    return alerts


def sort_alerts(alerts: Iterable[DailyAlertItem]) -> list[DailyAlertItem]:
    """CRITICAL first; stable within a level."""
    return sorted(alerts, key=lambda a: a.level != AlertLevel.CRITICAL)


# ──────────────────────────────────────────────────────────────────────────
# Daily Watch
# ──────────────────────────────────────────────────────────────────────────


def run_daily_watch(
    orders: Iterable[OrderLine],
    inventory: Iterable[InventoryRecord],
    production: Iterable[ProductionRecord],
    today: date,
    external_stock: Iterable[ExternalStockRecord] | None = None,
    settings: Settings | None = None,
) -> DailyWatchReport:
    """
    Run every detector for `today` and build the summary block.

    Expects order lines covering at least [today - 60, today + 7] and
    production rows covering the forward horizon.
    """
    settings = settings or get_settings()
    orders = list(orders)
    signals, scanned = build_signals(orders, inventory, production, today, external_stock or (), settings)

    alerts = sort_alerts(
        [
            *detect_spikes(signals.values(), settings),
            *detect_shortages(signals.values(), settings),
            *detect_freshness_risks(signals.values(), settings),
            *detect_missed_deliveries(orders, signals, today, settings),
        ]
    )

    top_n = settings.summary_top_n
    top_orders = tuple(
        SummaryEntry(name=s.name, qty=s.yesterday_qty, unit=s.unit or settings.base_unit, box_factor=s.box_factor)
        for s in sorted(
            (s for s in signals.values() if s.yesterday_qty > 0), key=lambda s: s.yesterday_qty, reverse=True
        )[:top_n]
    )
    balance_candidates = [s for s in signals.values() if s.stock > 0 or s.forward_supply > 0 or s.forward_demand > 0]
    lowest_balance = tuple(
        SummaryEntry(
            name=s.name, qty=s.projected_balance, unit=s.unit or settings.base_unit, box_factor=s.box_factor
        )
        for s in sorted(balance_candidates, key=lambda s: s.projected_balance)[:top_n]
    )

    report = DailyWatchReport(
        run_date=today,
        alerts=tuple(alerts),
        summary=DailySummary(scanned_count=len(scanned), top_orders=top_orders, lowest_balance=lowest_balance),
    )
    logger.info(
        "daily_watch.completed",
        run_date=today.isoformat(),
        scanned=len(scanned),
        alerts=len(alerts),
        critical=sum(1 for a in alerts if a.level == AlertLevel.CRITICAL),
    )
    return report
