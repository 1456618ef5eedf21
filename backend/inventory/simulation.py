"""
ATP Simulation Engine — day-by-day available-to-promise projection.

Answers: "If a customer asks for Q units on day D, can we promise it?"

Algorithm:
  1. Usable stock = batches whose (expiration - today) ≥ min shelf life.
     Batches without an expiration date never expire and always count.
  2. Ledger per calendar day of: production inflow, committed demand,
     the hypothetical new request.
  3. Walk every day from today through the last event day. On a day with
     events apply inflow, then committed demand, then the new request.
     Committed customers are served before the hypothetical one.
  4. The first negative balance sets the shortage date; the shortage
     quantity is the deepest deficit reached. A later recovery does not
     clear the shortage.

Also hosts the coarse capacity scenario ("can stock + plan absorb a +X%
sales push?") used for quick what-if checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Iterable

import structlog

from ingest.rows import InventoryRecord, OrderLine, ProductionRecord

logger = structlog.get_logger()


class EventType(str, Enum):
    STOCK = "STOCK"
    PRODUCTION = "PRODUCTION"
    EXISTING_ORDER = "EXISTING_ORDER"
    NEW_REQUEST = "NEW_REQUEST"


# Application order within a single day
_DAILY_ORDER = (EventType.PRODUCTION, EventType.EXISTING_ORDER, EventType.NEW_REQUEST)


@dataclass(frozen=True)
class InventoryEvent:
    date: date
    type: EventType
    quantity: float  # signed balance change
    balance: float


@dataclass(frozen=True)
class DailyBalance:
    date: date
    balance: float


@dataclass(frozen=True)
class SimulationResult:
    feasible: bool
    shortage_date: date | None
    shortage_qty: float
    timeline: tuple[InventoryEvent, ...]
    daily_balances: tuple[DailyBalance, ...]
    total_stock: float
    total_production: float
    total_demand: float


def usable_stock(batches: Iterable[InventoryRecord], today: date, min_shelf_life_days: int = 0) -> float:
    total = 0.0
    for batch in batches:
        if batch.quantity <= 0:
            continue
        if batch.expiration_date is None or (batch.expiration_date - today).days >= min_shelf_life_days:
            total += batch.quantity
    return total


def simulate_atp(
    batches: Iterable[InventoryRecord],
    production: Iterable[ProductionRecord],
    committed_orders: Iterable[OrderLine],
    request_qty: float,
    target_date: date,
    today: date,
    min_shelf_life_days: int = 0,
) -> SimulationResult:
    """
    Project one product's balance day by day.

    Production and committed demand dated before today (or undated) fall
    outside the horizon and are ignored. A new request dated before today
    is a caller mistake and raises ValueError.
    """
    if target_date < today:
        raise ValueError(f"Requested date {target_date} is before {today}")
    start_stock = usable_stock(batches, today, min_shelf_life_days)

    ledger: dict[date, dict[EventType, float]] = {}

    def book(day: date | None, kind: EventType, qty: float) -> None:
        if day is None or day < today or qty == 0:
            return
        day_events = ledger.setdefault(day, {})
        day_events[kind] = day_events.get(kind, 0.0) + qty

    for record in production:
        book(record.scheduled_date, EventType.PRODUCTION, record.planned_qty)
    for line in committed_orders:
        book(line.request_date, EventType.EXISTING_ORDER, line.requested_qty)
    book(target_date, EventType.NEW_REQUEST, request_qty)

    balance = start_stock
    timeline = [InventoryEvent(date=today, type=EventType.STOCK, quantity=start_stock, balance=balance)]
    daily: list[DailyBalance] = []
    shortage_date: date | None = None
    deepest = 0.0

    last_day = max(ledger) if ledger else today
    day = today
    while day <= last_day:
        for kind in _DAILY_ORDER:
            qty = ledger.get(day, {}).get(kind)
            if qty is None:
                continue
            change = qty if kind == EventType.PRODUCTION else -qty
            balance += change
            timeline.append(InventoryEvent(date=day, type=kind, quantity=change, balance=balance))
            if balance < 0:
                if shortage_date is None:
                    shortage_date = day
                deepest = min(deepest, balance)
        daily.append(DailyBalance(date=day, balance=balance))
        day += timedelta(days=1)

    result = SimulationResult(
        feasible=shortage_date is None,
        shortage_date=shortage_date,
        shortage_qty=abs(deepest),
        timeline=tuple(timeline),
        daily_balances=tuple(daily),
        total_stock=start_stock,
        total_production=sum(e.get(EventType.PRODUCTION, 0.0) for e in ledger.values()),
        total_demand=sum(e.get(EventType.EXISTING_ORDER, 0.0) for e in ledger.values()),
    )
    if not result.feasible:
        logger.info(
            "simulation.shortage",
            shortage_date=shortage_date.isoformat(),
            shortage_qty=result.shortage_qty,
            request_qty=request_qty,
        )
    return result


# ──────────────────────────────────────────────────────────────────────────
# Capacity scenario
# ──────────────────────────────────────────────────────────────────────────


class ScenarioStatus(str, Enum):
    SAFE = "SAFE"
    WARNING = "WARNING"
    DANGER = "DANGER"


@dataclass(frozen=True)
class CapacityScenario:
    target_demand: float
    total_supply: float
    gap: float
    coverage: float
    status: ScenarioStatus
    insight: str


def run_capacity_scenario(
    current_stock: float,
    production_plan: float,
    avg_monthly_sales: float,
    sales_increase_pct: float,
    safe_coverage_pct: float = 120.0,
    warning_coverage_pct: float = 100.0,
) -> CapacityScenario:
    """Can current stock plus planned production absorb a sales increase?"""
    target_demand = round(avg_monthly_sales * (1 + sales_increase_pct / 100))
    total_supply = current_stock + production_plan
    gap = total_supply - target_demand
    coverage = total_supply / (target_demand or 1) * 100

    if coverage >= safe_coverage_pct:
        status = ScenarioStatus.SAFE
        insight = f"Enough stock even with sales up {sales_increase_pct:g}%; extra marketing is safe."
    elif coverage >= warning_coverage_pct:
        status = ScenarioStatus.WARNING
        insight = "Demand can be met but almost no safety stock remains; consider pulling production forward."
    else:
        status = ScenarioStatus.DANGER
        insight = f"Short by {abs(gap):,.0f} units; stock and plan cannot cover demand. Increase production urgently."

    return CapacityScenario(
        target_demand=target_demand,
        total_supply=total_supply,
        gap=gap,
        coverage=coverage,
        status=status,
        insight=insight,
    )
