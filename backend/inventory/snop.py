"""
S&OP Planning Grid — demand vs supply per period with projected balances.

Periods are ISO weeks (Monday start) or single days. Each period carries
order demand and production supply; the projection rolls a starting stock
forward:

  boh(p) = eoh(p - 1)            (boh(0) = starting stock)
  eoh(p) = boh(p) + supply(p) - demand(p)

  eoh < 0                → SHORTAGE
  eoh > excess threshold → EXCESS
  otherwise              → OK
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Iterable, Sequence

from ingest.rows import OrderLine, ProductionRecord


class PlanMode(str, Enum):
    WEEK = "WEEK"
    DAY = "DAY"


class PlanStatus(str, Enum):
    OK = "OK"
    SHORTAGE = "SHORTAGE"
    EXCESS = "EXCESS"


@dataclass(frozen=True)
class PlanPeriod:
    key: str
    label: str
    start: date
    demand: float = 0.0
    supply: float = 0.0
    boh: float = 0.0
    eoh: float = 0.0
    status: PlanStatus = PlanStatus.OK


def period_key(day: date, mode: PlanMode) -> tuple[str, str]:
    """(sortable key, display label) for the period containing `day`."""
    if mode == PlanMode.WEEK:
        iso = day.isocalendar()
        return f"{iso[0]}-W{iso[1]:02d}", f"W{iso[1]}"
    return day.strftime("%Y%m%d"), day.strftime("%m-%d")


def _period_starts(start: date, end: date, mode: PlanMode) -> list[date]:
    if mode == PlanMode.WEEK:
        cursor = start - timedelta(days=start.weekday())
        step = timedelta(weeks=1)
    else:
        cursor = start
        step = timedelta(days=1)
    starts = []
    while cursor <= end:
        starts.append(cursor)
        cursor += step
    return starts


def aggregate_plan(
    orders: Iterable[OrderLine],
    production: Iterable[ProductionRecord],
    start: date,
    end: date,
    mode: PlanMode | str = PlanMode.WEEK,
) -> list[PlanPeriod]:
    """Sum demand and supply per period over [start, end]; empty periods are zero."""
    mode = PlanMode(mode)
    if start > end:
        raise ValueError(f"Invalid window: start {start} is after end {end}")

    periods = {}
    for period_start in _period_starts(start, end, mode):
        key, label = period_key(period_start, mode)
        periods[key] = PlanPeriod(key=key, label=label, start=period_start)

    demand: dict[str, float] = {}
    supply: dict[str, float] = {}
    for line in orders:
        if line.request_date is None or not start <= line.request_date <= end:
            continue
        key = period_key(line.request_date, mode)[0]
        demand[key] = demand.get(key, 0.0) + line.requested_qty
    for record in production:
        if record.scheduled_date is None or not start <= record.scheduled_date <= end:
            continue
        key = period_key(record.scheduled_date, mode)[0]
        supply[key] = supply.get(key, 0.0) + record.planned_qty

    return [
        replace(period, demand=demand.get(key, 0.0), supply=supply.get(key, 0.0)) for key, period in periods.items()
    ]


def project_plan(
    periods: Sequence[PlanPeriod],
    starting_stock: float,
    excess_threshold: float = 20000.0,
) -> list[PlanPeriod]:
    """Roll the balance forward through the periods."""
    projected = []
    balance = starting_stock
    for period in periods:
        boh = balance
        eoh = boh + period.supply - period.demand
        if eoh < 0:
            status = PlanStatus.SHORTAGE
        elif eoh > excess_threshold:
            status = PlanStatus.EXCESS
        else:
            status = PlanStatus.OK
        projected.append(replace(period, boh=boh, eoh=eoh, status=status))
        balance = eoh
    return projected


def update_period(
    periods: Sequence[PlanPeriod],
    index: int,
    starting_stock: float,
    *,
    demand: float | None = None,
    supply: float | None = None,
    excess_threshold: float = 20000.0,
) -> list[PlanPeriod]:
    """Return a re-projected grid after a planner edits one period."""
    edited = list(periods)
    changes = {}
    if demand is not None:
        changes["demand"] = demand
    if supply is not None:
        changes["supply"] = supply
    edited[index] = replace(edited[index], **changes)
    return project_plan(edited, starting_stock, excess_threshold)
