"""
Stock Health Classifier — shelf-life state machine for batches and products.

Per batch:
  no-expiry product or batch     → no_expiry
  remaining_days ≤ 0             → disposed
  remaining_days ≤ 30            → imminent
  remaining_days ≤ 60            → critical
  otherwise                      → healthy

A product's representative status is its worst batch (minimum remaining
days). Reporting buckets sum batch QUANTITY per state, so one product can
land in several buckets at once when its batches differ.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Sequence

from analytics.rules import has_no_expiration, is_no_expiry_code
from core.config import Settings, get_settings
from ingest.rows import SOURCE_EXTERNAL, SOURCE_PLANT, ExternalStockRecord, InventoryRecord


class StockStatus(str, Enum):
    HEALTHY = "healthy"
    CRITICAL = "critical"
    IMMINENT = "imminent"
    DISPOSED = "disposed"
    NO_EXPIRY = "no_expiry"


RISK_SCORES = {
    StockStatus.DISPOSED: 50,
    StockStatus.IMMINENT: 100,
    StockStatus.CRITICAL: 80,
}


@dataclass(frozen=True)
class InventoryBatch:
    """One batch on hand, tagged with where it is stored."""

    quantity: float
    expiration_date: date | None
    remaining_days: float
    remaining_rate: float
    location: str
    source: str
    status: StockStatus


def classify(
    remaining_days: float,
    is_no_expiry: bool = False,
    *,
    imminent_days: int = 30,
    critical_days: int = 60,
) -> StockStatus:
    """Classify a single batch by remaining shelf life."""
    if is_no_expiry:
        return StockStatus.NO_EXPIRY
    if remaining_days <= 0:
        return StockStatus.DISPOSED
    if remaining_days <= imminent_days:
        return StockStatus.IMMINENT
    if remaining_days <= critical_days:
        return StockStatus.CRITICAL
    return StockStatus.HEALTHY


def batch_is_no_expiry(code: str, expiration_date: date | None, settings: Settings) -> bool:
    return is_no_expiry_code(code, settings.no_expiry_prefixes) or has_no_expiration(
        expiration_date, settings.sentinel_expiry_year
    )


def batch_from_inventory(record: InventoryRecord, settings: Settings | None = None) -> InventoryBatch:
    settings = settings or get_settings()
    no_expiry = batch_is_no_expiry(record.product_code, record.expiration_date, settings)
    return InventoryBatch(
        quantity=record.quantity,
        expiration_date=record.expiration_date,
        remaining_days=record.remaining_days,
        remaining_rate=record.remaining_rate,
        location=record.location,
        source=SOURCE_PLANT,
        status=classify(
            record.remaining_days,
            no_expiry,
            imminent_days=settings.imminent_days,
            critical_days=settings.critical_days,
        ),
    )


def batch_from_external(record: ExternalStockRecord, settings: Settings | None = None) -> InventoryBatch:
    settings = settings or get_settings()
    no_expiry = batch_is_no_expiry(record.product_code, record.valid_until, settings)
    return InventoryBatch(
        quantity=record.available_qty,
        expiration_date=record.valid_until,
        remaining_days=record.remaining_days,
        remaining_rate=record.remaining_rate,
        location=record.location,
        source=SOURCE_EXTERNAL,
        status=classify(
            record.remaining_days,
            no_expiry,
            imminent_days=settings.imminent_days,
            critical_days=settings.critical_days,
        ),
    )


def representative_status(
    code: str,
    batches: Sequence[InventoryBatch],
    settings: Settings | None = None,
    fallback: InventoryRecord | None = None,
) -> tuple[StockStatus, float]:
    """
    Status and minimum remaining days of the product's worst batch.

    Without batches the inventory row itself is classified when one is given
    (stock held only under quality inspection); otherwise the product reports
    healthy with 0 remaining days.
    """
    settings = settings or get_settings()
    if batches:
        worst = min(batches, key=lambda b: b.remaining_days)
        remaining, expiration = worst.remaining_days, worst.expiration_date
    elif fallback is not None:
        remaining, expiration = fallback.remaining_days, fallback.expiration_date
    else:
        return StockStatus.HEALTHY, 0.0

    no_expiry = is_no_expiry_code(code, settings.no_expiry_prefixes) or has_no_expiration(
        expiration, settings.sentinel_expiry_year
    )
    status = classify(
        remaining,
        no_expiry,
        imminent_days=settings.imminent_days,
        critical_days=settings.critical_days,
    )
    return status, remaining


def status_breakdown(batches: Iterable[InventoryBatch]) -> dict[str, float]:
    """Quantity per health state for one product's batches."""
    breakdown = {status.value: 0.0 for status in StockStatus}
    for batch in batches:
        breakdown[batch.status.value] += batch.quantity
    return breakdown


def summarize_stock_health(batch_groups: Iterable[Iterable[InventoryBatch]]) -> dict[str, float]:
    """Total quantity per health state across many products."""
    totals = {status.value: 0.0 for status in StockStatus}
    for batches in batch_groups:
        for state, qty in status_breakdown(batches).items():
            totals[state] += qty
    return totals


def risk_score(status: StockStatus) -> int:
    return RISK_SCORES.get(status, 0)
