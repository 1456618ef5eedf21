"""
Velocity Calculator — rolling Average Daily Sales (ADS) per product.

Sums DELIVERED quantity over trailing windows anchored at "today", not at the
caller's reporting window:

  window N covers  today - N  ≤  request_date  <  today

Canonical ADS = 60-day sum / 60.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from core.config import Settings, get_settings
from ingest.rows import OrderLine


@dataclass(frozen=True)
class SalesVelocity:
    """Trailing delivered-quantity sums keyed by window length (days)."""

    window_sums: dict[int, float] = field(default_factory=dict)
    canonical_days: int = 60

    def ads(self, days: int | None = None) -> float:
        days = days or self.canonical_days
        return self.window_sums.get(days, 0.0) / days

    @property
    def ads_30(self) -> float:
        return self.ads(30)

    @property
    def ads_60(self) -> float:
        return self.ads(60)

    @property
    def ads_90(self) -> float:
        return self.ads(90)


def compute_velocity(
    orders: Iterable[OrderLine],
    today: date,
    settings: Settings | None = None,
) -> dict[str, SalesVelocity]:
    """Build per-product trailing delivered sums for every configured window."""
    settings = settings or get_settings()
    windows = sorted(set(settings.ads_windows) | {settings.ads_canonical_days})
    starts = {days: today - timedelta(days=days) for days in windows}

    sums: dict[str, dict[int, float]] = {}
    for line in orders:
        if not line.product_code or line.request_date is None:
            continue
        if line.request_date >= today:
            continue
        product_sums = sums.setdefault(line.product_code, {days: 0.0 for days in windows})
        for days, start in starts.items():
            if line.request_date >= start:
                product_sums[days] += line.delivered_qty

    return {
        code: SalesVelocity(window_sums=product_sums, canonical_days=settings.ads_canonical_days)
        for code, product_sums in sums.items()
    }
