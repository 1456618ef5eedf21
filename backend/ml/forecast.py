"""
Demand Forecasting Engine — linear trend projection over monthly demand.

  value(x) = slope × x + intercept      (OLS over month index 0..n-1)
  forecast[i] = max(0, round(slope × (n + i) + intercept))

Trend: mean(forecast) vs mean(history): > +3% UP, < -3% DOWN, else STABLE.
Accuracy: max(0, 100 - stdev(history) / mean(history) × 100), a volatility
penalty rather than a backtest score.

The prior-year series is carried through for display only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
import structlog

from ingest.rows import OrderLine

logger = structlog.get_logger()

FORECAST_METHOD = "Linear Regression (Trend)"


class Trend(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    STABLE = "STABLE"


@dataclass(frozen=True)
class DataPoint:
    date: date
    value: float


@dataclass(frozen=True)
class ForecastResult:
    method: str
    historical: tuple[DataPoint, ...]
    forecast: tuple[DataPoint, ...]
    trend: Trend
    change_rate: float
    accuracy: int
    volatility: int
    prior_year: tuple[DataPoint, ...] = field(default_factory=tuple)


def linear_forecast(values: Sequence[float], horizon: int) -> list[float]:
    """OLS trend extrapolation, floored at 0 and rounded."""
    n = len(values)
    if n < 2:
        flat = float(values[0]) if n else 0.0
        return [flat] * horizon

    x = np.arange(n, dtype=float)
    y = np.asarray(values, dtype=float)
    slope, intercept = np.polyfit(x, y, 1)
    future_x = np.arange(n, n + horizon, dtype=float)
    projected = slope * future_x + intercept
    return [float(max(0, round(float(v)))) for v in projected]


def volatility(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def classify_trend(history_avg: float, forecast_avg: float, threshold_pct: float = 3.0) -> tuple[Trend, float]:
    change_rate = 0.0 if history_avg == 0 else (forecast_avg - history_avg) / history_avg * 100
    if change_rate > threshold_pct:
        return Trend.UP, change_rate
    if change_rate < -threshold_pct:
        return Trend.DOWN, change_rate
    return Trend.STABLE, change_rate


def generate_forecast(
    history: Sequence[DataPoint],
    horizon: int = 6,
    prior_year: Sequence[DataPoint] = (),
    trend_threshold_pct: float = 3.0,
) -> ForecastResult:
    """Project `horizon` months past the last historical point."""
    if horizon < 0:
        raise ValueError(f"Forecast horizon must be non-negative, got {horizon}")

    if not history:
        return ForecastResult(
            method=FORECAST_METHOD,
            historical=(),
            forecast=(),
            trend=Trend.STABLE,
            change_rate=0.0,
            accuracy=0,
            volatility=0,
            prior_year=tuple(prior_year),
        )

    values = [p.value for p in history]
    forecast_values = linear_forecast(values, horizon)

    last = pd.Timestamp(history[-1].date)
    future_dates = pd.date_range(last + pd.offsets.MonthBegin(1), periods=horizon, freq="MS")
    forecast_points = tuple(DataPoint(date=ts.date(), value=v) for ts, v in zip(future_dates, forecast_values))

    history_avg = float(np.mean(values))
    if forecast_values:
        trend, change_rate = classify_trend(history_avg, float(np.mean(forecast_values)), trend_threshold_pct)
    else:
        trend, change_rate = Trend.STABLE, 0.0

    vol = volatility(values)
    accuracy = max(0.0, 100 - vol / (history_avg or 1) * 100)

    return ForecastResult(
        method=FORECAST_METHOD,
        historical=tuple(history),
        forecast=forecast_points,
        trend=trend,
        change_rate=change_rate,
        accuracy=round(accuracy),
        volatility=round(vol),
        prior_year=tuple(prior_year),
    )


def monthly_demand_series(
    orders: Iterable[OrderLine],
    product_code: str,
    end: date,
    months: int = 6,
) -> list[DataPoint]:
    """
    Requested quantity per calendar month for the `months` months ending
    with `end`'s month, zero-filled. Points are dated on the 1st.
    """
    month_index = pd.period_range(end=pd.Period(pd.Timestamp(end), freq="M"), periods=months, freq="M")
    rows = [
        (line.request_date, line.requested_qty)
        for line in orders
        if line.product_code == product_code and line.request_date is not None
    ]
    if rows:
        frame = pd.DataFrame(rows, columns=["date", "qty"])
        frame["month"] = pd.to_datetime(frame["date"]).dt.to_period("M")
        totals = frame.groupby("month")["qty"].sum()
    else:
        totals = pd.Series(dtype=float)
    series = totals.reindex(month_index, fill_value=0.0)
    return [DataPoint(date=period.start_time.date(), value=float(qty)) for period, qty in series.items()]


def forecast_product(
    orders: Iterable[OrderLine],
    product_code: str,
    today: date,
    horizon: int = 6,
    trend_threshold_pct: float = 3.0,
) -> ForecastResult:
    """
    Six-month history ending this month plus the forecast, with the same
    twelve calendar months one year earlier for comparison.
    """
    orders = list(orders)
    history = monthly_demand_series(orders, product_code, today, months=6)
    prior_year_end = (pd.Timestamp(today) - pd.DateOffset(years=1) + pd.DateOffset(months=6)).date()
    prior_year = monthly_demand_series(orders, product_code, prior_year_end, months=12)
    result = generate_forecast(history, horizon, prior_year, trend_threshold_pct)
    logger.info(
        "forecast.generated",
        product_code=product_code,
        trend=result.trend.value,
        change_rate=round(result.change_rate, 1),
        accuracy=result.accuracy,
    )
    return result
