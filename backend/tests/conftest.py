"""
Test Configuration — shared fixtures: fixed run date, settings, sample rows.

Every engine takes "today" explicitly, so tests pin it to a single date and
build rows relative to it.
"""

from datetime import date, timedelta

import pytest

from core.config import Settings, get_settings
from ingest.rows import ExternalStockRecord, InventoryRecord, OrderLine, ProductionRecord

TODAY = date(2025, 3, 15)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def settings():
    """Default thresholds, independent of any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def days_ago(n: int, anchor: date = TODAY) -> date:
    return anchor - timedelta(days=n)


def order(
    code: str = "5001",
    day: date | None = TODAY,
    requested: float = 10.0,
    delivered: float | None = None,
    revenue: float = 100.0,
    customer: str = "C1",
    name: str = "Vanilla Yogurt",
    **kwargs,
) -> OrderLine:
    return OrderLine(
        product_code=code,
        request_date=day,
        requested_qty=requested,
        delivered_qty=requested if delivered is None else delivered,
        revenue=revenue,
        customer_id=customer,
        customer_name=kwargs.pop("customer_name", f"Customer {customer}"),
        product_name=name,
        unit=kwargs.pop("unit", "EA"),
        box_factor=kwargs.pop("box_factor", 1.0),
    )


def stock(code: str = "5001", qty: float = 100.0, remaining_days: float = 120.0, **kwargs) -> InventoryRecord:
    expiration = kwargs.pop("expiration_date", TODAY + timedelta(days=int(remaining_days)))
    return InventoryRecord(
        product_code=code,
        quantity=qty,
        expiration_date=expiration,
        remaining_days=remaining_days,
        **kwargs,
    )


def external(code: str = "5001", qty: float = 50.0, remaining_days: float = 90.0, **kwargs) -> ExternalStockRecord:
    return ExternalStockRecord(
        product_code=code,
        available_qty=qty,
        production_date=kwargs.pop("production_date", TODAY - timedelta(days=90)),
        valid_until=kwargs.pop("valid_until", TODAY + timedelta(days=int(remaining_days))),
        remaining_days=remaining_days,
        **kwargs,
    )


def plan(code: str = "5001", day: date | None = TODAY, planned: float = 50.0, received: float = 0.0, **kwargs):
    return ProductionRecord(
        product_code=code,
        scheduled_date=day,
        planned_qty=planned,
        received_qty=received,
        **kwargs,
    )


@pytest.fixture
def sample_rows():
    """A small mixed book: one manufactured product, one merchandise product, two customers."""
    orders = [
        order("5001", days_ago(3), requested=100, delivered=80, revenue=1000, customer="C1"),
        order("5001", days_ago(2), requested=50, delivered=50, revenue=500, customer="C2"),
        order("7001", days_ago(1), requested=20, delivered=0, revenue=400, customer="C1", name="Paper Cups"),
    ]
    inventory = [
        stock("5001", qty=200, remaining_days=45, product_name="Vanilla Yogurt"),
        stock("5001", qty=100, remaining_days=150),
        stock("9001", qty=30, remaining_days=10, product_name="Shelf Only"),
    ]
    production = [
        plan("5001", days_ago(5), planned=100, received=100),
        plan("5001", TODAY + timedelta(days=3), planned=60),
    ]
    return {"orders": orders, "inventory": inventory, "production": production}
