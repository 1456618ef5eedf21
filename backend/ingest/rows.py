"""
Raw Row Contracts — typed records for the four supply-chain streams.

Rows arrive as loosely typed mappings (warehouse query results, CSV exports).
Each record type knows how to read itself from either the canonical
snake_case keys or the upstream column codes, so the engines never touch
untyped dictionaries.

Coercion rules:
  - numeric fields: missing / null / unparseable → 0.0
  - day keys: YYYYMMDD, YYYY-MM-DD, datetime text, date or datetime → date;
    anything else → None
  - text fields: missing / null → ""
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping

import pandas as pd

SOURCE_PLANT = "PLANT"
SOURCE_EXTERNAL = "FBH"

# Upstream column code → canonical field, per stream
ORDER_ALIASES = {
    "MATNR": "product_code",
    "ARKTX": "product_name",
    "VDATU": "request_date",
    "KWMENG": "requested_qty",
    "LFIMG_LIPS": "delivered_qty",
    "NETWR": "revenue",
    "KUNNR": "customer_id",
    "NAME1": "customer_name",
    "VRKME": "unit",
    "UMREZ_BOX": "box_factor",
}
INVENTORY_ALIASES = {
    "MATNR": "product_code",
    "MATNR_T": "product_name",
    "MEINS": "unit",
    "CLABS": "quantity",
    "CINSM": "quality_hold_qty",
    "VFDAT": "expiration_date",
    "LGOBE": "location",
    "remain_day": "remaining_days",
    "remain_rate": "remaining_rate",
    "UMREZ_BOX": "box_factor",
    "PRDHA_1_T": "brand",
    "PRDHA_2_T": "category",
    "PRDHA_3_T": "family",
}
EXTERNAL_ALIASES = {
    "SKU_CD": "product_code",
    "MATNR_T": "product_name",
    "PRDT_DATE_NEW": "production_date",
    "VALID_DATETIME_NEW": "valid_until",
    "AVLB_QTY": "available_qty",
    "MEINS": "unit",
    "UMREZ_BOX": "box_factor",
    "REMAINING_DAY": "remaining_days",
}
PRODUCTION_ALIASES = {
    "MATNR": "product_code",
    "MAKTX": "product_name",
    "GSTRP": "scheduled_date",
    "WERKS": "plant",
    "PSMNG": "planned_qty",
    "LMNGA": "received_qty",
    "MEINS": "unit",
    "UMREZ_BOX": "box_factor",
}


def to_float(value: Any) -> float:
    """Coerce a raw numeric field, defaulting to 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def parse_day_key(value: Any) -> date | None:
    """
    Parse a day key into a date.

    Compact YYYYMMDD keys (optionally separated by - or /) take the fast
    path; any other date text goes through pandas. All-digit text of the
    wrong length is never guessed at.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = to_text(value)
    # Numeric day keys read from CSV come through as "20250101.0"
    if text.endswith(".0"):
        text = text[:-2]
    key = text.replace("-", "").replace("/", "")
    if len(key) == 8 and key.isdigit():
        try:
            return date(int(key[:4]), int(key[4:6]), int(key[6:8]))
        except ValueError:
            return None
    if not text or text.isdigit():
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def normalize_rate(value: Any) -> float:
    """Remaining-rate as a percentage; fractions (|x| <= 10) are scaled ×100."""
    rate = to_float(value)
    if abs(rate) <= 10:
        rate = rate * 100
    return rate


def derive_remaining_rate(remaining_days: float, production_date: date | None, valid_until: date | None) -> float:
    """remaining / total shelf life × 100, or 0 when shelf life is unknown or ≤ 0."""
    if production_date is None or valid_until is None:
        return 0.0
    shelf_life = (valid_until - production_date).days
    if shelf_life <= 0:
        return 0.0
    return remaining_days / shelf_life * 100


def _canonical(record: Mapping[str, Any], aliases: dict[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in record.items():
        field = aliases.get(key, key)
        # Canonical keys win over aliases when both are present
        if field in out and key != field:
            continue
        out[field] = value
    return out


@dataclass(frozen=True)
class OrderLine:
    """One customer order line, quantities in the product's base unit."""

    product_code: str
    request_date: date | None
    requested_qty: float
    delivered_qty: float
    revenue: float
    customer_id: str = ""
    customer_name: str = ""
    product_name: str = ""
    unit: str = ""
    box_factor: float = 1.0

    @property
    def shortfall(self) -> float:
        return max(0.0, self.requested_qty - self.delivered_qty)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "OrderLine":
        row = _canonical(record, ORDER_ALIASES)
        return cls(
            product_code=to_text(row.get("product_code")),
            request_date=parse_day_key(row.get("request_date")),
            requested_qty=to_float(row.get("requested_qty")),
            delivered_qty=to_float(row.get("delivered_qty")),
            revenue=to_float(row.get("revenue")),
            customer_id=to_text(row.get("customer_id")),
            customer_name=to_text(row.get("customer_name")),
            product_name=to_text(row.get("product_name")),
            unit=to_text(row.get("unit")),
            box_factor=to_float(row.get("box_factor")) or 1.0,
        )


@dataclass(frozen=True)
class InventoryRecord:
    """Plant inventory batch as reported by the manufacturer's warehouse."""

    product_code: str
    quantity: float
    expiration_date: date | None = None
    remaining_days: float = 0.0
    remaining_rate: float = 0.0
    location: str = ""
    quality_hold_qty: float = 0.0
    product_name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    brand: str = ""
    category: str = ""
    family: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "InventoryRecord":
        row = _canonical(record, INVENTORY_ALIASES)
        return cls(
            product_code=to_text(row.get("product_code")),
            quantity=to_float(row.get("quantity")),
            expiration_date=parse_day_key(row.get("expiration_date")),
            remaining_days=to_float(row.get("remaining_days")),
            remaining_rate=normalize_rate(row.get("remaining_rate")),
            location=to_text(row.get("location")),
            quality_hold_qty=to_float(row.get("quality_hold_qty")),
            product_name=to_text(row.get("product_name")),
            unit=to_text(row.get("unit")),
            box_factor=to_float(row.get("box_factor")) or 1.0,
            brand=to_text(row.get("brand")),
            category=to_text(row.get("category")),
            family=to_text(row.get("family")),
        )


@dataclass(frozen=True)
class ExternalStockRecord:
    """Stock held at a third-party logistics warehouse."""

    product_code: str
    available_qty: float
    production_date: date | None = None
    valid_until: date | None = None
    remaining_days: float = 0.0
    product_name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    location: str = "FBH"

    @property
    def remaining_rate(self) -> float:
        return derive_remaining_rate(self.remaining_days, self.production_date, self.valid_until)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ExternalStockRecord":
        row = _canonical(record, EXTERNAL_ALIASES)
        return cls(
            product_code=to_text(row.get("product_code")),
            available_qty=to_float(row.get("available_qty")),
            production_date=parse_day_key(row.get("production_date")),
            valid_until=parse_day_key(row.get("valid_until")),
            remaining_days=to_float(row.get("remaining_days")),
            product_name=to_text(row.get("product_name")),
            unit=to_text(row.get("unit")),
            box_factor=to_float(row.get("box_factor")) or 1.0,
            location=to_text(row.get("location")) or "FBH",
        )


@dataclass(frozen=True)
class ProductionRecord:
    """One production order line, quantities in the product's base unit."""

    product_code: str
    scheduled_date: date | None
    planned_qty: float
    received_qty: float = 0.0
    product_name: str = ""
    unit: str = ""
    box_factor: float = 1.0
    plant: str = ""

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "ProductionRecord":
        row = _canonical(record, PRODUCTION_ALIASES)
        return cls(
            product_code=to_text(row.get("product_code")),
            scheduled_date=parse_day_key(row.get("scheduled_date")),
            planned_qty=to_float(row.get("planned_qty")),
            received_qty=to_float(row.get("received_qty")),
            product_name=to_text(row.get("product_name")),
            unit=to_text(row.get("unit")),
            box_factor=to_float(row.get("box_factor")) or 1.0,
            plant=to_text(row.get("plant")),
        )
