"""
DataFrame ingest — map tabular exports onto the typed row contracts.

Accepts frames that use either canonical column names or the warehouse's
upstream column codes, coerces numerics, converts box quantities to base
units, and returns lists of row records ready for the engines.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, TypeVar

import pandas as pd
import structlog

from core.config import Settings, get_settings
from ingest.rows import (
    EXTERNAL_ALIASES,
    INVENTORY_ALIASES,
    ORDER_ALIASES,
    PRODUCTION_ALIASES,
    ExternalStockRecord,
    InventoryRecord,
    OrderLine,
    ProductionRecord,
    parse_day_key,
)
from inventory.units import normalize_order_line, normalize_production_record

logger = structlog.get_logger()

T = TypeVar("T")

ORDER_NUMERIC_COLS = ["requested_qty", "delivered_qty", "revenue", "box_factor"]
INVENTORY_NUMERIC_COLS = ["quantity", "quality_hold_qty", "remaining_days", "remaining_rate", "box_factor"]
EXTERNAL_NUMERIC_COLS = ["available_qty", "remaining_days", "box_factor"]
PRODUCTION_NUMERIC_COLS = ["planned_qty", "received_qty", "box_factor"]
DAY_KEY_FIELDS = {"request_date", "expiration_date", "production_date", "valid_until", "scheduled_date"}
# Day keys must stay text so "20250101" is not read as a number
DATE_COLS = DAY_KEY_FIELDS | {
    k
    for k, v in {**ORDER_ALIASES, **INVENTORY_ALIASES, **EXTERNAL_ALIASES, **PRODUCTION_ALIASES}.items()
    if v in DAY_KEY_FIELDS
}


def _prepare(df: pd.DataFrame, aliases: dict[str, str], numeric_cols: list[str], stream: str) -> pd.DataFrame:
    """Rename aliases, enforce the product-code column, coerce numerics and day keys."""
    out = df.rename(columns={k: v for k, v in aliases.items() if k in df.columns and v not in df.columns})
    if "product_code" not in out.columns:
        raise ValueError(f"{stream} frame is missing a product code column")

    out = out.copy()
    out["product_code"] = out["product_code"].astype("string").str.strip()
    out = out[out["product_code"].notna() & (out["product_code"] != "")]
    for col in numeric_cols:
        if col in out.columns:
            out[col] = pd.to_numeric(out[col], errors="coerce").fillna(0.0)
    # Parsed to date objects, since sentinel years such as 9999 overflow datetime64[ns]
    for col in DAY_KEY_FIELDS.intersection(out.columns):
        out[col] = out[col].map(parse_day_key).astype(object)
    return out


def _records(df: pd.DataFrame, factory: Callable[[dict], T]) -> list[T]:
    cleaned = df.astype(object).where(pd.notna(df), None)
    return [factory(row) for row in cleaned.to_dict(orient="records")]


def orders_from_frame(df: pd.DataFrame, settings: Settings | None = None) -> list[OrderLine]:
    settings = settings or get_settings()
    prepared = _prepare(df, ORDER_ALIASES, ORDER_NUMERIC_COLS, "orders")
    return [
        normalize_order_line(line, settings.box_unit, settings.base_unit)
        for line in _records(prepared, OrderLine.from_record)
    ]


def inventory_from_frame(df: pd.DataFrame) -> list[InventoryRecord]:
    prepared = _prepare(df, INVENTORY_ALIASES, INVENTORY_NUMERIC_COLS, "inventory")
    return _records(prepared, InventoryRecord.from_record)


def external_stock_from_frame(df: pd.DataFrame) -> list[ExternalStockRecord]:
    prepared = _prepare(df, EXTERNAL_ALIASES, EXTERNAL_NUMERIC_COLS, "external stock")
    return _records(prepared, ExternalStockRecord.from_record)


def production_from_frame(df: pd.DataFrame, settings: Settings | None = None) -> list[ProductionRecord]:
    settings = settings or get_settings()
    prepared = _prepare(df, PRODUCTION_ALIASES, PRODUCTION_NUMERIC_COLS, "production")
    return [
        normalize_production_record(record, settings.box_unit, settings.base_unit)
        for record in _records(prepared, ProductionRecord.from_record)
    ]


def read_export(path: str | Path | None) -> pd.DataFrame:
    """
    Read a CSV export with text product codes and day keys.

    A missing optional source (None path) yields an empty frame.
    """
    if path is None:
        return pd.DataFrame(columns=["product_code"])
    path = Path(path)
    header = pd.read_csv(path, nrows=0)
    text_cols = {c: str for c in header.columns if c in DATE_COLS or c in {"product_code", "MATNR", "SKU_CD", "KUNNR"}}
    df = pd.read_csv(path, dtype=text_cols, low_memory=False)
    logger.info("ingest.read_export", path=str(path), rows=len(df), columns=len(df.columns))
    return df
