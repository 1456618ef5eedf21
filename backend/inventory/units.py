"""
Unit Normalizer — box ↔ base unit conversion.

Orders and production plans may be entered in boxes; inventory is always
counted in the product's base unit. Everything downstream of ingest works in
base units, and boxes only come back for display.

  base_qty = box_qty × box_factor      (when the line's unit is the box unit)
  box_qty  = base_qty / box_factor

A missing, zero or negative conversion factor is treated as 1.
"""

import math
from dataclasses import replace

from ingest.rows import OrderLine, ProductionRecord


def safe_factor(box_factor: float | None) -> float:
    """Return a usable conversion factor (never 0, negative, NaN or Inf)."""
    if box_factor is None:
        return 1.0
    try:
        factor = float(box_factor)
    except (TypeError, ValueError):
        return 1.0
    if math.isnan(factor) or math.isinf(factor) or factor <= 0:
        return 1.0
    return factor


def to_base_units(quantity: float, unit: str, box_factor: float | None, box_unit: str = "BOX") -> float:
    """Convert a quantity to base units if it was recorded in boxes."""
    if (unit or "").strip().upper() == box_unit.upper():
        return quantity * safe_factor(box_factor)
    return quantity


def to_boxes(quantity: float, box_factor: float | None) -> float:
    return quantity / safe_factor(box_factor)


def normalize_order_line(line: OrderLine, box_unit: str = "BOX", base_unit: str = "EA") -> OrderLine:
    """Return the line with requested/delivered quantities in base units."""
    if (line.unit or "").strip().upper() != box_unit.upper():
        return line
    return replace(
        line,
        requested_qty=to_base_units(line.requested_qty, line.unit, line.box_factor, box_unit),
        delivered_qty=to_base_units(line.delivered_qty, line.unit, line.box_factor, box_unit),
        unit=base_unit,
    )


def normalize_production_record(
    record: ProductionRecord, box_unit: str = "BOX", base_unit: str = "EA"
) -> ProductionRecord:
    """Return the production record with planned/received quantities in base units."""
    if (record.unit or "").strip().upper() != box_unit.upper():
        return record
    return replace(
        record,
        planned_qty=to_base_units(record.planned_qty, record.unit, record.box_factor, box_unit),
        received_qty=to_base_units(record.received_qty, record.unit, record.box_factor, box_unit),
        unit=base_unit,
    )


def format_magnitude(quantity: float, unit: str, box_factor: float | None, box_unit: str = "BOX") -> str:
    """
    Human-readable quantity, e.g. "1,200 EA (100 BOX)".

    The box part is omitted when the product has no box conversion.
    """
    unit_label = unit or "EA"
    text = f"{round(quantity):,} {unit_label}"
    factor = safe_factor(box_factor)
    if factor > 1:
        boxes = to_boxes(quantity, factor)
        text += f" ({boxes:,.1f} {box_unit})" if boxes % 1 else f" ({round(boxes):,} {box_unit})"
    return text
