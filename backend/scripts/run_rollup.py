#!/usr/bin/env python3
"""Build the integrated product/customer rollup for a window and print it as JSON.

Examples:
  python backend/scripts/run_rollup.py --orders orders.csv --inventory stock.csv \
      --production plan.csv --start 2025-03-01 --end 2025-03-31
  python backend/scripts/run_rollup.py ... --today 2025-03-31 --items 20 --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from dataclasses import asdict
from datetime import date
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analytics.models import to_dict
from analytics.rollup import build_dashboard
from core.config import get_settings
from ingest.frames import (
    external_stock_from_frame,
    inventory_from_frame,
    orders_from_frame,
    production_from_frame,
    read_export,
)
from ingest.rows import parse_day_key


def _required_day(raw: str | None, flag: str, default: date | None = None) -> date:
    if raw is None and default is not None:
        return default
    day = parse_day_key(raw)
    if day is None:
        raise ValueError(f"Unrecognized {flag} value: {raw!r}")
    return day


def _item_summary(item) -> dict[str, Any]:
    return {
        "code": item.code,
        "name": item.name,
        "brand": item.brand,
        "category": item.category,
        "total_req_qty": item.total_req_qty,
        "total_actual_qty": item.total_actual_qty,
        "total_unfulfilled_qty": item.total_unfulfilled_qty,
        "total_unfulfilled_value": round(item.total_unfulfilled_value, 2),
        "total_sales_amount": item.total_sales_amount,
        "total_stock": item.inventory.total_stock,
        "status": item.inventory.status.value,
        "remaining_days": item.inventory.remaining_days,
        "ads": round(item.inventory.ads, 3),
        "future_plan_qty": item.production.future_plan_qty,
    }


def _run(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    start = _required_day(args.start, "--start")
    end = _required_day(args.end, "--end")
    today = _required_day(args.today, "--today", default=date.today())

    orders = orders_from_frame(read_export(args.orders), settings)
    inventory = inventory_from_frame(read_export(args.inventory))
    production = production_from_frame(read_export(args.production), settings)
    external = external_stock_from_frame(read_export(args.external)) if args.external else None

    analysis = build_dashboard(
        orders,
        inventory,
        production,
        start,
        end,
        today,
        external_stock=external,
        settings=settings,
    )
    items = sorted(analysis.integrated_items, key=lambda i: i.total_unfulfilled_value, reverse=True)
    return {
        "status": "success",
        "window": {"start": start.isoformat(), "end": end.isoformat(), "today": today.isoformat()},
        "kpis": asdict(analysis.kpis),
        "fulfillment": asdict(analysis.fulfillment),
        "stock_health": analysis.stock_health,
        "status_counts": analysis.status_counts,
        "top_products": [to_dict(entry) for entry in analysis.top_products],
        "top_customers": [to_dict(entry) for entry in analysis.top_customers],
        "item_count": len(items),
        "items": [_item_summary(item) for item in items[: args.items]],
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Build the integrated S&OP rollup for a date window")
    parser.add_argument("--orders", required=True, help="Order lines CSV export")
    parser.add_argument("--inventory", required=True, help="Plant inventory CSV export")
    parser.add_argument("--production", required=True, help="Production plan CSV export")
    parser.add_argument("--external", default=None, help="Optional external warehouse stock CSV export")
    parser.add_argument("--start", required=True, help="Window start (YYYY-MM-DD or YYYYMMDD)")
    parser.add_argument("--end", required=True, help="Window end (YYYY-MM-DD or YYYYMMDD)")
    parser.add_argument("--today", default=None, help="Reference date for delays and velocity; defaults to today")
    parser.add_argument("--items", type=int, default=50, help="Max items to include, by unfulfilled value")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args()

    failed = False
    try:
        summary = _run(args)
    except Exception as exc:  # noqa: BLE001
        summary = {"status": "failed", "error": str(exc)}
        failed = True

    if args.pretty:
        print(json.dumps(summary, indent=2, sort_keys=True))
    else:
        print(json.dumps(summary))

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
