#!/usr/bin/env python3
"""Run the morning alert watch over CSV exports and print the report as JSON.

Examples:
  python backend/scripts/run_daily_watch.py --orders orders.csv --inventory stock.csv \
      --production plan.csv --today 2025-03-15
  python backend/scripts/run_daily_watch.py --orders orders.csv --inventory stock.csv \
      --production plan.csv --external fbh.csv --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import date
from typing import Any

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alerts.engine import run_daily_watch
from analytics.models import to_dict
from core.config import get_settings
from ingest.frames import (
    external_stock_from_frame,
    inventory_from_frame,
    orders_from_frame,
    production_from_frame,
    read_export,
)
from ingest.rows import parse_day_key


def _parse_day(raw: str | None) -> date:
    if raw is None:
        return date.today()
    day = parse_day_key(raw)
    if day is None:
        raise ValueError(f"Unrecognized --today value: {raw!r}")
    return day


def _run(args: argparse.Namespace) -> dict[str, Any]:
    settings = get_settings()
    today = _parse_day(args.today)

    orders = orders_from_frame(read_export(args.orders), settings)
    inventory = inventory_from_frame(read_export(args.inventory))
    production = production_from_frame(read_export(args.production), settings)
    external = external_stock_from_frame(read_export(args.external)) if args.external else None

    report = run_daily_watch(orders, inventory, production, today, external_stock=external, settings=settings)
    payload = to_dict(report)
    payload["status"] = "success"
    return payload


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the daily supply-chain alert watch")
    parser.add_argument("--orders", required=True, help="Order lines CSV export")
    parser.add_argument("--inventory", required=True, help="Plant inventory CSV export")
    parser.add_argument("--production", required=True, help="Production plan CSV export")
    parser.add_argument("--external", default=None, help="Optional external warehouse stock CSV export")
    parser.add_argument("--today", default=None, help="Run date (YYYY-MM-DD or YYYYMMDD); defaults to today")
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
