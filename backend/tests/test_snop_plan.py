"""
Tests for the S&OP planning grid — period aggregation and balance projection.
"""

from datetime import date

import pytest

from conftest import order, plan
from inventory.snop import PlanMode, PlanPeriod, PlanStatus, aggregate_plan, period_key, project_plan, update_period


class TestPeriodKey:
    def test_iso_week(self):
        assert period_key(date(2025, 3, 10), PlanMode.WEEK) == ("2025-W11", "W11")
        assert period_key(date(2025, 3, 16), PlanMode.WEEK) == ("2025-W11", "W11")

    def test_day(self):
        assert period_key(date(2025, 3, 10), PlanMode.DAY) == ("20250310", "03-10")


class TestAggregatePlan:
    def test_weekly_buckets_zero_filled(self):
        orders = [
            order(day=date(2025, 3, 11), requested=10),
            order(day=date(2025, 3, 18), requested=20),
            order(day=date(2025, 3, 31), requested=999),
            order(day=None, requested=999),
        ]
        production = [plan(day=date(2025, 3, 12), planned=15)]
        periods = aggregate_plan(orders, production, date(2025, 3, 10), date(2025, 3, 30), PlanMode.WEEK)

        assert [p.key for p in periods] == ["2025-W11", "2025-W12", "2025-W13"]
        assert [p.demand for p in periods] == [10, 20, 0]
        assert [p.supply for p in periods] == [15, 0, 0]

    def test_daily_buckets(self):
        periods = aggregate_plan(
            [order(day=date(2025, 3, 11), requested=7)], [], date(2025, 3, 10), date(2025, 3, 12), "DAY"
        )
        assert [(p.label, p.demand) for p in periods] == [("03-10", 0), ("03-11", 7), ("03-12", 0)]

    def test_unknown_mode_raises(self):
        with pytest.raises(ValueError):
            aggregate_plan([], [], date(2025, 3, 10), date(2025, 3, 12), "MONTH")

    def test_inverted_window_raises(self):
        with pytest.raises(ValueError, match="Invalid window"):
            aggregate_plan([], [], date(2025, 3, 12), date(2025, 3, 10))


@pytest.fixture
def grid():
    return [
        PlanPeriod(key="W1", label="W1", start=date(2025, 3, 3), demand=50, supply=0),
        PlanPeriod(key="W2", label="W2", start=date(2025, 3, 10), demand=200, supply=100),
        PlanPeriod(key="W3", label="W3", start=date(2025, 3, 17), demand=0, supply=30000),
    ]


class TestProjection:
    def test_rolls_balance_forward(self, grid):
        projected = project_plan(grid, starting_stock=100)
        assert [(p.boh, p.eoh) for p in projected] == [(100, 50), (50, -50), (-50, 29950)]
        assert [p.status for p in projected] == [PlanStatus.OK, PlanStatus.SHORTAGE, PlanStatus.EXCESS]

    def test_edit_reprojects_without_mutating(self, grid):
        edited = update_period(grid, 1, starting_stock=100, demand=100)
        assert edited[1].eoh == 50
        assert edited[1].status == PlanStatus.OK
        assert edited[2].eoh == 30050
        assert grid[1].demand == 200
