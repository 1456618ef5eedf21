"""
Tests for the ATP Simulation Engine and the capacity scenario.
"""

from datetime import date, timedelta

import pytest

from conftest import TODAY, order, plan, stock
from inventory.simulation import (
    EventType,
    ScenarioStatus,
    run_capacity_scenario,
    simulate_atp,
    usable_stock,
)


def day(n: int) -> date:
    return TODAY + timedelta(days=n)


# ── Usable stock ───────────────────────────────────────────────────────


class TestUsableStock:
    def test_minimum_shelf_life_filter(self):
        batches = [stock(qty=100, remaining_days=100), stock(qty=40, remaining_days=10)]
        assert usable_stock(batches, TODAY, min_shelf_life_days=30) == 100
        assert usable_stock(batches, TODAY) == 140

    def test_undated_batch_always_usable(self):
        assert usable_stock([stock(qty=25, expiration_date=None)], TODAY, min_shelf_life_days=365) == 25


# ── Day-by-day projection ──────────────────────────────────────────────


class TestSimulateAtp:
    def test_shortage_on_request_day(self):
        """100 on hand, 80 committed on day 2, 40 requested on day 5 → short 20 on day 5."""
        result = simulate_atp(
            [stock(qty=100, remaining_days=100)],
            [],
            [order(day=day(2), requested=80)],
            request_qty=40,
            target_date=day(5),
            today=TODAY,
        )
        assert not result.feasible
        assert result.shortage_date == day(5)
        assert result.shortage_qty == 20
        assert [b.balance for b in result.daily_balances] == [100, 100, 20, 20, 20, -20]

    def test_production_makes_request_feasible(self):
        result = simulate_atp(
            [stock(qty=100, remaining_days=100)],
            [plan(day=day(3), planned=50)],
            [order(day=day(2), requested=80)],
            request_qty=40,
            target_date=day(5),
            today=TODAY,
        )
        assert result.feasible
        assert result.shortage_date is None
        assert result.shortage_qty == 0
        assert result.daily_balances[-1].balance == 30
        assert result.total_production == 50
        assert result.total_demand == 80

    def test_same_day_inflow_applied_before_demand(self):
        result = simulate_atp(
            [stock(qty=100, remaining_days=100)],
            [plan(day=day(1), planned=50)],
            [order(day=day(1), requested=120)],
            request_qty=10,
            target_date=day(1),
            today=TODAY,
        )
        assert result.feasible
        assert [e.type for e in result.timeline] == [
            EventType.STOCK,
            EventType.PRODUCTION,
            EventType.EXISTING_ORDER,
            EventType.NEW_REQUEST,
        ]
        assert result.timeline[-1].balance == 20

    def test_recovery_does_not_clear_shortage(self):
        result = simulate_atp([], [plan(day=day(2), planned=50)], [], 10, day(1), TODAY)
        assert not result.feasible
        assert result.shortage_date == day(1)
        assert result.shortage_qty == 10
        assert result.daily_balances[-1].balance == 40

    def test_deepest_deficit_reported(self):
        result = simulate_atp(
            [stock(qty=10, remaining_days=100)],
            [],
            [order(day=day(1), requested=30), order(day=day(3), requested=20)],
            5,
            day(2),
            TODAY,
        )
        assert result.shortage_date == day(1)
        assert result.shortage_qty == 45

    def test_past_events_ignored(self):
        result = simulate_atp(
            [stock(qty=50, remaining_days=100)],
            [plan(day=day(-3), planned=500)],
            [order(day=day(-1), requested=500), order(day=None, requested=500)],
            20,
            day(1),
            TODAY,
        )
        assert result.feasible
        assert result.total_production == 0
        assert result.total_demand == 0

    def test_past_request_date_raises(self):
        with pytest.raises(ValueError, match="before"):
            simulate_atp([stock(qty=50, remaining_days=100)], [], [], 20, day(-1), TODAY)

    def test_request_today_is_booked(self):
        result = simulate_atp([stock(qty=50, remaining_days=100)], [], [], 20, TODAY, TODAY)
        assert [e.type for e in result.timeline] == [EventType.STOCK, EventType.NEW_REQUEST]
        assert result.daily_balances[-1].balance == 30

    def test_short_shelf_life_stock_excluded(self):
        result = simulate_atp([stock(qty=100, remaining_days=10)], [], [], 50, day(1), TODAY, min_shelf_life_days=30)
        assert result.total_stock == 0
        assert not result.feasible

    def test_balances_cover_every_day(self):
        result = simulate_atp([stock(qty=100, remaining_days=100)], [], [], 10, day(4), TODAY)
        assert [b.date for b in result.daily_balances] == [day(n) for n in range(5)]


# ── Capacity scenario ──────────────────────────────────────────────────


class TestCapacityScenario:
    def test_safe(self):
        scenario = run_capacity_scenario(1000, 500, 1000, 20)
        assert scenario.target_demand == 1200
        assert scenario.total_supply == 1500
        assert scenario.coverage == pytest.approx(125)
        assert scenario.status == ScenarioStatus.SAFE

    def test_warning(self):
        assert run_capacity_scenario(1000, 500, 1000, 40).status == ScenarioStatus.WARNING

    def test_danger(self):
        scenario = run_capacity_scenario(1000, 500, 1000, 60)
        assert scenario.status == ScenarioStatus.DANGER
        assert scenario.gap == -100
        assert "100" in scenario.insight

    def test_zero_demand_does_not_divide_by_zero(self):
        assert run_capacity_scenario(10, 0, 0, 50).status == ScenarioStatus.SAFE
