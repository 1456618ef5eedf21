"""
Tests for the Daily Alert Engine.

Covers:
  - Demand spike detection (floor, ratio, missing baseline)
  - Forward shortage projection over the inclusive 7-day horizon
  - Freshness risk: burn-down and dead stock
  - Missed deliveries per (product, customer)
  - Ordering and the summary block
"""

from datetime import date, timedelta

import pytest

from conftest import TODAY, days_ago, external, order, plan, stock
from alerts.engine import (
    AlertLevel,
    AlertType,
    DailyAlertItem,
    burn_down_risk,
    run_daily_watch,
    sort_alerts,
    spike_increase_pct,
)


def _watch(settings, orders=(), inventory=(), production=(), external_stock=None):
    return run_daily_watch(list(orders), list(inventory), list(production), TODAY, external_stock, settings)


def _of_type(report, alert_type):
    return [a for a in report.alerts if a.type == alert_type]


def _baseline_week(per_day=10.0, code="5001"):
    """Seven days of orders in the trailing week, yesterday excluded."""
    return [order(code, days_ago(d), requested=per_day) for d in range(2, 9)]


# ── Spikes ─────────────────────────────────────────────────────────────


class TestSpikes:
    def test_spike_over_twice_weekly_average(self, settings):
        report = _watch(settings, orders=[*_baseline_week(), order(day=days_ago(1), requested=35)])
        (alert,) = report.alerts
        assert alert.id == "spike-5001"
        assert alert.type == AlertType.SPIKE
        assert alert.level == AlertLevel.WARNING
        assert alert.qty == 35
        assert "250%" in alert.message

    def test_just_over_floor_fires(self, settings):
        report = _watch(settings, orders=[*_baseline_week(), order(day=days_ago(1), requested=31)])
        assert len(_of_type(report, AlertType.SPIKE)) == 1

    def test_below_floor_is_quiet(self, settings):
        report = _watch(settings, orders=[*_baseline_week(), order(day=days_ago(1), requested=18)])
        assert _of_type(report, AlertType.SPIKE) == []

    def test_below_ratio_is_quiet(self, settings):
        report = _watch(settings, orders=[*_baseline_week(20), order(day=days_ago(1), requested=35)])
        assert _of_type(report, AlertType.SPIKE) == []

    def test_orders_before_trailing_week_ignored(self, settings):
        rows = [*_baseline_week(), order(day=days_ago(9), requested=1000), order(day=days_ago(1), requested=35)]
        assert len(_of_type(_watch(settings, orders=rows), AlertType.SPIKE)) == 1

    def test_no_baseline_uses_sentinel(self, settings):
        (alert,) = _watch(settings, orders=[order(day=days_ago(1), requested=40)]).alerts
        assert "999%" in alert.message

    def test_magnitude_shows_boxes(self, settings):
        (alert,) = _watch(settings, orders=[order(day=days_ago(1), requested=36, box_factor=12)]).alerts
        assert alert.magnitude == "36 EA (3 BOX)"

    def test_increase_pct(self):
        assert spike_increase_pct(35, 10) == pytest.approx(250)
        assert spike_increase_pct(40, 0) == 999


# ── Shortages ──────────────────────────────────────────────────────────


class TestShortages:
    def test_projected_negative_balance(self, settings):
        report = _watch(
            settings,
            orders=[order(day=TODAY + timedelta(days=2), requested=200)],
            inventory=[stock(qty=100, remaining_days=200)],
            production=[plan(day=TODAY + timedelta(days=3), planned=50)],
        )
        (alert,) = report.alerts
        assert alert.id == "short-5001"
        assert alert.level == AlertLevel.CRITICAL
        assert alert.qty == -50
        assert alert.magnitude == "-50 EA"

    @pytest.mark.parametrize("offset, fires", [(0, True), (7, True), (8, False), (-2, False)])
    def test_horizon_is_today_through_seventh_day(self, settings, offset, fires):
        report = _watch(
            settings,
            orders=[order(day=TODAY + timedelta(days=offset), requested=200)],
            inventory=[stock(qty=100, remaining_days=200)],
        )
        assert bool(_of_type(report, AlertType.SHORTAGE)) is fires

    def test_external_stock_counts_toward_supply(self, settings):
        report = _watch(
            settings,
            orders=[order(day=TODAY + timedelta(days=1), requested=120)],
            inventory=[stock(qty=100, remaining_days=200)],
            external_stock=[external(qty=50, remaining_days=200)],
        )
        assert _of_type(report, AlertType.SHORTAGE) == []


# ── Freshness ──────────────────────────────────────────────────────────


class TestFreshness:
    def test_burn_down_risk(self):
        assert burn_down_risk(1000, 5, 100) == 500
        assert burn_down_risk(1000, 5, 199) == 5
        assert burn_down_risk(300, 5, 20) == 200
        assert burn_down_risk(100, 5, 30) == 0
        assert burn_down_risk(0, 5, 10) == 0
        assert burn_down_risk(10, 0, 5) == 0

    def test_burn_down_alert(self, settings):
        report = _watch(
            settings,
            orders=[order(day=days_ago(10), requested=300)],
            inventory=[stock(qty=300, remaining_days=20)],
        )
        (alert,) = _of_type(report, AlertType.FRESHNESS)
        assert alert.id == "burn-5001"
        assert alert.level == AlertLevel.CRITICAL
        assert alert.qty == pytest.approx(200)
        assert "5.0/day" in alert.message
        assert "20 days left" in alert.message

    def test_risk_summed_across_batches(self, settings):
        report = _watch(
            settings,
            orders=[order(day=days_ago(10), requested=300)],
            inventory=[stock(qty=300, remaining_days=20), stock(qty=150, remaining_days=10)],
        )
        (alert,) = _of_type(report, AlertType.FRESHNESS)
        assert alert.qty == pytest.approx(300)
        assert "10 days left" in alert.message

    def test_risk_at_floor_is_quiet(self, settings):
        """ADS 5 with 199 days left leaves exactly 5 units at risk, which does not exceed the floor."""
        report = _watch(
            settings,
            orders=[order(day=days_ago(10), requested=300)],
            inventory=[stock(qty=1000, remaining_days=199)],
        )
        assert _of_type(report, AlertType.FRESHNESS) == []

    def test_small_risk_ignored(self, settings):
        report = _watch(
            settings,
            orders=[order(day=days_ago(10), requested=300)],
            inventory=[stock(qty=104, remaining_days=20)],
        )
        assert _of_type(report, AlertType.FRESHNESS) == []

    def test_dead_stock(self, settings):
        report = _watch(settings, inventory=[stock(qty=40, remaining_days=100)])
        (alert,) = report.alerts
        assert alert.id == "dead-5001"
        assert alert.qty == 40

    def test_dead_stock_with_long_shelf_life_is_quiet(self, settings):
        assert _watch(settings, inventory=[stock(qty=40, remaining_days=200)]).alerts == ()

    def test_never_expiring_stock_is_quiet(self, settings):
        record = stock(qty=40, remaining_days=0, expiration_date=date(9999, 12, 31))
        assert _watch(settings, inventory=[record]).alerts == ()


# ── Missed deliveries ──────────────────────────────────────────────────


class TestMissedDeliveries:
    def test_grouped_per_product_and_customer(self, settings):
        report = _watch(
            settings,
            orders=[
                order(day=days_ago(1), requested=10, delivered=4, customer="C1"),
                order(day=days_ago(1), requested=5, delivered=5, customer="C1"),
                order(day=days_ago(1), requested=8, delivered=0, customer="C2"),
            ],
        )
        misses = _of_type(report, AlertType.MISS)
        assert [(a.id, a.qty) for a in misses] == [("miss-5001-C1", 6), ("miss-5001-C2", 8)]
        assert all(a.level == AlertLevel.WARNING for a in misses)
        assert "Customer C1" in misses[0].message

    def test_over_delivery_nets_out(self, settings):
        report = _watch(
            settings,
            orders=[
                order(day=days_ago(1), requested=10, delivered=12),
                order(day=days_ago(1), requested=5, delivered=4),
            ],
        )
        assert _of_type(report, AlertType.MISS) == []

    def test_only_yesterday_counts(self, settings):
        report = _watch(settings, orders=[order(day=days_ago(2), requested=10, delivered=0)])
        assert _of_type(report, AlertType.MISS) == []


# ── Ordering and summary ───────────────────────────────────────────────


class TestReport:
    def test_critical_alerts_first(self, settings):
        report = _watch(
            settings,
            orders=[
                order("5001", days_ago(1), requested=40),
                order("7001", TODAY + timedelta(days=1), requested=500),
            ],
            inventory=[stock("7001", qty=100, remaining_days=200)],
        )
        assert [a.type for a in report.alerts] == [AlertType.SHORTAGE, AlertType.SPIKE]

    def test_sort_is_stable_within_level(self):
        def item(alert_id, level):
            return DailyAlertItem(alert_id, AlertType.MISS, level, "5001", "", "", "", 0, "0 EA")

        alerts = [item("w1", AlertLevel.WARNING), item("c1", AlertLevel.CRITICAL), item("w2", AlertLevel.WARNING)]
        assert [a.id for a in sort_alerts(alerts)] == ["c1", "w1", "w2"]

    def test_top_orders(self, settings):
        rows = [
            order("A", days_ago(1), requested=50, name="A"),
            order("B", days_ago(1), requested=20, name="B"),
            order("C", days_ago(1), requested=40, name="C"),
            order("D", days_ago(1), requested=10, name="D"),
        ]
        summary = _watch(settings, orders=rows).summary
        assert [(e.name, e.qty) for e in summary.top_orders] == [("A", 50), ("C", 40), ("B", 20)]

    def test_lowest_projected_balance(self, settings):
        report = _watch(
            settings,
            orders=[order("P1", TODAY + timedelta(days=1), requested=200, name="P1")],
            inventory=[
                stock("P1", qty=100, remaining_days=200),
                stock("P2", qty=50, remaining_days=200, product_name="P2"),
                stock("P3", qty=10, remaining_days=200, product_name="P3"),
                stock("P4", qty=500, remaining_days=200, product_name="P4"),
            ],
        )
        assert [(e.name, e.qty) for e in report.summary.lowest_balance] == [("P1", -100), ("P3", 10), ("P2", 50)]

    def test_scanned_count_covers_every_stream(self, settings):
        report = _watch(
            settings,
            orders=[order("A", days_ago(30)), order("B", days_ago(30))],
            inventory=[stock("C", qty=0)],
            production=[plan("D", TODAY + timedelta(days=30))],
            external_stock=[external("E", qty=0)],
        )
        assert report.summary.scanned_count == 5
        assert report.run_date == TODAY

    def test_empty_inputs(self, settings):
        report = _watch(settings)
        assert report.alerts == ()
        assert report.summary.scanned_count == 0
        assert report.summary.top_orders == ()
