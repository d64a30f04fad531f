"""
Progress snapshot tests.

Covers:
- Percentages, remaining panels and failure rate from order counters
- Estimated completion time and performance metrics
- Alerts and station bottlenecks against configured thresholds
- Snapshot cache: TTL on the injected clock, facade invalidation, fresh=True
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from mo_kernel.domain.dtos import ChangeType, StatusChange
from mo_kernel.exceptions import MONotFoundError
from mo_services._closure_types import Severity
from mo_services.progress_tracker import (
    compute_failure_rate,
    compute_total_panels,
    on_time_likelihood,
    percentage,
)


def _alert_types(snapshot):
    return [a.type for a in snapshot.alerts]


class TestPureCalculations:

    @pytest.mark.parametrize(
        "part,whole,expected",
        [
            (0, 10, "0.00"),
            (1, 3, "33.33"),
            (2, 3, "66.67"),
            (97, 100, "97.00"),
            (5, 0, "0.00"),
        ],
    )
    def test_percentage(self, part, whole, expected):
        assert percentage(part, whole) == Decimal(expected)

    def test_failure_rate_zero_without_panels(self):
        assert compute_failure_rate(0, 0) == Decimal("0.00")

    def test_total_panels_is_wider_of_rows_and_counters(self):
        assert compute_total_panels(3, 5, 1, 0) == 6
        assert compute_total_panels(8, 5, 1, 0) == 8

    @pytest.mark.parametrize(
        "late_by,expected",
        [
            (timedelta(hours=-1), 100),
            (timedelta(0), 100),
            (timedelta(hours=12), 75),
            (timedelta(hours=48), 50),
            (timedelta(days=5), 25),
        ],
    )
    def test_on_time_likelihood(self, late_by, expected):
        due = datetime(2025, 3, 10, tzinfo=timezone.utc)
        assert on_time_likelihood(due, due + late_by) == expected

    def test_on_time_likelihood_without_dates(self):
        assert on_time_likelihood(None, datetime(2025, 3, 10, tzinfo=timezone.utc)) == 0


class TestSnapshot:

    def test_counters_and_percentages(self, facade, make_order, set_counters):
        mo = set_counters(make_order(target_quantity=10), completed=3, failed=1, in_progress=2)

        snapshot = facade.calculate_mo_progress(mo.id)

        assert snapshot.order_number == mo.order_number
        assert snapshot.status == "ACTIVE"
        assert snapshot.progress_percentage == Decimal("30.00")
        assert snapshot.panels_remaining == 6
        assert snapshot.total_panels == 6
        assert snapshot.failure_rate == Decimal("16.67")

    def test_unstarted_order_has_no_eta(self, facade, make_order):
        snapshot = facade.calculate_mo_progress(make_order().id)

        assert snapshot.estimated_completion_time is None
        assert snapshot.performance_metrics.panels_per_hour == Decimal("0.00")
        assert snapshot.failure_rate == Decimal("0.00")

    def test_eta_uses_default_station_minutes(self, facade, make_order, set_counters, deterministic_clock):
        started = deterministic_clock.now()
        mo = set_counters(make_order(target_quantity=10), completed=2)

        snapshot = facade.calculate_mo_progress(mo.id)

        # 8 remaining panels at 5 minutes each
        assert snapshot.estimated_completion_time == started + timedelta(minutes=40)

    def test_performance_metrics(self, facade, make_order, set_counters, deterministic_clock):
        mo = set_counters(make_order(target_quantity=10), completed=4)
        deterministic_clock.advance(2 * 3600)

        metrics = facade.calculate_mo_progress(mo.id, fresh=True).performance_metrics

        assert metrics.total_production_hours == Decimal("2.00")
        assert metrics.panels_per_hour == Decimal("2.00")
        assert metrics.avg_minutes_per_panel == Decimal("30.00")

    def test_rework_panels_counted_from_rows(self, facade, make_order, test_actor_id):
        mo = make_order()
        allocated = facade.generate_next_barcode(mo.id, test_actor_id)
        facade.transition_panel(allocated.panel_id, "REWORK", test_actor_id)

        assert facade.calculate_mo_progress(mo.id).rework_panels == 1

    def test_unknown_order(self, facade):
        with pytest.raises(MONotFoundError):
            facade.calculate_mo_progress(uuid4())


class TestAlerts:

    def test_panels_remaining_and_low_progress(self, facade, make_order, set_counters):
        mo = set_counters(make_order(target_quantity=40), completed=2, in_progress=1)

        snapshot = facade.calculate_mo_progress(mo.id)

        assert _alert_types(snapshot) == ["panels_remaining", "low_progress"]
        remaining = snapshot.alerts[0]
        assert remaining.severity == Severity.WARNING
        assert remaining.details == {"threshold": 50, "current_value": 38}

    def test_low_progress_only_for_active_orders(self, facade, make_order, set_counters, test_actor_id):
        mo = set_counters(make_order(target_quantity=200), in_progress=1)
        facade.pause_order(mo.id, test_actor_id)

        assert "low_progress" not in _alert_types(facade.calculate_mo_progress(mo.id))

    def test_high_failure_rate_is_critical(self, facade, make_order, set_counters):
        mo = set_counters(make_order(target_quantity=100), completed=60, failed=20)

        snapshot = facade.calculate_mo_progress(mo.id)

        [alert] = [a for a in snapshot.alerts if a.type == "high_failure_rate"]
        assert alert.severity == Severity.CRITICAL
        assert alert.details["current_value"] == Decimal("25.00")

    def test_ready_for_completion(self, facade, make_order, set_counters):
        mo = set_counters(make_order(target_quantity=5), completed=5)

        snapshot = facade.calculate_mo_progress(mo.id)

        assert "ready_for_completion" in _alert_types(snapshot)
        assert "panels_remaining" not in _alert_types(snapshot)


class TestBottlenecks:

    def test_queue_bottleneck(self, facade, make_order, test_actor_id):
        mo = make_order(target_quantity=10)
        for _ in range(6):
            facade.generate_next_barcode(mo.id, test_actor_id)

        snapshot = facade.calculate_mo_progress(mo.id)

        assert snapshot.station_queues == {1: 6, 2: 0, 3: 0, 4: 0}
        [bottleneck] = snapshot.bottlenecks
        assert (bottleneck.station_id, bottleneck.type) == (1, "queue")
        assert bottleneck.value == Decimal(6)
        assert bottleneck.station_name == "Assembly & EL"

    def test_slow_station(self, facade, make_order, test_actor_id, deterministic_clock):
        mo = make_order()
        allocated = facade.generate_next_barcode(mo.id, test_actor_id)
        deterministic_clock.advance(15 * 60)
        facade.record_station_completion(allocated.panel_id, 1)

        snapshot = facade.calculate_mo_progress(mo.id)

        [bottleneck] = snapshot.bottlenecks
        assert (bottleneck.station_id, bottleneck.type) == (1, "slow_station")
        assert bottleneck.value == Decimal("15.0")
        assert snapshot.station_queues[2] == 1

    def test_no_bottlenecks_below_thresholds(self, facade, make_order, test_actor_id):
        mo = make_order()
        facade.generate_next_barcode(mo.id, test_actor_id)

        assert facade.calculate_mo_progress(mo.id).bottlenecks == ()


class TestCache:

    def _bypass_facade(self, facade, session, mo_id, actor_id):
        """Change counters without the facade's cache invalidation."""
        facade.progress.apply_status_change(mo_id, StatusChange(ChangeType.PANEL_COMPLETED), actor_id)
        session.commit()

    def test_snapshot_cached_until_ttl(self, facade, make_order, set_counters, session, test_actor_id, deterministic_clock):
        mo = set_counters(make_order(), in_progress=3)
        first = facade.calculate_mo_progress(mo.id)

        self._bypass_facade(facade, session, mo.id, test_actor_id)
        deterministic_clock.advance(29)
        assert facade.calculate_mo_progress(mo.id) is first

        deterministic_clock.advance(2)
        refreshed = facade.calculate_mo_progress(mo.id)
        assert refreshed.completed_quantity == 1
        assert refreshed.calculated_at == deterministic_clock.now()

    def test_fresh_bypasses_cache(self, facade, make_order, set_counters, session, test_actor_id):
        mo = set_counters(make_order(), in_progress=3)
        facade.calculate_mo_progress(mo.id)

        self._bypass_facade(facade, session, mo.id, test_actor_id)

        assert facade.calculate_mo_progress(mo.id, fresh=True).completed_quantity == 1

    def test_facade_changes_invalidate(self, facade, make_order, set_counters, test_actor_id):
        mo = set_counters(make_order(), in_progress=3)
        facade.calculate_mo_progress(mo.id)

        facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_COMPLETED), test_actor_id)

        assert facade.calculate_mo_progress(mo.id).completed_quantity == 1

    def test_caches_are_per_order(self, facade, make_order, set_counters, test_actor_id):
        first = set_counters(make_order(), in_progress=1)
        second = set_counters(make_order(panel_type="60"), in_progress=1)
        cached = facade.calculate_mo_progress(first.id)

        facade.apply_status_change(second.id, StatusChange(ChangeType.PANEL_COMPLETED), test_actor_id)

        assert facade.calculate_mo_progress(first.id) is cached
