"""
Progress aggregation tests.

Every counter write goes through apply_status_change.  The quantity
invariant completed + failed + in_progress <= target is checked before
anything is mutated, and every applied change leaves an audit row with the
counters before and after.
"""

from uuid import uuid4

import pytest
from hypothesis import given
from hypothesis import strategies as st

from mo_kernel.domain.dtos import ChangeType, StatusChange
from mo_kernel.exceptions import (
    CounterInvariantViolatedError,
    InvalidStatusChangeError,
    MONotFoundError,
)
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.manufacturing_order import ManufacturingOrder, MOStatus
from mo_kernel.services.progress_aggregator import next_counters


def _progress_entries(facade, mo_id):
    return [
        e for e in facade.audit_log.entries_for("ManufacturingOrder", mo_id)
        if e.action == AuditAction.PROGRESS_UPDATED
    ]


class TestApplyStatusChange:

    def test_started_then_completed(self, facade, make_order, test_actor_id):
        mo = make_order(target_quantity=10)

        facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_STARTED, 4), test_actor_id)
        counters = facade.apply_status_change(
            mo.id, StatusChange(ChangeType.PANEL_COMPLETED, 3), test_actor_id,
        )

        assert (counters.completed_quantity, counters.failed_quantity, counters.in_progress_quantity) == (3, 0, 1)
        assert counters.total_produced == 4
        assert counters.status == "ACTIVE"

    def test_failed_moves_out_of_in_progress(self, facade, make_order, set_counters, test_actor_id):
        mo = set_counters(make_order(), in_progress=2)

        counters = facade.apply_status_change(mo.id, StatusChange("PANEL_FAILED"), test_actor_id)

        assert (counters.failed_quantity, counters.in_progress_quantity) == (1, 1)

    def test_in_progress_floored_at_zero(self, facade, make_order, test_actor_id):
        mo = make_order(target_quantity=10)

        counters = facade.apply_status_change(
            mo.id, StatusChange(ChangeType.PANEL_COMPLETED, 2), test_actor_id,
        )

        assert counters.completed_quantity == 2
        assert counters.in_progress_quantity == 0

    def test_rework_leaves_counters_unchanged(self, facade, make_order, set_counters, test_actor_id):
        mo = set_counters(make_order(), completed=2, in_progress=3)

        counters = facade.apply_status_change(
            mo.id, StatusChange(ChangeType.PANEL_REWORK), test_actor_id,
        )

        assert (counters.completed_quantity, counters.failed_quantity, counters.in_progress_quantity) == (2, 0, 3)

    def test_first_start_activates_draft(self, facade, make_order, test_actor_id, deterministic_clock):
        mo = make_order()

        facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_STARTED), test_actor_id)

        mo = facade.orders.get_order(mo.id)
        assert mo.status == MOStatus.ACTIVE
        assert mo.started_at == deterministic_clock.now()

    def test_completion_does_not_activate_draft(self, facade, make_order, test_actor_id):
        mo = make_order()

        facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_COMPLETED), test_actor_id)

        assert facade.orders.get_order(mo.id).status == MOStatus.DRAFT


class TestRejectedChanges:

    def test_overshooting_target_mutates_nothing(self, facade, make_order, set_counters, session, test_actor_id):
        mo = set_counters(make_order(target_quantity=5), completed=3, in_progress=2)
        audit_rows_before = len(_progress_entries(facade, mo.id))

        with pytest.raises(CounterInvariantViolatedError) as exc_info:
            facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_STARTED), test_actor_id)
        assert exc_info.value.code == "COUNTER_INVARIANT_VIOLATED"
        assert exc_info.value.in_progress_quantity == 3

        session.expire_all()
        mo = session.get(ManufacturingOrder, mo.id)
        assert (mo.completed_quantity, mo.failed_quantity, mo.in_progress_quantity) == (3, 0, 2)
        assert len(_progress_entries(facade, mo.id)) == audit_rows_before

    def test_overshoot_is_logged(self, facade, make_order, test_actor_id, captured_logs):
        mo = make_order(target_quantity=1)

        with pytest.raises(CounterInvariantViolatedError):
            facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_STARTED, 2), test_actor_id)

        blocked = [r for r in captured_logs() if r["message"] == "counter_invariant_violation_blocked"]
        assert blocked[0]["level"] == "WARNING"
        assert blocked[0]["target_quantity"] == 1

    def test_unknown_change_type(self, facade, make_order, test_actor_id):
        mo = make_order()
        with pytest.raises(InvalidStatusChangeError) as exc_info:
            facade.apply_status_change(mo.id, StatusChange("PANEL_VANISHED"), test_actor_id)
        assert exc_info.value.code == "INVALID_STATUS_CHANGE"

    @pytest.mark.parametrize("count", [0, -3, 1.5, True, None])
    def test_non_positive_count(self, facade, make_order, test_actor_id, count):
        mo = make_order()
        with pytest.raises(InvalidStatusChangeError):
            facade.apply_status_change(mo.id, StatusChange(ChangeType.PANEL_STARTED, count), test_actor_id)

    def test_invalid_change_checked_before_order_lookup(self, facade, test_actor_id):
        with pytest.raises(InvalidStatusChangeError):
            facade.apply_status_change(uuid4(), StatusChange("NOPE"), test_actor_id)

    def test_unknown_order(self, facade, test_actor_id):
        with pytest.raises(MONotFoundError):
            facade.apply_status_change(uuid4(), StatusChange(ChangeType.PANEL_STARTED), test_actor_id)


class TestProgressAudit:

    def test_audit_row_holds_before_and_after(self, facade, make_order, set_counters, test_actor_id, deterministic_clock):
        mo = set_counters(make_order(), in_progress=3)
        deterministic_clock.advance(60)
        panel_id = uuid4()

        facade.apply_status_change(
            mo.id, StatusChange(ChangeType.PANEL_COMPLETED, 2, panel_id=panel_id), test_actor_id,
        )

        latest = _progress_entries(facade, mo.id)[-1]
        assert latest.old_values == {
            "completed_quantity": 0,
            "failed_quantity": 0,
            "in_progress_quantity": 3,
        }
        assert latest.new_values["completed_quantity"] == 2
        assert latest.new_values["in_progress_quantity"] == 1
        assert latest.new_values["change_type"] == "PANEL_COMPLETED"
        assert latest.new_values["count"] == 2
        assert latest.new_values["panel_id"] == str(panel_id)
        assert latest.actor_id == test_actor_id

    def test_one_row_per_change(self, facade, make_order, set_counters):
        mo = set_counters(make_order(), completed=2, failed=1)
        # started, completed, failed
        assert len(_progress_entries(facade, mo.id)) == 3


@given(
    completed=st.integers(min_value=0, max_value=50),
    failed=st.integers(min_value=0, max_value=50),
    in_progress=st.integers(min_value=0, max_value=50),
    change_type=st.sampled_from(list(ChangeType)),
    count=st.integers(min_value=1, max_value=50),
)
def test_counters_never_negative_and_total_never_grows_except_on_start(
    completed, failed, in_progress, change_type, count,
):
    c, f, p = next_counters(completed, failed, in_progress, change_type, count)

    assert min(c, f, p) >= 0
    assert c >= completed and f >= failed
    if change_type != ChangeType.PANEL_STARTED:
        assert p <= in_progress
