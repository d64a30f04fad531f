"""
Panel transition tests.

A panel is registered IN_PROGRESS at allocation.  Each later move maps to a
progress change on its order so panel rows and order counters stay in step:

    IN_PROGRESS -> COMPLETED   completed +1, in_progress -1
    IN_PROGRESS -> FAILED      failed +1, in_progress -1
    IN_PROGRESS -> REWORK      counters unchanged, rework_count +1
    REWORK -> IN_PROGRESS      counters unchanged
    REWORK -> COMPLETED/FAILED as from IN_PROGRESS
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from mo_kernel.exceptions import InvalidPanelTransitionError, PanelNotFoundError
from mo_kernel.models.audit_log import AuditAction
from mo_kernel.models.panel import Panel, PanelStatus


@pytest.fixture
def allocated(facade, make_order, test_actor_id):
    """One freshly allocated panel on a ten-panel order."""
    mo = make_order(target_quantity=10)
    return facade.generate_next_barcode(mo.id, test_actor_id)


def _counters(facade, mo_id):
    mo = facade.orders.get_order(mo_id)
    return mo.completed_quantity, mo.failed_quantity, mo.in_progress_quantity


class TestTransitions:

    def test_complete(self, facade, allocated, test_actor_id, deterministic_clock):
        deterministic_clock.advance(300)
        panel = facade.transition_panel(allocated.panel_id, PanelStatus.COMPLETED, test_actor_id)

        assert panel.status == PanelStatus.COMPLETED
        assert panel.completed_at == deterministic_clock.now()
        assert panel.current_station_id is None
        assert _counters(facade, allocated.mo_id) == (1, 0, 0)

    def test_fail(self, facade, allocated, test_actor_id):
        facade.transition_panel(allocated.panel_id, PanelStatus.FAILED, test_actor_id, "cracked cell")
        assert _counters(facade, allocated.mo_id) == (0, 1, 0)

    def test_rework_cycle(self, facade, allocated, test_actor_id):
        panel = facade.transition_panel(
            allocated.panel_id, PanelStatus.REWORK, test_actor_id, "EL image hotspot",
        )
        assert panel.rework_count == 1
        assert panel.rework_reason == "EL image hotspot"
        assert _counters(facade, allocated.mo_id) == (0, 0, 1)

        facade.transition_panel(allocated.panel_id, PanelStatus.IN_PROGRESS, test_actor_id)
        panel = facade.transition_panel(allocated.panel_id, PanelStatus.REWORK, test_actor_id)
        assert panel.rework_count == 2

        facade.transition_panel(allocated.panel_id, PanelStatus.COMPLETED, test_actor_id)
        assert _counters(facade, allocated.mo_id) == (1, 0, 0)

    def test_rework_can_fail(self, facade, allocated, test_actor_id):
        facade.transition_panel(allocated.panel_id, PanelStatus.REWORK, test_actor_id)
        facade.transition_panel(allocated.panel_id, PanelStatus.FAILED, test_actor_id)
        assert _counters(facade, allocated.mo_id) == (0, 1, 0)

    @pytest.mark.parametrize("terminal", [PanelStatus.COMPLETED, PanelStatus.FAILED])
    def test_terminal_panels_do_not_move(self, facade, allocated, test_actor_id, terminal):
        facade.transition_panel(allocated.panel_id, terminal, test_actor_id)

        with pytest.raises(InvalidPanelTransitionError) as exc_info:
            facade.transition_panel(allocated.panel_id, PanelStatus.IN_PROGRESS, test_actor_id)
        assert exc_info.value.code == "INVALID_PANEL_TRANSITION"
        assert exc_info.value.from_status == terminal.value

    def test_rejected_transition_changes_nothing(self, facade, allocated, session, test_actor_id):
        facade.transition_panel(allocated.panel_id, PanelStatus.COMPLETED, test_actor_id)

        with pytest.raises(InvalidPanelTransitionError):
            facade.transition_panel(allocated.panel_id, PanelStatus.FAILED, test_actor_id)

        session.expire_all()
        assert session.get(Panel, allocated.panel_id).status == PanelStatus.COMPLETED
        assert _counters(facade, allocated.mo_id) == (1, 0, 0)

    def test_unknown_panel(self, facade, test_actor_id):
        with pytest.raises(PanelNotFoundError):
            facade.transition_panel(uuid4(), PanelStatus.COMPLETED, test_actor_id)

    def test_transition_audited(self, facade, allocated, test_actor_id):
        facade.transition_panel(allocated.panel_id, PanelStatus.REWORK, test_actor_id, "string gap")

        entries = facade.audit_log.entries_for("Panel", allocated.panel_id)
        assert [e.action for e in entries] == [AuditAction.PANEL_STATUS_CHANGED]
        assert entries[0].old_values == {"status": "IN_PROGRESS"}
        assert entries[0].new_values == {"status": "REWORK", "reason": "string gap", "rework_count": 1}

    def test_lookup_by_barcode(self, facade, allocated):
        panel = facade.panels.get_panel_by_barcode(allocated.barcode)
        assert panel.id == allocated.panel_id

        with pytest.raises(PanelNotFoundError):
            facade.panels.get_panel_by_barcode("CRS25WT3699999")


class TestStationData:

    def test_stations_advance(self, facade, allocated, deterministic_clock):
        for station in (1, 2, 3):
            deterministic_clock.advance(120)
            panel = facade.record_station_completion(allocated.panel_id, station)
            assert panel.station_completed_at(station) == deterministic_clock.now()
            assert panel.current_station_id == station + 1

        panel = facade.record_station_completion(allocated.panel_id, 4)
        assert panel.current_station_id == 4
        assert panel.station_4_completed_at is not None

    @pytest.mark.parametrize("station", [0, 5])
    def test_station_out_of_range(self, facade, allocated, station):
        with pytest.raises(InvalidPanelTransitionError):
            facade.record_station_completion(allocated.panel_id, station)

    def test_completed_panel_has_no_station_work(self, facade, allocated, test_actor_id):
        facade.transition_panel(allocated.panel_id, PanelStatus.COMPLETED, test_actor_id)
        with pytest.raises(InvalidPanelTransitionError):
            facade.record_station_completion(allocated.panel_id, 2)

    def test_measurements_stored_as_decimal(self, facade, allocated, test_actor_id):
        panel = facade.record_measurements(allocated.panel_id, 405.5, vmp="41.20", imp=Decimal("9.84"))

        assert panel.wattage_pmax == Decimal("405.5")
        assert panel.vmp == Decimal("41.20")
        assert panel.imp == Decimal("9.84")

    def test_measurements_can_be_cleared(self, facade, allocated):
        facade.record_measurements(allocated.panel_id, "400")
        panel = facade.record_measurements(allocated.panel_id, None)
        assert panel.wattage_pmax is None
