"""
Barcode-to-order validation tests.

validate_barcode_against_mo never writes.  With an order id it checks the
attributes and the live sequence window of that order; without one it
searches the allocatable orders whose attributes match.
"""

from uuid import uuid4

import pytest

from mo_kernel.domain.order_spec import BacksheetType, FrameType, PanelType
from mo_kernel.exceptions import InvalidBarcodeError, MONotFoundError


class TestAgainstGivenOrder:

    def test_reference_barcode_matches_order(self, facade, make_order):
        mo = make_order(
            year_code="25",
            frame_type=FrameType.SILVER,
            backsheet_type=BacksheetType.TRANSPARENT,
            panel_type=PanelType.TYPE_36,
        )

        result = facade.validate_barcode_against_mo("CRS25WT3600005", mo.id)

        assert result.is_valid
        assert result.errors == ()
        assert result.error_code is None
        assert result.mo_id == mo.id
        assert result.order_number == mo.order_number

    def test_attribute_mismatch(self, facade, make_order):
        mo = make_order(panel_type=PanelType.TYPE_72)

        result = facade.validate_barcode_against_mo("CRS25WT3600005", mo.id)

        assert not result.is_valid
        assert result.error_code == "BARCODE_MO_MISMATCH"
        assert any(e.startswith("Panel type mismatch") for e in result.errors)

    def test_used_sequence(self, facade, make_order, test_actor_id):
        mo = make_order()
        for _ in range(3):
            facade.generate_next_barcode(mo.id, test_actor_id)

        result = facade.validate_barcode_against_mo("CRS25WT3600002", mo.id)

        assert not result.is_valid
        assert result.error_code == "SEQUENCE_ALREADY_USED"

    def test_sequence_beyond_target(self, facade, make_order):
        mo = make_order(target_quantity=10)

        result = facade.validate_barcode_against_mo("CRS25WT3600012", mo.id)

        assert not result.is_valid
        assert result.error_code == "SEQUENCE_EXCEEDS_TARGET"

    def test_mismatch_and_range_error_reported_together(self, facade, make_order):
        mo = make_order(year_code="24", target_quantity=5)

        result = facade.validate_barcode_against_mo("CRS25WT3600050", mo.id)

        assert result.error_code == "BARCODE_MO_MISMATCH"
        assert len(result.errors) == 2

    def test_validation_does_not_write(self, facade, make_order, session):
        mo = make_order()
        before = mo.next_sequence_number

        facade.validate_barcode_against_mo("CRS25WT3600001", mo.id)

        assert not session.dirty
        assert not session.new
        assert facade.orders.get_order(mo.id).next_sequence_number == before

    def test_unknown_order(self, facade):
        with pytest.raises(MONotFoundError):
            facade.validate_barcode_against_mo("CRS25WT3600001", uuid4())

    def test_malformed_barcode(self, facade, make_order):
        mo = make_order()
        with pytest.raises(InvalidBarcodeError):
            facade.validate_barcode_against_mo("CRS25WT36", mo.id)


class TestOrderLookup:

    def test_finds_matching_order(self, facade, make_order):
        make_order(panel_type=PanelType.TYPE_60)
        mo = make_order(panel_type=PanelType.TYPE_36)

        result = facade.validate_barcode_against_mo("CRS25WT3600004")

        assert result.is_valid
        assert result.mo_id == mo.id

    def test_oldest_order_with_open_window_wins(
        self, facade, make_order, test_actor_id, deterministic_clock,
    ):
        older = make_order(target_quantity=2)
        deterministic_clock.advance(60)
        newer = make_order(target_quantity=10)
        facade.generate_next_barcode(older.id, test_actor_id)

        # sequence 1 is used on the older order; 2 is still in its window
        assert facade.validate_barcode_against_mo("CRS25WT3600002").mo_id == older.id
        assert facade.validate_barcode_against_mo("CRS25WT3600001").mo_id == newer.id

    def test_no_candidate(self, facade, make_order, captured_logs):
        make_order(panel_type=PanelType.TYPE_60)

        result = facade.validate_barcode_against_mo("CRS25WT3600001")

        assert not result.is_valid
        assert result.mo_id is None
        assert result.error_code == "BARCODE_MO_MISMATCH"
        assert any(r["message"] == "barcode_mo_mismatch" for r in captured_logs())

    def test_rejections_listed_per_candidate(self, facade, make_order):
        mo = make_order(target_quantity=3)

        result = facade.validate_barcode_against_mo("CRS25WT3600009")

        assert not result.is_valid
        assert any(e.startswith(f"{mo.order_number}:") for e in result.errors)

    def test_completed_orders_are_not_candidates(self, facade, make_order, set_counters, test_actor_id):
        mo = set_counters(make_order(target_quantity=100), completed=97, failed=1)
        facade.execute_closure(mo.id, test_actor_id)

        result = facade.validate_barcode_against_mo("CRS25WT3600001")

        assert not result.is_valid
