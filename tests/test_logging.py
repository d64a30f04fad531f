"""Structured logging: JSON lines, bound context and exception fields."""

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from mo_kernel.exceptions import InvalidBarcodeError, MOTargetReachedError
from mo_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from mo_kernel.models.panel import PanelStatus


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def log_stream():
    """Configure the engine logger tree onto a StringIO and return a reader."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler)

    def _lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _lines


class TestJsonLines:

    def test_envelope(self, log_stream):
        get_logger("services.sequence_allocator").info("barcode_allocated")

        [record] = log_stream()
        assert record["message"] == "barcode_allocated"
        assert record["level"] == "INFO"
        assert record["logger"] == "mo_kernel.services.sequence_allocator"
        assert record["ts"].endswith("+00:00")

    def test_extra_payload_is_flattened(self, log_stream):
        panel_id = uuid4()
        get_logger("test").info(
            "measurements_recorded",
            extra={
                "panel_id": panel_id,
                "wattage_pmax": Decimal("405.50"),
                "status": PanelStatus.COMPLETED,
                "sequence_number": 42,
            },
        )

        [record] = log_stream()
        assert record["panel_id"] == str(panel_id)
        assert record["wattage_pmax"] == "405.50"
        assert record["status"] == "COMPLETED"
        assert record["sequence_number"] == 42

    def test_debug_filtered_at_default_level(self, log_stream):
        logger = get_logger("test")
        logger.debug("sequence_allocated")
        logger.warning("post_commit_dispatch_failed")

        assert [r["message"] for r in log_stream()] == ["post_commit_dispatch_failed"]

    def test_formatter_usable_without_configure(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger("mo_kernel.standalone")
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        try:
            logger.info("pallet_closed", extra={"pallet_number": "PLTMO250001001"})
        finally:
            logger.removeHandler(handler)

        record = json.loads(stream.getvalue())
        assert record["pallet_number"] == "PLTMO250001001"


class TestExceptionFields:

    def test_plain_exception(self, log_stream):
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            get_logger("test").error("unit_of_work_failed", exc_info=True)

        [record] = log_stream()
        assert record["exc_type"] == "RuntimeError"
        assert record["exc_message"] == "disk full"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_manufacturing_error_attributes(self, log_stream):
        try:
            raise MOTargetReachedError("mo-1", 50, 50)
        except MOTargetReachedError:
            get_logger("test").warning("allocation_rejected", exc_info=True)

        [record] = log_stream()
        assert record["exc_code"] == "MO_TARGET_REACHED"
        assert record["exc_target_quantity"] == 50
        assert record["exc_total_produced"] == 50

    def test_barcode_error_code(self, log_stream):
        try:
            raise InvalidBarcodeError("XYZ", "wrong length")
        except InvalidBarcodeError:
            get_logger("test").info("barcode_rejected", exc_info=True)

        [record] = log_stream()
        assert record["exc_code"] == "INVALID_BARCODE"


class TestLogContext:

    def test_bound_fields_reach_records(self, log_stream):
        mo_id, actor_id = uuid4(), uuid4()
        with LogContext.bind(mo_id=mo_id, actor_id=actor_id, operation="execute_closure"):
            get_logger("test").info("mo_closed")
        get_logger("test").info("after")

        closed, after = log_stream()
        assert closed["mo_id"] == str(mo_id)
        assert closed["actor_id"] == str(actor_id)
        assert closed["operation"] == "execute_closure"
        assert "mo_id" not in after

    def test_extra_does_not_override_context(self, log_stream):
        with LogContext.bind(operation="generate_next_barcode"):
            get_logger("test").info("barcode_allocated", extra={"operation": "other"})

        [record] = log_stream()
        assert record["operation"] == "generate_next_barcode"

    def test_nested_bind_restores_outer(self):
        LogContext.set(operation="execute_closure")
        with LogContext.bind(operation="finalize_pallets", mo_id="m-1"):
            assert LogContext.get_all() == {"mo_id": "m-1", "operation": "finalize_pallets"}
        assert LogContext.get_all() == {"operation": "execute_closure"}

    def test_none_and_unknown_fields_ignored(self):
        with LogContext.bind(mo_id=None, station=3, trace_id="t-9"):
            assert LogContext.get_all() == {"trace_id": "t-9"}

    def test_set_then_clear(self):
        LogContext.set(correlation_id="c", actor_id="a", mo_id="m", operation="o", trace_id="t")
        assert len(LogContext.get_all()) == 5
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_context_is_per_thread(self):
        LogContext.set(mo_id="main-thread")

        def worker(n):
            with LogContext.bind(mo_id=f"worker-{n}"):
                return LogContext.get_all()["mo_id"]

        with ThreadPoolExecutor(max_workers=4) as pool:
            seen = list(pool.map(worker, range(4)))

        assert seen == [f"worker-{n}" for n in range(4)]
        assert LogContext.get_all()["mo_id"] == "main-thread"


class TestConfigureLogging:

    def test_second_configure_is_ignored(self):
        first, second = logging.StreamHandler(StringIO()), logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second)

        # pytest may attach its own capture handlers; count only ours
        handlers = logging.getLogger("mo_kernel").handlers
        structured = [h for h in handlers if isinstance(h.formatter, StructuredFormatter)]
        assert structured == [first]
        assert second not in handlers

    def test_does_not_propagate_to_root(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert logging.getLogger("mo_kernel").propagate is False

    def test_children_inherit_level(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream), level=logging.DEBUG)

        get_logger("services.sequence").debug("sequence_allocated", extra={"value": 1})

        record = json.loads(stream.getvalue())
        assert record["logger"] == "mo_kernel.services.sequence"
        assert record["value"] == 1
