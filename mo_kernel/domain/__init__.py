"""
Pure domain layer.

Barcode codec, order specification vocabularies, clock abstraction and
result DTOs.  Nothing here touches the ORM, the database or I/O.
"""

from mo_kernel.domain.barcode import (
    BarcodeComponents,
    BarcodeRange,
    BarcodeSpec,
    SpecValidation,
    construct,
    parse,
    validate_against_spec,
)
from mo_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from mo_kernel.domain.dtos import ChangeType, StatusChange
from mo_kernel.domain.order_spec import (
    BacksheetType,
    FrameType,
    OrderPriority,
    OrderSpec,
    PanelType,
    ProductionLine,
)

__all__ = [
    "BarcodeComponents",
    "BarcodeRange",
    "BarcodeSpec",
    "SpecValidation",
    "construct",
    "parse",
    "validate_against_spec",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ChangeType",
    "StatusChange",
    "BacksheetType",
    "FrameType",
    "OrderPriority",
    "OrderSpec",
    "PanelType",
    "ProductionLine",
]
