"""Services for the manufacturing order kernel (write side)."""

from mo_kernel.services.audit_log_service import AuditLogService
from mo_kernel.services.order_service import OrderService
from mo_kernel.services.pallet_service import PalletService
from mo_kernel.services.panel_service import PANEL_TRANSITIONS, PanelService
from mo_kernel.services.progress_aggregator import ProgressAggregator
from mo_kernel.services.sequence_allocator import (
    SequenceAllocator,
    validate_sequence_range,
)
from mo_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditLogService",
    "OrderService",
    "PANEL_TRANSITIONS",
    "PalletService",
    "PanelService",
    "ProgressAggregator",
    "SequenceAllocator",
    "SequenceService",
    "validate_sequence_range",
]
