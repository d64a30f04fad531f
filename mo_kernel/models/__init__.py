"""ORM models for the manufacturing order kernel."""

from mo_kernel.models.audit_log import AuditAction, AuditLogEntry
from mo_kernel.models.closure_audit import ClosureAuditRecord, ClosureType
from mo_kernel.models.manufacturing_order import (
    ALLOCATABLE_STATUSES,
    VALID_MO_TRANSITIONS,
    ManufacturingOrder,
    MOStatus,
)
from mo_kernel.models.pallet import (
    UNFINALIZED_PALLET_STATUSES,
    VALID_PALLET_TRANSITIONS,
    Pallet,
    PalletStatus,
)
from mo_kernel.models.panel import STATION_COUNT, STATION_NAMES, Panel, PanelStatus

__all__ = [
    "AuditAction",
    "AuditLogEntry",
    "ClosureAuditRecord",
    "ClosureType",
    "ALLOCATABLE_STATUSES",
    "VALID_MO_TRANSITIONS",
    "ManufacturingOrder",
    "MOStatus",
    "UNFINALIZED_PALLET_STATUSES",
    "VALID_PALLET_TRANSITIONS",
    "Pallet",
    "PalletStatus",
    "STATION_COUNT",
    "STATION_NAMES",
    "Panel",
    "PanelStatus",
]
