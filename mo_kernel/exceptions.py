"""
Typed Exception Hierarchy for the Manufacturing Order Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (API adapters, station terminals, batch tools) branch on the kind of
failure: an exhausted order is handled differently from a malformed barcode.
Parsing message text for that is fragile, so every error here is:

  1. A TYPED exception class (catch by type, not message)
  2. Tagged with a CODE class attribute (machine-readable, API-safe)
  3. Carrying structured DATA as attributes (not just a message string)

Example - RIGHT way:
    try:
        facade.generate_next_barcode(mo_id, actor_id)
    except MOTargetReachedError as e:
        respond(code=e.code, target=e.target_quantity)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ManufacturingError (base)
    |
    +-- OrderError
    |   +-- MONotFoundError
    |   +-- MOTargetReachedError
    |   +-- OrderNumberDuplicateError
    |   +-- InvalidPanelTypeError
    |   +-- InvalidOrderSpecError
    |   +-- InvalidMOTransitionError
    |
    +-- BarcodeError
    |   +-- InvalidBarcodeError
    |   +-- BarcodeMOMismatchError
    |   +-- SequenceAlreadyUsedError
    |   +-- SequenceExceedsTargetError
    |   +-- SequenceOverflowError
    |   +-- BarcodeDuplicateError
    |
    +-- ProgressError
    |   +-- InvalidStatusChangeError
    |   +-- CounterInvariantViolatedError
    |   +-- PanelNotFoundError
    |   +-- InvalidPanelTransitionError
    |
    +-- PalletError
    |   +-- PalletNotFoundError
    |   +-- InvalidPalletTransitionError
    |   +-- PalletCapacityExceededError
    |   +-- InvalidPalletCapacityError
    |
    +-- ClosureError
    |   +-- ClosureBlockedError
    |   +-- MOAlreadyCompletedError
    |   +-- MONotCompletedError
    |
    +-- ImmutabilityViolationError
    +-- DatabaseError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category   | Code                        | When Raised
-----------|-----------------------------|--------------------------------------------
Order      | MO_NOT_FOUND                | No (allocatable) MO row for the id
           | MO_TARGET_REACHED           | completed+failed+in_progress >= target
           | ORDER_NUMBER_DUPLICATE      | Explicit order number already taken
           | INVALID_PANEL_TYPE          | Panel type outside 36/40/60/72/144
           | INVALID_ORDER_SPEC          | Other creation fields invalid
           | INVALID_MO_TRANSITION       | Lifecycle move not in transition table
-----------|-----------------------------|--------------------------------------------
Barcode    | INVALID_BARCODE             | String does not match the grammar
           | BARCODE_MO_MISMATCH         | No candidate MO's spec matches
           | SEQUENCE_ALREADY_USED       | Embedded sequence below the live counter
           | SEQUENCE_EXCEEDS_TARGET     | Embedded sequence beyond remaining capacity
           | SEQUENCE_OVERFLOW           | Sequence does not fit 5 digits
           | BARCODE_DUPLICATE           | Barcode already assigned to a panel
-----------|-----------------------------|--------------------------------------------
Progress   | INVALID_STATUS_CHANGE       | Unknown change type or bad count
           | COUNTER_INVARIANT_VIOLATED  | Counters would exceed target
           | PANEL_NOT_FOUND             | Panel id does not exist
           | INVALID_PANEL_TRANSITION    | Panel move not allowed
-----------|-----------------------------|--------------------------------------------
Pallet     | PALLET_NOT_FOUND            | Pallet id does not exist
           | INVALID_PALLET_TRANSITION   | Pallet move not allowed
           | PALLET_CAPACITY_EXCEEDED    | Pallet already holds max_capacity panels
           | INVALID_PALLET_CAPACITY     | Requested capacity is not a positive integer
-----------|-----------------------------|--------------------------------------------
Closure    | CLOSURE_BLOCKED             | Readiness failed and not forced
           | MO_ALREADY_COMPLETED        | Closing an MO that is already COMPLETED
           | MO_NOT_COMPLETED            | Rolling back an MO that is not COMPLETED
-----------|-----------------------------|--------------------------------------------
Storage    | IMMUTABILITY_VIOLATION      | Update/delete of an append-only row
           | DATABASE_ERROR              | Unclassified persistence failure

===============================================================================
"""

from typing import Any


class ManufacturingError(Exception):
    """
    Base exception for all manufacturing order kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "MANUFACTURING_ERROR"

    def to_dict(self) -> dict[str, Any]:
        """Structured error payload: code, message and context attributes."""
        data: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                data[key] = value
        return data


# Order exceptions


class OrderError(ManufacturingError):
    """Base exception for manufacturing order errors."""

    code: str = "ORDER_ERROR"


class MONotFoundError(OrderError):
    """No manufacturing order (in an allocatable status, where relevant)."""

    code: str = "MO_NOT_FOUND"

    def __init__(self, mo_id: str, reason: str | None = None):
        self.mo_id = mo_id
        self.reason = reason
        message = f"Manufacturing order not found: {mo_id}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class MOTargetReachedError(OrderError):
    """All target units are already accounted for."""

    code: str = "MO_TARGET_REACHED"

    def __init__(self, mo_id: str, target_quantity: int, total_produced: int):
        self.mo_id = mo_id
        self.target_quantity = target_quantity
        self.total_produced = total_produced
        super().__init__(
            f"Manufacturing order {mo_id} has reached its target quantity: "
            f"{total_produced}/{target_quantity}"
        )


class OrderNumberDuplicateError(OrderError):
    """Order number already exists."""

    code: str = "ORDER_NUMBER_DUPLICATE"

    def __init__(self, order_number: str):
        self.order_number = order_number
        super().__init__(f"Order number already exists: {order_number}")


class InvalidPanelTypeError(OrderError):
    """Panel type is not one of the supported sizes."""

    code: str = "INVALID_PANEL_TYPE"

    def __init__(self, panel_type: Any):
        self.panel_type = panel_type
        super().__init__(f"Invalid panel type: {panel_type!r}")


class InvalidOrderSpecError(OrderError):
    """One or more order creation fields are invalid."""

    code: str = "INVALID_ORDER_SPEC"

    def __init__(self, field_errors: list[str]):
        self.field_errors = field_errors
        super().__init__(
            f"Invalid manufacturing order: {'; '.join(field_errors)}"
        )


class InvalidMOTransitionError(OrderError):
    """Lifecycle transition is not allowed from the current status."""

    code: str = "INVALID_MO_TRANSITION"

    def __init__(self, mo_id: str, from_status: str, to_status: str):
        self.mo_id = mo_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot transition manufacturing order {mo_id} "
            f"from {from_status} to {to_status}"
        )


# Barcode exceptions


class BarcodeError(ManufacturingError):
    """Base exception for barcode errors."""

    code: str = "BARCODE_ERROR"


class InvalidBarcodeError(BarcodeError):
    """Barcode string does not match the fixed-width grammar."""

    code: str = "INVALID_BARCODE"

    def __init__(self, barcode: Any, reason: str = "does not match barcode format"):
        self.barcode = barcode
        self.reason = reason
        super().__init__(f"Invalid barcode {barcode!r}: {reason}")


class BarcodeMOMismatchError(BarcodeError):
    """No candidate manufacturing order matches the barcode."""

    code: str = "BARCODE_MO_MISMATCH"

    def __init__(self, barcode: str, errors: list[str] | None = None):
        self.barcode = barcode
        self.errors = errors or []
        super().__init__(f"No manufacturing order matches barcode {barcode}")


class SequenceAlreadyUsedError(BarcodeError):
    """Embedded sequence number was already consumed."""

    code: str = "SEQUENCE_ALREADY_USED"

    def __init__(self, sequence_number: int, next_sequence_number: int):
        self.sequence_number = sequence_number
        self.next_sequence_number = next_sequence_number
        super().__init__(
            f"Sequence {sequence_number} already used "
            f"(next available is {next_sequence_number})"
        )


class SequenceExceedsTargetError(BarcodeError):
    """Embedded sequence number lies beyond the order's remaining capacity."""

    code: str = "SEQUENCE_EXCEEDS_TARGET"

    def __init__(self, sequence_number: int, max_sequence_number: int):
        self.sequence_number = sequence_number
        self.max_sequence_number = max_sequence_number
        super().__init__(
            f"Sequence {sequence_number} exceeds target "
            f"(max allowed is {max_sequence_number})"
        )


class SequenceOverflowError(BarcodeError):
    """Sequence number does not fit the 5-digit barcode field."""

    code: str = "SEQUENCE_OVERFLOW"

    def __init__(self, sequence_number: int):
        self.sequence_number = sequence_number
        super().__init__(
            f"Sequence {sequence_number} does not fit a 5-digit barcode field"
        )


class BarcodeDuplicateError(BarcodeError):
    """Barcode is already assigned to a panel."""

    code: str = "BARCODE_DUPLICATE"

    def __init__(self, barcode: str, conflicting_panel_id: str):
        self.barcode = barcode
        self.conflicting_panel_id = conflicting_panel_id
        super().__init__(
            f"Barcode {barcode} already assigned to panel {conflicting_panel_id}"
        )


# Progress exceptions


class ProgressError(ManufacturingError):
    """Base exception for progress tracking errors."""

    code: str = "PROGRESS_ERROR"


class InvalidStatusChangeError(ProgressError):
    """Status change type is unknown or its count is not positive."""

    code: str = "INVALID_STATUS_CHANGE"

    def __init__(self, change_type: Any, reason: str = "unknown change type"):
        self.change_type = change_type
        self.reason = reason
        super().__init__(f"Invalid status change {change_type!r}: {reason}")


class CounterInvariantViolatedError(ProgressError):
    """
    Applying the change would push completed+failed+in_progress past target.

    Raised before any counter is mutated.
    """

    code: str = "COUNTER_INVARIANT_VIOLATED"

    def __init__(
        self,
        mo_id: str,
        target_quantity: int,
        completed_quantity: int,
        failed_quantity: int,
        in_progress_quantity: int,
    ):
        self.mo_id = mo_id
        self.target_quantity = target_quantity
        self.completed_quantity = completed_quantity
        self.failed_quantity = failed_quantity
        self.in_progress_quantity = in_progress_quantity
        total = completed_quantity + failed_quantity + in_progress_quantity
        super().__init__(
            f"Counters for manufacturing order {mo_id} would reach {total}, "
            f"exceeding target {target_quantity}"
        )


class PanelNotFoundError(ProgressError):
    """Panel with given ID was not found."""

    code: str = "PANEL_NOT_FOUND"

    def __init__(self, panel_id: str):
        self.panel_id = panel_id
        super().__init__(f"Panel not found: {panel_id}")


class InvalidPanelTransitionError(ProgressError):
    """Panel status move is not allowed."""

    code: str = "INVALID_PANEL_TRANSITION"

    def __init__(self, panel_id: str, from_status: str, to_status: str):
        self.panel_id = panel_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move panel {panel_id} from {from_status} to {to_status}"
        )


# Pallet exceptions


class PalletError(ManufacturingError):
    """Base exception for pallet errors."""

    code: str = "PALLET_ERROR"


class PalletNotFoundError(PalletError):
    """Pallet with given ID was not found."""

    code: str = "PALLET_NOT_FOUND"

    def __init__(self, pallet_id: str):
        self.pallet_id = pallet_id
        super().__init__(f"Pallet not found: {pallet_id}")


class InvalidPalletTransitionError(PalletError):
    """Pallet status move is not allowed."""

    code: str = "INVALID_PALLET_TRANSITION"

    def __init__(self, pallet_id: str, from_status: str, to_status: str):
        self.pallet_id = pallet_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Cannot move pallet {pallet_id} from {from_status} to {to_status}"
        )


class PalletCapacityExceededError(PalletError):
    """Pallet already holds its maximum number of panels."""

    code: str = "PALLET_CAPACITY_EXCEEDED"

    def __init__(self, pallet_id: str, max_capacity: int):
        self.pallet_id = pallet_id
        self.max_capacity = max_capacity
        super().__init__(
            f"Pallet {pallet_id} is at capacity ({max_capacity} panels)"
        )


class InvalidPalletCapacityError(PalletError):
    """Requested pallet capacity is not a positive integer."""

    code: str = "INVALID_PALLET_CAPACITY"

    def __init__(self, max_capacity: Any):
        self.max_capacity = max_capacity
        super().__init__(f"Pallet capacity must be a positive integer, got {max_capacity!r}")


# Closure exceptions


class ClosureError(ManufacturingError):
    """Base exception for closure errors."""

    code: str = "CLOSURE_ERROR"


class ClosureBlockedError(ClosureError):
    """
    Readiness assessment failed and closure was not forced.

    ``blockers`` lists every failed check so a caller sees all reasons.
    """

    code: str = "CLOSURE_BLOCKED"

    def __init__(self, mo_id: str, blockers: list[dict[str, Any]]):
        self.mo_id = mo_id
        self.blockers = blockers
        reasons = "; ".join(b.get("reason", "") for b in blockers)
        super().__init__(
            f"Manufacturing order {mo_id} is not ready for closure: {reasons}"
        )


class MOAlreadyCompletedError(ClosureError):
    """Closure requested for an order that is already COMPLETED."""

    code: str = "MO_ALREADY_COMPLETED"

    def __init__(self, mo_id: str):
        self.mo_id = mo_id
        super().__init__(
            f"Manufacturing order {mo_id} not found or already completed"
        )


class MONotCompletedError(ClosureError):
    """Rollback requested for an order that is not COMPLETED."""

    code: str = "MO_NOT_COMPLETED"

    def __init__(self, mo_id: str, status: str):
        self.mo_id = mo_id
        self.status = status
        super().__init__(
            f"Manufacturing order {mo_id} is not completed (status {status})"
        )


# Storage exceptions


class ImmutabilityViolationError(ManufacturingError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


class DatabaseError(ManufacturingError):
    """
    Persistence failure not otherwise classified.

    The original exception is chained as ``__cause__``.
    """

    code: str = "DATABASE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Database error during {operation}: {detail}")
