"""
mo_services -- Package init and public API.

Responsibility:
    Transaction-owning orchestration over the manufacturing order kernel:
    cached progress tracking, closure readiness, closure execution and
    rollback, post-commit notifications, and the public facade.

Architecture position:
    Services -- stateful orchestration over kernel + config.

    Dependency direction:
        mo_services/ -> mo_kernel/  (allowed)
        mo_services/ -> mo_config/  (allowed)
        mo_kernel/   -> mo_services/ (FORBIDDEN)
        mo_config/   -> mo_services/ (FORBIDDEN)

Invariants enforced:
    - DI transparency: all service wiring is centralised in
      ManufacturingOrderFacade.
"""

from mo_services._closure_types import (
    Alert,
    Bottleneck,
    ClosureAssessment,
    ClosureAuditView,
    ClosureOptions,
    ClosureResult,
    CompletionReport,
    PalletFinalizationItem,
    PalletFinalizationResult,
    PerformanceMetrics,
    ProgressSnapshot,
    ReadinessCheck,
    ReadinessStatus,
    Recommendation,
    RollbackResult,
    Severity,
)
from mo_services.closure_executor import ClosureExecutor
from mo_services.closure_readiness import READINESS_CHECKS, ClosureReadinessEngine
from mo_services.facade import ManufacturingOrderFacade
from mo_services.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    OutboundEvent,
    PostCommitOutbox,
)
from mo_services.progress_tracker import ProgressTracker

__all__ = [
    "Alert",
    "Bottleneck",
    "ClosureAssessment",
    "ClosureAuditView",
    "ClosureExecutor",
    "ClosureOptions",
    "ClosureReadinessEngine",
    "ClosureResult",
    "CompletionReport",
    "LoggingNotificationSink",
    "ManufacturingOrderFacade",
    "NotificationSink",
    "OutboundEvent",
    "PalletFinalizationItem",
    "PalletFinalizationResult",
    "PerformanceMetrics",
    "PostCommitOutbox",
    "ProgressSnapshot",
    "ProgressTracker",
    "READINESS_CHECKS",
    "ReadinessCheck",
    "ReadinessStatus",
    "Recommendation",
    "RollbackResult",
    "Severity",
]
