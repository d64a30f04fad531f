"""
BaseService -- abstract base for kernel write services.

Responsibility:
    Common constructor for every service in ``mo_kernel/services``: a
    caller-owned SQLAlchemy ``Session`` and an injected ``Clock``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: kernel services ``flush()`` inside the caller's
    transaction and never commit or roll back.  ``mo_services`` owns
    commit/rollback, so allocation plus panel registration plus progress
    audit row land atomically or not at all.

Failure modes:
    - A subclass calling ``session.commit()`` would break the atomicity of
      multi-step operations such as closure.
"""

from abc import ABC

from sqlalchemy.orm import Session

from mo_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel write services.

    Contract:
        Accepts a ``Session`` from the caller and uses ``flush()`` to make
        changes visible within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only reads; those live in
          ``mo_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        """
        Args:
            session: SQLAlchemy session for database operations.
            clock: Clock for timestamps. Defaults to SystemClock.
        """
        self.session = session
        self._clock = clock or SystemClock()
