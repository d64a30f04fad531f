"""
Module: mo_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the read side of the kernel: they aggregate panel, pallet and order
    rows into frozen DTOs without mutating anything.
Architecture position: Kernel > Selectors.  May import from db/base.py,
    models/ and domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors never call session.add(), delete(),
      flush() or commit().
    - DTO return convention: selectors return frozen dataclasses, not ORM
      instances.
    - Session ownership: the caller owns the session and its transaction.

Audit relevance:
    Progress snapshots and closure assessments are derived from panel and
    pallet rows through selectors, so a readiness decision can be recomputed
    from the same data at any time.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from mo_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Accepts a Session from the caller, performs read-only queries and
        returns DTOs.

    Non-goals:
        - Defines no query methods; subclasses do.
    """

    def __init__(self, session: Session):
        self.session = session
