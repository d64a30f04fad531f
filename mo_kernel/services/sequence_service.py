"""
SequenceService -- locked counters behind order and pallet numbers.

Responsibility:
    Issues the numeric part of ``MO<YY><nnnn>`` order numbers (one counter
    per year code) and of ``PLT<order><nnn>`` pallet numbers (one counter
    per order).  Barcode sequences are not kept here; they live on the
    order row and are advanced by SequenceAllocator.

Architecture position:
    Kernel > Services.  Used by OrderService and PalletService.

Invariants enforced:
    - The counter row is read FOR UPDATE; two concurrent order creations
      for the same year never receive the same number.
    - Numbers are never derived from MAX(order_number) + 1.
    - An increment rolls back with the caller's transaction.

Failure modes:
    - IntegrityError re-raised only if the counter row is still missing
      after losing the first-insert race.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from mo_kernel.db.base import Base
from mo_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Last value issued for one named counter."""

    __tablename__ = "sequence_counters"

    # "mo_order_number:25", "pallet_number:MO250001"
    name: Mapped[str] = mapped_column(String(80), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """
    Named counters for human-readable numbers.

    Contract:
        Flush-only.  The caller's unit of work commits the increment.
    """

    @staticmethod
    def order_number_sequence(year_code: str) -> str:
        return f"mo_order_number:{year_code}"

    @staticmethod
    def pallet_number_sequence(order_number: str) -> str:
        return f"pallet_number:{order_number}"

    def __init__(self, session: Session):
        self._session = session

    def _locked(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _first_use(self, name: str) -> SequenceCounter | None:
        """Insert the counter at 1 inside a savepoint; None if another writer won."""
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=name, current_value=1)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            return None
        savepoint.commit()
        return counter

    def next_value(self, name: str) -> int:
        """Increment ``name`` and return the new value (1 on first use)."""
        counter = self._locked(name)
        if counter is None:
            created = self._first_use(name)
            if created is not None:
                logger.debug("sequence_allocated", extra={"sequence_name": name, "value": 1})
                return 1
            counter = self._locked(name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {name!r} vanished after insert race")

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

