"""
Module: mo_kernel.db.base
Responsibility: declarative base and column types shared by every engine
    table: orders, panels, pallets, the audit log and closure records.
Architecture position: Kernel > DB.  Lowest import target inside the
    kernel; imports nothing from models, services, selectors or domain.

Invariants enforced:
    - Every row has a uuid4 primary key stored as a 36-character string, so
      the same schema runs on PostgreSQL and SQLite.
    - Timestamps always load as aware UTC datetimes.  SQLite drops the
      offset on storage; the offset is restored on load.
    - Electrical measurements (wattage, Vmp, Imp) are Numeric(12, 4);
      floats never reach a column.
    - Enums are stored as their string value, never as native DB enums.

Audit relevance:
    TrackedBase carries who created and last changed an order, panel or
    pallet, and when.  Services fill these from the injected Clock.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

UUID = PyUUID


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UUIDString(TypeDecorator):
    """UUID held in a VARCHAR(36) column and loaded back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(str(value))


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that binds and loads aware UTC datetimes.

    Naive values on either side are taken to be UTC already.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return _as_utc(value)

    def process_result_value(self, value, dialect):
        return _as_utc(value)


class Base(DeclarativeBase):
    """
    Root of every engine table.

    Contract:
        Subclasses get a uuid4 ``id`` and the column types below for plain
        ``Mapped[...]`` annotations.

    Guarantees:
        - ``Decimal`` -> Numeric(12, 4)
        - ``datetime`` -> UTCDateTime
        - ``UUID`` -> UUIDString
        - ``int`` -> BigInteger
    """

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(12, 4),
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Base for mutable production records (orders, panels, pallets).

    Contract:
        ``created_by_id`` is mandatory.  ``updated_by_id`` is set by the
        service that last changed the row.  The server defaults on the
        timestamps only matter for rows inserted outside the services.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False,
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


def enum_column(enum_cls: type, length: int = 20) -> SAEnum:
    """
    VARCHAR-backed enum column that loads enum members.

    Member names equal their values throughout the engine, so the stored
    text is what logs and audit payloads show.
    """
    return SAEnum(enum_cls, native_enum=False, length=length, validate_strings=True)
