"""Database layer - engine, base classes, types, and immutability."""

from mo_kernel.db.base import UUID, Base, TrackedBase, UTCDateTime, UUIDString
from mo_kernel.db.engine import create_tables, get_engine, get_session, session_scope

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "UUID",
]
