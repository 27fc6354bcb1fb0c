"""Database layer - engine, base classes, immutability listeners."""

from fiscal_kernel.db.base import UUID, Base, TimestampedBase, UUIDString, as_utc
from fiscal_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TimestampedBase",
    "UUIDString",
    "UUID",
    "as_utc",
]
