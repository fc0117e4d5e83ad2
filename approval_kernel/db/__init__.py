"""Database layer - engine, base classes and column types."""

from approval_kernel.db.base import UUID, Base, UUIDString
from approval_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from approval_kernel.db.types import UTCDateTime

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "UUIDString",
    "UUID",
    "UTCDateTime",
]
