"""Database layer - engine, base classes and column types."""

from fieldrep_kernel.db.base import Base, TrackedBase
from fieldrep_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from fieldrep_kernel.db.types import Money, PrincipalId, ShortCode, StateCode, UUIDString

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "Money",
    "ShortCode",
    "PrincipalId",
    "StateCode",
]
