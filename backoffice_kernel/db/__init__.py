"""Database layer - engine, base classes, types, and immutability listeners."""

from backoffice_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from backoffice_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from backoffice_kernel.db.types import Money, PayloadHash, Quantity, round_money

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Quantity",
    "PayloadHash",
    "round_money",
]
