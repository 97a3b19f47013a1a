"""Database layer - engine, session scopes, base classes and column types."""

from pos_ledger.db.base import UUID, Base, MoneyType, TrackedBase, UUIDString
from pos_ledger.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
    transaction_scope,
)

__all__ = [
    "create_engine_from_url",
    "create_session_factory",
    "create_tables",
    "drop_tables",
    "transaction_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "MoneyType",
    "UUID",
]
