"""Database layer - engine, base classes and column types."""

from notice_ledger.db.base import UUID, Base, TrackedBase, UUIDString
from notice_ledger.db.engine import Database
from notice_ledger.db.types import ExactDecimal, UTCDateTime, round_money

__all__ = [
    "Database",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "ExactDecimal",
    "UTCDateTime",
    "round_money",
]
