"""Domain layer - pure rules, value parsing and result types (no I/O)."""

from notice_ledger.domain.access import Actor, Role
from notice_ledger.domain.clock import Clock, DeterministicClock, SystemClock
from notice_ledger.domain.ledger_rules import NoticeState, NoticeStatus, derive_status
from notice_ledger.domain.results import OperationResult, OperationStatus

__all__ = [
    "Actor",
    "Role",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "NoticeState",
    "NoticeStatus",
    "derive_status",
    "OperationResult",
    "OperationStatus",
]
