"""
Operation results returned by every public ledger operation.

Services raise typed ``NoticeLedgerError`` subclasses inside their
transaction (so it rolls back) and convert them to an ``OperationResult``
at the boundary.  Callers branch on ``status``, ``error_kind`` and
``error_code`` -- never on ``message``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from notice_ledger.domain.ledger_rules import NoticeState
from notice_ledger.exceptions import ErrorKind, NoticeLedgerError


class OperationStatus(str, Enum):
    """Outcome of a ledger operation."""

    APPLIED = "applied"
    PENDING_APPROVAL = "pending_approval"
    ALREADY_PROCESSED = "already_processed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class OperationResult:
    """Result of a payment, reduction or administrative operation."""

    status: OperationStatus
    message: str
    error_kind: ErrorKind | None = None
    error_code: str | None = None
    entity_id: UUID | None = None
    notice: NoticeState | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status != OperationStatus.FAILED

    @classmethod
    def success(
        cls,
        status: OperationStatus,
        message: str,
        *,
        entity_id: UUID | None = None,
        notice: NoticeState | None = None,
        details: dict[str, Any] | None = None,
    ) -> OperationResult:
        return cls(
            status=status,
            message=message,
            entity_id=entity_id,
            notice=notice,
            details=details or {},
        )

    @classmethod
    def failure(cls, error: NoticeLedgerError) -> OperationResult:
        return cls(
            status=OperationStatus.FAILED,
            message=str(error),
            error_kind=error.kind,
            error_code=error.code,
        )

    def to_response(self) -> dict[str, Any]:
        """``{ok, message}`` shape used by the manual and reduction surfaces."""
        return {"ok": self.ok, "message": self.message}
