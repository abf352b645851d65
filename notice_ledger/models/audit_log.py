"""
Module: notice_ledger.models.audit_log
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - Audit rows are append-only; no UPDATE or DELETE (db/immutability.py).
    - An audit row is written in the SAME transaction as the mutation it
      describes: if the mutation rolls back, so does its audit entry.

Audit relevance:
    Minimum coverage (each action generates one AuditLog):
    - PAYMENT_MANUAL_CREATED
    - NOTICE_REDUCTION_REQUESTED, NOTICE_REDUCTION_APPLIED
    - NOTICE_REDUCTION_APPROVED, NOTICE_REDUCTION_REJECTED
    - NOTICE_DELETED
    - COLLECTOR_CREATED, COLLECTOR_SECRET_RESET, COLLECTOR_STATUS_CHANGED
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from notice_ledger.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Payments
    PAYMENT_MANUAL_CREATED = "PAYMENT_MANUAL_CREATED"

    # Reductions
    NOTICE_REDUCTION_REQUESTED = "NOTICE_REDUCTION_REQUESTED"
    NOTICE_REDUCTION_APPLIED = "NOTICE_REDUCTION_APPLIED"
    NOTICE_REDUCTION_APPROVED = "NOTICE_REDUCTION_APPROVED"
    NOTICE_REDUCTION_REJECTED = "NOTICE_REDUCTION_REJECTED"

    # Notice administration
    NOTICE_DELETED = "NOTICE_DELETED"

    # Collector administration
    COLLECTOR_CREATED = "COLLECTOR_CREATED"
    COLLECTOR_SECRET_RESET = "COLLECTOR_SECRET_RESET"
    COLLECTOR_STATUS_CHANGED = "COLLECTOR_STATUS_CHANGED"


class AuditLog(Base):
    """
    One audited action.

    Contract:
        ``before`` is the observed state prior to the action (None for
        creations); ``after`` is the state the action produced.  Both are
        JSON-safe dicts (decimals and ids as strings).
    """

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_occurred", "occurred_at"),
    )

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(100), nullable=False)
    before: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} on {self.entity_type}:{self.entity_id}>"
