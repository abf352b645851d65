"""
Module: notice_ledger.models.payment
Responsibility: ORM persistence for payments applied to notices.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - external_txn_id is UNIQUE when present: it is the idempotency key of
      externally reported payments.  NULL (manual payments) never collides.
    - Append-only: a Payment is never updated or deleted (db/immutability.py).
    - collector_id NULL means an internal/manual payment; created_by_id is
      NULL for external payments (the collector is the author).

Failure modes:
    - IntegrityError on a concurrent insert of the same external_txn_id.
    - ImmutableRecordError on UPDATE or DELETE through the ORM.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notice_ledger.db.base import Base, UUIDString

if TYPE_CHECKING:
    from notice_ledger.models.notice import Notice


class ManualPaymentMethod(str, Enum):
    """Methods a cashier may record.  External payments use the collector name."""

    CASH = "CASH"
    TRANSFER = "TRANSFER"
    CHEQUE = "CHEQUE"

    @property
    def requires_proof(self) -> bool:
        return self in (ManualPaymentMethod.TRANSFER, ManualPaymentMethod.CHEQUE)


class Payment(Base):
    """A payment recorded against a notice. Append-only."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("ix_payments_notice_id", "notice_id"),
        Index("ix_payments_collector_id", "collector_id"),
    )

    notice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("notices.id"), nullable=False
    )
    collector_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("collectors.id"), nullable=True
    )
    external_txn_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True, unique=True
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(200), nullable=False)
    proof_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    notice: Mapped["Notice"] = relationship("Notice", back_populates="payments")

    def __repr__(self) -> str:
        return f"<Payment {self.id} notice={self.notice_id} amount={self.amount}>"

