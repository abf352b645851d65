"""
Module: notice_ledger.models.notice
Responsibility: ORM persistence for tax notices -- the rows the ledger
    serializes on.
Architecture position: Ledger > Models.  May import from db/ and domain/.

Invariants enforced:
    - number is UNIQUE (human-facing identifier used by collectors).
    - status is one of UNPAID / PARTIAL / PAID (check constraint) and is
      only ever written by NoticeLedger, always derived from the amounts.
    - 0 <= amount_paid <= total_amount (check constraints on PostgreSQL;
      SQLite stores amounts as text, so there the ledger is the only guard).

Failure modes:
    - IntegrityError on duplicate notice number.

Audit relevance:
    Notices are never deleted while payments reference them (payments hold
    a foreign key and NoticeAdminService refuses the deletion first).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notice_ledger.db.base import TrackedBase, UUIDString
from notice_ledger.domain.ledger_rules import NoticeState, NoticeStatus

if TYPE_CHECKING:
    from notice_ledger.models.payment import Payment
    from notice_ledger.models.taxpayer import Taxpayer


class Notice(TrackedBase):
    """A taxpayer's fiscal obligation for one year."""

    __tablename__ = "notices"

    __table_args__ = (
        CheckConstraint(
            "status IN ('UNPAID', 'PARTIAL', 'PAID')",
            name="ck_notices_valid_status",
        ),
        CheckConstraint(
            "amount_paid >= 0", name="ck_notices_paid_non_negative"
        ).ddl_if(dialect="postgresql"),
        CheckConstraint(
            "amount_paid <= total_amount", name="ck_notices_paid_within_total"
        ).ddl_if(dialect="postgresql"),
        Index("ix_notices_taxpayer_year", "taxpayer_id", "year"),
    )

    number: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    taxpayer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("taxpayers.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_start: Mapped[datetime | None] = mapped_column(nullable=True)
    period_end: Mapped[datetime | None] = mapped_column(nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=NoticeStatus.UNPAID.value
    )
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(nullable=True)

    taxpayer: Mapped["Taxpayer"] = relationship("Taxpayer")
    payments: Mapped[list["Payment"]] = relationship(
        "Payment",
        back_populates="notice",
        order_by="Payment.paid_at",
        lazy="select",
    )

    def __repr__(self) -> str:
        return (
            f"<Notice {self.number} total={self.total_amount} "
            f"paid={self.amount_paid} status={self.status}>"
        )

    def to_state(self) -> NoticeState:
        return NoticeState(
            notice_id=self.id,
            total_amount=self.total_amount,
            amount_paid=self.amount_paid,
            status=NoticeStatus(self.status),
        )

    def summary_payload(self) -> dict[str, str]:
        return {
            "noticeNumber": self.number,
            "status": self.status,
            "totalAmount": str(self.total_amount),
            "amountPaid": str(self.amount_paid),
        }
