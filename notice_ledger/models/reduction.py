"""
Module: notice_ledger.models.reduction
Responsibility: ORM persistence for notice reduction requests.
Architecture position: Ledger > Models.  May import from db/.

Invariants enforced:
    - status is PENDING, APPROVED or REJECTED (check constraint).
    - Transitions are PENDING -> APPROVED or PENDING -> REJECTED, once.
      The workflow updates the row with ``WHERE status = 'PENDING'`` and
      requires exactly one affected row, so a row is never decided twice.
    - new_total = previous_total - amount (recomputed at approval time).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notice_ledger.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from notice_ledger.models.notice import Notice
    from notice_ledger.models.taxpayer import Taxpayer
    from notice_ledger.models.user import User


class ReductionStatus(str, Enum):
    """Lifecycle of a reduction request."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class NoticeReduction(TrackedBase):
    """A requested (or self-applied) reduction of a notice total."""

    __tablename__ = "notice_reductions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_notice_reductions_valid_status",
        ),
        Index("ix_notice_reductions_notice_id", "notice_id"),
        Index("ix_notice_reductions_status_created", "status", "created_at"),
    )

    notice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("notices.id"), nullable=False
    )
    taxpayer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("taxpayers.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    previous_total: Mapped[Decimal] = mapped_column(nullable=False)
    new_total: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ReductionStatus.PENDING.value
    )
    created_by_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False
    )
    reviewed_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    notice: Mapped["Notice"] = relationship("Notice")
    taxpayer: Mapped["Taxpayer"] = relationship("Taxpayer")
    created_by: Mapped["User"] = relationship("User", foreign_keys=[created_by_id])

    def __repr__(self) -> str:
        return (
            f"<NoticeReduction {self.id} notice={self.notice_id} "
            f"amount={self.amount} status={self.status}>"
        )

    @property
    def is_pending(self) -> bool:
        return self.status == ReductionStatus.PENDING.value
