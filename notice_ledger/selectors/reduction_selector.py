"""
Module: notice_ledger.selectors.reduction_selector
Responsibility: Read-only views of reduction requests: the approval queue
    of a reviewer and the history of a requester.
Architecture position: Ledger > Selectors.

The approval queue only contains requests whose requester's DIRECT
supervisor is the reviewer, matching who may decide them.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from notice_ledger.models.notice import Notice
from notice_ledger.models.reduction import NoticeReduction, ReductionStatus
from notice_ledger.models.user import User
from notice_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class ReductionView:
    reduction_id: UUID
    notice_id: UUID
    notice_number: str
    taxpayer_id: UUID
    amount: Decimal
    previous_total: Decimal
    new_total: Decimal
    reason: str
    status: str
    created_by_id: UUID
    reviewed_by_id: UUID | None
    reviewed_at: datetime | None
    review_note: str | None


class ReductionSelector(BaseSelector):
    """Reduction request lookups, newest first."""

    def get(self, reduction_id: UUID) -> ReductionView | None:
        row = self.session.execute(
            self._base_query().where(NoticeReduction.id == reduction_id)
        ).one_or_none()
        return _to_view(*row) if row is not None else None

    def pending_for_reviewer(self, reviewer_id: UUID) -> list[ReductionView]:
        rows = self.session.execute(
            self._base_query()
            .join(User, User.id == NoticeReduction.created_by_id)
            .where(
                NoticeReduction.status == ReductionStatus.PENDING.value,
                User.supervisor_id == reviewer_id,
            )
            .order_by(NoticeReduction.created_at.desc(), NoticeReduction.id)
        ).all()
        return [_to_view(*row) for row in rows]

    def requested_by(self, user_id: UUID) -> list[ReductionView]:
        rows = self.session.execute(
            self._base_query()
            .where(NoticeReduction.created_by_id == user_id)
            .order_by(NoticeReduction.created_at.desc(), NoticeReduction.id)
        ).all()
        return [_to_view(*row) for row in rows]

    def _base_query(self):
        return select(NoticeReduction, Notice.number).join(
            Notice, Notice.id == NoticeReduction.notice_id
        )


def _to_view(reduction: NoticeReduction, notice_number: str) -> ReductionView:
    return ReductionView(
        reduction_id=reduction.id,
        notice_id=reduction.notice_id,
        notice_number=notice_number,
        taxpayer_id=reduction.taxpayer_id,
        amount=reduction.amount,
        previous_total=reduction.previous_total,
        new_total=reduction.new_total,
        reason=reduction.reason,
        status=reduction.status,
        created_by_id=reduction.created_by_id,
        reviewed_by_id=reduction.reviewed_by_id,
        reviewed_at=reduction.reviewed_at,
        review_note=reduction.review_note,
    )
