"""
NoticeLedger -- the two atomic mutation primitives of a notice.

Responsibility:
    Reads a notice under an exclusive row lock, applies the pure rules of
    ``domain.ledger_rules`` and writes the post-state back.  It is the only
    code that writes ``total_amount``, ``amount_paid`` or ``status``.

Architecture position:
    Ledger > Services -- session-scoped.  Called by PaymentService and
    ReductionWorkflow inside their transaction.

Invariants enforced:
    - 0 <= amount_paid <= total_amount after every write.
    - status is always ``derive_status(total_amount, amount_paid)``.
    - Read and write happen under one lock in one transaction:
      ``SELECT ... FOR UPDATE`` on PostgreSQL, ``BEGIN IMMEDIATE`` on
      SQLite.  A concurrent caller blocks until this transaction ends and
      then reads the committed result (``populate_existing`` refreshes any
      copy already in the identity map).

Failure modes:
    - NoticeNotFoundError: no notice with that id / number.
    - OverpaymentError, ReductionTooLargeError, BelowPaidAmountError from
      the ledger rules.  Nothing is written when they are raised.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from notice_ledger.domain import ledger_rules
from notice_ledger.domain.ledger_rules import NoticeState
from notice_ledger.exceptions import NoticeNotFoundError
from notice_ledger.logging_config import get_logger
from notice_ledger.models.notice import Notice
from notice_ledger.services.base import BaseService

logger = get_logger("services.ledger")


class NoticeLedger(BaseService):
    """
    Authoritative record of a notice's amounts.

    Contract:
        Both primitives return the committed-to-be post-state and leave the
        Notice row locked until the caller's transaction ends.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def lock_notice(self, notice_id: UUID) -> Notice:
        """Load a notice with an exclusive row lock."""
        notice = self.session.execute(
            select(Notice)
            .where(Notice.id == notice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if notice is None:
            raise NoticeNotFoundError(str(notice_id))
        return notice

    def lock_notice_by_number(self, number: str) -> Notice | None:
        """Load a notice by number with an exclusive row lock, or None."""
        return self.session.execute(
            select(Notice)
            .where(Notice.number == number)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def apply_payment_delta(self, notice_id: UUID, amount: Decimal) -> NoticeState:
        """Add ``amount`` to amount_paid, refusing any overpayment."""
        notice = self.lock_notice(notice_id)
        before = notice.to_state()
        after = ledger_rules.apply_payment(before, amount)
        self._write(notice, after)

        logger.info(
            "payment_delta_applied",
            extra={
                "notice_id": str(notice_id),
                "amount": str(amount),
                "amount_paid": str(after.amount_paid),
                "status": after.status.value,
            },
        )
        return after

    def apply_total_delta(self, notice_id: UUID, amount: Decimal) -> NoticeState:
        """Lower total_amount by ``amount``, never below zero or amount_paid."""
        notice = self.lock_notice(notice_id)
        before = notice.to_state()
        after = ledger_rules.apply_reduction(before, amount)
        self._write(notice, after)

        logger.info(
            "total_delta_applied",
            extra={
                "notice_id": str(notice_id),
                "amount": str(amount),
                "previous_total": str(before.total_amount),
                "total_amount": str(after.total_amount),
                "status": after.status.value,
            },
        )
        return after

    def _write(self, notice: Notice, state: NoticeState) -> None:
        notice.total_amount = state.total_amount
        notice.amount_paid = state.amount_paid
        notice.status = state.status.value
        self.session.flush()
