"""
Ledger rules -- pure arithmetic behind every notice mutation.

Responsibility:
    Derives a notice's status from its amounts, and computes the post-state
    of a payment or a total reduction, refusing any transition that would
    break the ledger invariants:

        0 <= amount_paid <= total_amount
        PAID    <=> amount_paid >= total_amount
        PARTIAL <=> 0 < amount_paid < total_amount
        UNPAID  <=> amount_paid == 0

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.  Called by
    NoticeLedger (under a row lock) and by the reduction workflow for its
    pre-insert validation.

Failure modes:
    - OverpaymentError: payment larger than the remaining balance.
    - ReductionTooLargeError: reduction larger than the total.
    - BelowPaidAmountError: reduction leaves the total under amount_paid.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from notice_ledger.exceptions import (
    BelowPaidAmountError,
    InvalidAmountError,
    OverpaymentError,
    ReductionTooLargeError,
)

ZERO = Decimal("0")


class NoticeStatus(str, Enum):
    """Settlement status of a notice, always derived from its amounts."""

    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


def derive_status(total_amount: Decimal, amount_paid: Decimal) -> NoticeStatus:
    """Status implied by the amounts.

    A notice reduced to a zero total with nothing paid is PAID: nothing is
    owed on it.
    """
    if amount_paid >= total_amount:
        return NoticeStatus.PAID
    if amount_paid > ZERO:
        return NoticeStatus.PARTIAL
    return NoticeStatus.UNPAID


@dataclass(frozen=True)
class NoticeState:
    """Snapshot of a notice's ledger amounts."""

    notice_id: UUID
    total_amount: Decimal
    amount_paid: Decimal
    status: NoticeStatus

    @property
    def remaining(self) -> Decimal:
        return self.total_amount - self.amount_paid

    def to_payload(self) -> dict[str, str]:
        return {
            "noticeId": str(self.notice_id),
            "totalAmount": str(self.total_amount),
            "amountPaid": str(self.amount_paid),
            "status": self.status.value,
        }


def apply_payment(state: NoticeState, amount: Decimal) -> NoticeState:
    """Post-state after paying ``amount`` against ``state``."""
    if amount <= ZERO:
        raise InvalidAmountError(amount, "must be greater than zero")
    if amount > state.remaining:
        raise OverpaymentError(str(state.notice_id), amount, state.remaining)

    amount_paid = state.amount_paid + amount
    return NoticeState(
        notice_id=state.notice_id,
        total_amount=state.total_amount,
        amount_paid=amount_paid,
        status=derive_status(state.total_amount, amount_paid),
    )


def apply_reduction(state: NoticeState, amount: Decimal) -> NoticeState:
    """Post-state after lowering the total of ``state`` by ``amount``."""
    if amount <= ZERO:
        raise InvalidAmountError(amount, "must be greater than zero")

    new_total = state.total_amount - amount
    if new_total < ZERO:
        raise ReductionTooLargeError(str(state.notice_id), amount, state.total_amount)
    if new_total < state.amount_paid:
        raise BelowPaidAmountError(str(state.notice_id), new_total, state.amount_paid)

    return NoticeState(
        notice_id=state.notice_id,
        total_amount=new_total,
        amount_paid=state.amount_paid,
        status=derive_status(new_total, state.amount_paid),
    )


def check_invariants(state: NoticeState) -> None:
    """Assert the ledger invariants on a committed state (debug aid)."""
    assert ZERO <= state.amount_paid <= state.total_amount, (
        f"amount_paid {state.amount_paid} outside [0, {state.total_amount}]"
    )
    assert state.status == derive_status(state.total_amount, state.amount_paid), (
        f"status {state.status} inconsistent with amounts"
    )
