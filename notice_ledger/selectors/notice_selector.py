"""
Module: notice_ledger.selectors.notice_selector
Responsibility: Read-only views of notices, their taxpayer and their
    recorded payments.
Architecture position: Ledger > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from notice_ledger.models.notice import Notice
from notice_ledger.models.payment import Payment
from notice_ledger.models.taxpayer import Taxpayer
from notice_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class TaxpayerView:
    taxpayer_id: UUID
    code: str
    name: str
    category: str | None
    phone: str | None
    email: str | None
    address: str | None
    commune: str | None
    neighborhood: str | None

    @classmethod
    def from_model(cls, taxpayer: Taxpayer) -> "TaxpayerView":
        return cls(
            taxpayer_id=taxpayer.id,
            code=taxpayer.code,
            name=taxpayer.name,
            category=taxpayer.category,
            phone=taxpayer.phone,
            email=taxpayer.email,
            address=taxpayer.address,
            commune=taxpayer.commune,
            neighborhood=taxpayer.neighborhood,
        )


@dataclass(frozen=True)
class PaymentView:
    payment_id: UUID
    notice_id: UUID
    reference_id: str | None
    amount: Decimal
    method: str
    proof_url: str | None
    paid_at: datetime
    collector_id: UUID | None

    @classmethod
    def from_model(cls, payment: Payment) -> "PaymentView":
        return cls(
            payment_id=payment.id,
            notice_id=payment.notice_id,
            reference_id=payment.external_txn_id,
            amount=payment.amount,
            method=payment.method,
            proof_url=payment.proof_url,
            paid_at=payment.paid_at,
            collector_id=payment.collector_id,
        )


@dataclass(frozen=True)
class NoticeView:
    notice_id: UUID
    number: str
    year: int
    period_start: datetime | None
    period_end: datetime | None
    status: str
    total_amount: Decimal
    amount_paid: Decimal
    locked: bool
    taxpayer: TaxpayerView
    payments: tuple[PaymentView, ...] = ()

    @property
    def remaining(self) -> Decimal:
        return self.total_amount - self.amount_paid


class NoticeSelector(BaseSelector):
    """Notice lookups."""

    def get_by_number(self, number: str, with_payments: bool = False) -> NoticeView | None:
        query = select(Notice).where(Notice.number == number)
        if with_payments:
            query = query.options(selectinload(Notice.payments))
        notice = self.session.execute(query).scalar_one_or_none()
        if notice is None:
            return None
        return self._to_view(notice, with_payments)

    def get_by_id(self, notice_id: UUID) -> NoticeView | None:
        notice = self.session.get(Notice, notice_id)
        if notice is None:
            return None
        return self._to_view(notice, with_payments=False)

    def list_for_taxpayer(self, taxpayer_id: UUID) -> list[NoticeView]:
        notices = self.session.execute(
            select(Notice)
            .where(Notice.taxpayer_id == taxpayer_id)
            .order_by(Notice.year.desc(), Notice.number)
        ).scalars()
        return [self._to_view(notice, with_payments=False) for notice in notices]

    def payments_for_notice(self, notice_id: UUID) -> list[PaymentView]:
        """Payments of one notice, oldest first."""
        payments = self.session.execute(
            select(Payment)
            .where(Payment.notice_id == notice_id)
            .order_by(Payment.paid_at, Payment.created_at)
        ).scalars()
        return [PaymentView.from_model(payment) for payment in payments]

    def _to_view(self, notice: Notice, with_payments: bool) -> NoticeView:
        payments: tuple[PaymentView, ...] = ()
        if with_payments:
            payments = tuple(PaymentView.from_model(p) for p in notice.payments)
        return NoticeView(
            notice_id=notice.id,
            number=notice.number,
            year=notice.year,
            period_start=notice.period_start,
            period_end=notice.period_end,
            status=notice.status,
            total_amount=notice.total_amount,
            amount_paid=notice.amount_paid,
            locked=notice.locked,
            taxpayer=TaxpayerView.from_model(notice.taxpayer),
            payments=payments,
        )
