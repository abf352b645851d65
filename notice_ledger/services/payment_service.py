"""
PaymentService -- applies manual and externally reported payments.

Responsibility:
    Validates payment input, resolves the notice, enforces access and
    idempotency rules, and applies the payment through NoticeLedger in one
    transaction together with its Payment row (and, for manual payments,
    its audit entry).

Architecture position:
    Ledger > Services -- owns its transactions (``Database.transaction()``).
    Called by the cashier surface (manual) and by CollectorGateway
    (external).

Invariants enforced:
    - All-or-nothing: the Payment row and the ledger update commit together
      or not at all.
    - No overpayment: amount <= total_amount - amount_paid, checked under
      the Notice row lock.
    - Idempotency: an external_txn_id already on a Payment is never applied
      twice.  The check runs inside the locked transaction; a concurrent
      insert that slips past it hits the UNIQUE constraint, rolls back and
      is reported as ALREADY_PROCESSED after re-reading the winner.
    - Enumeration safety: an unknown notice number and a notice of another
      taxpayer produce the same NoticeOrTaxpayerMismatchError.

Failure modes (returned as FAILED OperationResults):
    - VALIDATION: InvalidAmountError, InvalidPaymentMethodError,
      ProofRequiredError, InvalidFieldError.
    - NOT_FOUND: TaxpayerNotFoundError, NoticeNotFoundError,
      NoticeOrTaxpayerMismatchError, UserNotFoundError.
    - CONFLICT: OverpaymentError, AlreadyPaidError.
    - ACCESS_DENIED: AccessDeniedError.
    Database errors other than the idempotency race propagate.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from notice_ledger.config.schema import PaymentRulesConfig
from notice_ledger.db.engine import Database
from notice_ledger.domain.access import require_manual_payment_role, require_scope
from notice_ledger.domain.clock import Clock
from notice_ledger.domain.ledger_rules import NoticeStatus
from notice_ledger.domain.results import OperationResult, OperationStatus
from notice_ledger.domain.values import (
    as_uuid,
    parse_amount,
    parse_epoch_millis,
    require_text,
)
from notice_ledger.exceptions import (
    AlreadyPaidError,
    CollectorNotFoundError,
    InvalidPaymentMethodError,
    NoticeLedgerError,
    NoticeNotFoundError,
    NoticeOrTaxpayerMismatchError,
    ProofRequiredError,
    TaxpayerNotFoundError,
)
from notice_ledger.logging_config import LogContext, get_logger
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.collector import Collector
from notice_ledger.models.payment import ManualPaymentMethod, Payment
from notice_ledger.models.taxpayer import Taxpayer
from notice_ledger.services.auditor_service import AuditLogWriter
from notice_ledger.services.base import load_user
from notice_ledger.services.ledger_service import NoticeLedger

logger = get_logger("services.payment")


@dataclass(frozen=True)
class ExternalPaymentRequest:
    """A validated external payment, ready to be applied."""

    notice_number: str
    taxpayer_code: str
    amount: Decimal
    external_txn_id: str
    paid_at: datetime


class PaymentService:
    """
    Payment ingestion for cashiers and external collectors.

    Contract:
        Every public method returns an OperationResult; refusals never
        escape as exceptions.
    """

    def __init__(self, database: Database, clock: Clock, rules: PaymentRulesConfig):
        self._database = database
        self._clock = clock
        self._rules = rules

    # ------------------------------------------------------------------
    # Manual payments
    # ------------------------------------------------------------------

    def apply_manual_payment(
        self,
        taxpayer_id: UUID | str,
        notice_id: UUID | str,
        amount: str | int | Decimal,
        method: str,
        proof_url: str | None,
        actor_id: UUID | str,
    ) -> OperationResult:
        """
        Record a cashier payment.

        Preconditions:
            ``proof_url`` references an already stored file; it is required
            for TRANSFER and CHEQUE.

        Postconditions:
            On APPLIED: one Payment row, amount_paid increased by the
            amount, a PAYMENT_MANUAL_CREATED audit entry.  Otherwise
            nothing is written.
        """
        with LogContext.bind(actor_id=actor_id, notice_id=notice_id):
            try:
                return self._apply_manual_payment(
                    taxpayer_id, notice_id, amount, method, proof_url, actor_id
                )
            except NoticeLedgerError as exc:
                logger.warning(
                    "manual_payment_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _apply_manual_payment(
        self, taxpayer_id, notice_id, amount, method, proof_url, actor_id
    ) -> OperationResult:
        taxpayer_id = as_uuid(taxpayer_id, "taxpayerId")
        notice_id = as_uuid(notice_id, "noticeId")
        actor_id = as_uuid(actor_id, "actorId")
        parsed_amount = parse_amount(amount, decimal_places=self._rules.decimal_places)
        payment_method = _parse_manual_method(method)
        proof = proof_url.strip() if isinstance(proof_url, str) else None
        if payment_method.requires_proof and not proof:
            raise ProofRequiredError(payment_method.value)

        with self._database.transaction() as session:
            actor = load_user(session, actor_id).to_actor()
            require_manual_payment_role(actor)

            taxpayer = session.get(Taxpayer, taxpayer_id)
            if taxpayer is None:
                raise TaxpayerNotFoundError(str(taxpayer_id))
            require_scope(actor, taxpayer.commune)

            ledger = NoticeLedger(session)
            notice = ledger.lock_notice(notice_id)
            if notice.taxpayer_id != taxpayer.id:
                raise NoticeNotFoundError(str(notice_id))

            before = notice.to_state()
            after = ledger.apply_payment_delta(notice.id, parsed_amount)

            now = self._clock.now()
            payment = Payment(
                notice_id=notice.id,
                collector_id=None,
                external_txn_id=None,
                amount=parsed_amount,
                method=payment_method.value,
                proof_url=proof or None,
                paid_at=now,
                created_by_id=actor.user_id,
                created_at=now,
            )
            session.add(payment)
            session.flush()

            AuditLogWriter(session, self._clock).record(
                AuditAction.PAYMENT_MANUAL_CREATED,
                entity_type="NOTICE",
                entity_id=notice.id,
                actor_id=actor.user_id,
                before=before.to_payload(),
                after={
                    "taxpayerName": taxpayer.name,
                    "noticeNumber": notice.number,
                    "amount": parsed_amount,
                    "method": payment_method.value,
                    "proofUrl": proof or None,
                    "paymentId": payment.id,
                    "amountPaid": after.amount_paid,
                    "status": after.status.value,
                },
            )
            payment_id = payment.id
            notice_number = notice.number

        logger.info(
            "payment_applied",
            extra={
                "origin": "manual",
                "payment_id": str(payment_id),
                "amount": str(parsed_amount),
                "method": payment_method.value,
                "status": after.status.value,
            },
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            "Payment recorded",
            entity_id=payment_id,
            notice=after,
            details={"paymentId": str(payment_id), "noticeNumber": notice_number},
        )

    # ------------------------------------------------------------------
    # External payments
    # ------------------------------------------------------------------

    def validate_external_request(
        self,
        notice_number: object,
        taxpayer_code: object,
        amount: object,
        external_txn_id: object,
        paid_at_epoch_millis: object,
    ) -> ExternalPaymentRequest:
        """Check every precondition that does not need the database."""
        rules = self._rules
        return ExternalPaymentRequest(
            notice_number=require_text(
                notice_number,
                "noticeNumber",
                min_length=rules.notice_number_min_length,
                max_length=100,
            ),
            taxpayer_code=require_text(
                taxpayer_code,
                "taxpayerCode",
                min_length=rules.taxpayer_code_min_length,
                max_length=50,
            ),
            amount=parse_amount(
                amount,
                max_amount=rules.max_external_amount,
                decimal_places=rules.decimal_places,
            ),
            external_txn_id=require_text(
                external_txn_id,
                "referenceId",
                min_length=rules.reference_min_length,
                max_length=rules.reference_max_length,
            ),
            paid_at=parse_epoch_millis(paid_at_epoch_millis),
        )

    def apply_external_payment(
        self,
        notice_number: object,
        taxpayer_code: object,
        amount: object,
        external_txn_id: object,
        paid_at_epoch_millis: object,
        collector_id: UUID,
    ) -> OperationResult:
        """
        Apply a payment reported by an external collector.

        Postconditions:
            - APPLIED: one new Payment row (collector_id, external_txn_id,
              method = collector name) and amount_paid increased.
            - ALREADY_PROCESSED: a Payment with this external_txn_id
              already existed; nothing was written.  ``entity_id`` is the
              existing payment.
            - FAILED: nothing was written.
        """
        with LogContext.bind(
            collector_id=collector_id,
            external_txn_id=external_txn_id if isinstance(external_txn_id, str) else None,
        ):
            try:
                request = self.validate_external_request(
                    notice_number,
                    taxpayer_code,
                    amount,
                    external_txn_id,
                    paid_at_epoch_millis,
                )
                return self._apply_external(request, collector_id)
            except NoticeLedgerError as exc:
                logger.warning(
                    "external_payment_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _apply_external(
        self, request: ExternalPaymentRequest, collector_id: UUID
    ) -> OperationResult:
        try:
            return self._record_external(request, collector_id)
        except IntegrityError:
            # Same external_txn_id committed by a concurrent transaction
            logger.warning(
                "concurrent_external_payment_conflict",
                extra={"external_txn_id": request.external_txn_id},
            )
            with self._database.transaction() as session:
                existing = _find_by_txn(session, request.external_txn_id)
                if existing is None:
                    raise
                return self._already_processed(existing)

    def _record_external(
        self, request: ExternalPaymentRequest, collector_id: UUID
    ) -> OperationResult:
        with self._database.transaction() as session:
            collector = session.get(Collector, collector_id)
            if collector is None:
                raise CollectorNotFoundError(str(collector_id))

            ledger = NoticeLedger(session)
            notice = ledger.lock_notice_by_number(request.notice_number)
            if notice is None or notice.taxpayer.code != request.taxpayer_code:
                raise NoticeOrTaxpayerMismatchError(request.notice_number)

            existing = _find_by_txn(session, request.external_txn_id)
            if existing is not None:
                return self._already_processed(existing)

            if notice.status == NoticeStatus.PAID.value:
                raise AlreadyPaidError(notice.number)

            after = ledger.apply_payment_delta(notice.id, request.amount)

            payment = Payment(
                notice_id=notice.id,
                collector_id=collector.id,
                external_txn_id=request.external_txn_id,
                amount=request.amount,
                method=collector.name,
                proof_url=None,
                paid_at=request.paid_at,
                created_by_id=None,
                created_at=self._clock.now(),
            )
            session.add(payment)
            session.flush()
            payment_id = payment.id

        logger.info(
            "payment_applied",
            extra={
                "origin": "external",
                "payment_id": str(payment_id),
                "amount": str(request.amount),
                "status": after.status.value,
            },
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            "Payment recorded",
            entity_id=payment_id,
            notice=after,
            details={"paymentId": str(payment_id)},
        )

    def _already_processed(self, existing: Payment) -> OperationResult:
        logger.info(
            "external_payment_replayed",
            extra={"payment_id": str(existing.id)},
        )
        return OperationResult.success(
            OperationStatus.ALREADY_PROCESSED,
            "Payment already recorded",
            entity_id=existing.id,
            details={"paymentId": str(existing.id)},
        )


def _parse_manual_method(method: object) -> ManualPaymentMethod:
    if not isinstance(method, str):
        raise InvalidPaymentMethodError(method)
    try:
        return ManualPaymentMethod(method.strip().upper())
    except ValueError:
        raise InvalidPaymentMethodError(method) from None


def _find_by_txn(session: Session, external_txn_id: str) -> Payment | None:
    return session.execute(
        select(Payment).where(Payment.external_txn_id == external_txn_id)
    ).scalar_one_or_none()
