"""
ReductionWorkflow -- proposes, approves and rejects notice reductions.

Responsibility:
    Drives the NoticeReduction state machine

        request (requester has a supervisor) --> PENDING
        request (requester has no supervisor) --> APPROVED (self-applied)
        PENDING --approve--> APPROVED     (terminal)
        PENDING --reject---> REJECTED     (terminal)

    and applies approved reductions through NoticeLedger.

Architecture position:
    Ledger > Services -- owns its transactions.

Invariants enforced:
    - new_total >= 0 and new_total >= amount_paid, checked at request time
      AND again at approval time against the CURRENT notice state, under
      the Notice row lock.
    - Approval authority is the requester's DIRECT supervisor (who must
      also be an administrator with the taxpayer in scope).  The chain
      above the supervisor is never walked.
    - A decision updates the reduction with ``WHERE status = 'PENDING'``;
      if another decision won the race the whole transaction rolls back
      with ReductionAlreadyProcessedError, ledger change included.
    - A self-applied reduction is inserted directly as APPROVED in the same
      transaction as its ledger update; no PENDING state is ever visible.

Failure modes (returned as FAILED OperationResults):
    - VALIDATION: InvalidAmountError, InvalidFieldError.
    - NOT_FOUND: TaxpayerNotFoundError, NoticeNotFoundError,
      ReductionNotFoundError, UserNotFoundError.
    - CONFLICT: ReductionTooLargeError, BelowPaidAmountError,
      StaleStateError (reduction stays PENDING),
      ReductionAlreadyProcessedError.
    - ACCESS_DENIED: AccessDeniedError.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from notice_ledger.config.schema import PaymentRulesConfig
from notice_ledger.db.engine import Database
from notice_ledger.domain import ledger_rules
from notice_ledger.domain.access import (
    Actor,
    Role,
    require_administrator,
    require_direct_supervisor,
    require_reduction_requester,
    require_scope,
)
from notice_ledger.domain.clock import Clock
from notice_ledger.domain.results import OperationResult, OperationStatus
from notice_ledger.domain.values import as_uuid, parse_amount, require_text
from notice_ledger.exceptions import (
    ConflictError,
    NoticeLedgerError,
    NoticeNotFoundError,
    ReductionAlreadyProcessedError,
    ReductionNotFoundError,
    StaleStateError,
    TaxpayerNotFoundError,
)
from notice_ledger.logging_config import LogContext, get_logger
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.notice import Notice
from notice_ledger.models.reduction import NoticeReduction, ReductionStatus
from notice_ledger.models.taxpayer import Taxpayer
from notice_ledger.services.auditor_service import AuditLogWriter
from notice_ledger.services.base import load_user
from notice_ledger.services.ledger_service import NoticeLedger

logger = get_logger("services.reduction")

REASON_MIN_LENGTH = 3


class ReductionWorkflow:
    """Reduction requests and their supervisor decisions."""

    def __init__(self, database: Database, clock: Clock, rules: PaymentRulesConfig):
        self._database = database
        self._clock = clock
        self._rules = rules

    # ------------------------------------------------------------------
    # Request
    # ------------------------------------------------------------------

    def request_reduction(
        self,
        taxpayer_code: str,
        notice_number: str,
        amount: str | int | Decimal,
        reason: str,
        requester_id: UUID | str,
    ) -> OperationResult:
        """
        Propose a reduction of a notice total.

        Returns:
            PENDING_APPROVAL when the requester has a supervisor, APPLIED
            when the reduction was self-applied, FAILED otherwise.
        """
        with LogContext.bind(actor_id=requester_id):
            try:
                return self._request_reduction(
                    taxpayer_code, notice_number, amount, reason, requester_id
                )
            except NoticeLedgerError as exc:
                logger.warning(
                    "reduction_request_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _request_reduction(
        self, taxpayer_code, notice_number, amount, reason, requester_id
    ) -> OperationResult:
        requester_id = as_uuid(requester_id, "requesterId")
        taxpayer_code = require_text(
            taxpayer_code,
            "taxpayerCode",
            min_length=self._rules.taxpayer_code_min_length,
        )
        notice_number = require_text(
            notice_number,
            "noticeNumber",
            min_length=self._rules.notice_number_min_length,
        )
        reason = require_text(reason, "reason", min_length=REASON_MIN_LENGTH)
        reduction_amount = parse_amount(
            amount, decimal_places=self._rules.decimal_places
        )

        with self._database.transaction() as session:
            requester = load_user(session, requester_id).to_actor()
            require_reduction_requester(requester)

            taxpayer = _scoped_taxpayer(session, requester, taxpayer_code)
            notice = session.execute(
                select(Notice).where(
                    Notice.number == notice_number,
                    Notice.taxpayer_id == taxpayer.id,
                )
            ).scalar_one_or_none()
            if notice is None:
                raise NoticeNotFoundError(notice_number)

            # Refused here already; approval checks again on the live state
            proposed = ledger_rules.apply_reduction(notice.to_state(), reduction_amount)
            previous_total = notice.total_amount
            audit = AuditLogWriter(session, self._clock)

            if requester.has_supervisor:
                reduction = NoticeReduction(
                    notice_id=notice.id,
                    taxpayer_id=taxpayer.id,
                    amount=reduction_amount,
                    previous_total=previous_total,
                    new_total=proposed.total_amount,
                    reason=reason,
                    status=ReductionStatus.PENDING.value,
                    created_by_id=requester.user_id,
                    created_at=self._clock.now(),
                )
                session.add(reduction)
                session.flush()
                audit.record(
                    AuditAction.NOTICE_REDUCTION_REQUESTED,
                    entity_type="NOTICE",
                    entity_id=notice.id,
                    actor_id=requester.user_id,
                    after=_audit_payload(
                        taxpayer, notice.number, reduction, ReductionStatus.PENDING
                    ),
                )
                reduction_id = reduction.id
                state = notice.to_state()
                status = OperationStatus.PENDING_APPROVAL
                message = "Reduction request sent for approval"
            else:
                ledger = NoticeLedger(session)
                before = ledger.lock_notice(notice.id).to_state()
                state = ledger.apply_total_delta(notice.id, reduction_amount)
                now = self._clock.now()
                reduction = NoticeReduction(
                    notice_id=notice.id,
                    taxpayer_id=taxpayer.id,
                    amount=reduction_amount,
                    previous_total=before.total_amount,
                    new_total=state.total_amount,
                    reason=reason,
                    status=ReductionStatus.APPROVED.value,
                    created_by_id=requester.user_id,
                    reviewed_by_id=requester.user_id,
                    reviewed_at=now,
                    created_at=now,
                )
                session.add(reduction)
                session.flush()
                audit.record(
                    AuditAction.NOTICE_REDUCTION_APPLIED,
                    entity_type="NOTICE",
                    entity_id=notice.id,
                    actor_id=requester.user_id,
                    before=before.to_payload(),
                    after=_audit_payload(
                        taxpayer, notice.number, reduction, ReductionStatus.APPROVED
                    ),
                )
                reduction_id = reduction.id
                status = OperationStatus.APPLIED
                message = "Reduction applied"

        if status == OperationStatus.APPLIED:
            logger.info(
                "reduction_applied",
                extra={
                    "reduction_id": str(reduction_id),
                    "amount": str(reduction_amount),
                    "total_amount": str(state.total_amount),
                    "self_applied": True,
                },
            )
        else:
            logger.info(
                "reduction_requested",
                extra={"reduction_id": str(reduction_id), "amount": str(reduction_amount)},
            )
        return OperationResult.success(
            status,
            message,
            entity_id=reduction_id,
            notice=state,
            details={"reductionId": str(reduction_id)},
        )

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def approve(
        self,
        reduction_id: UUID | str,
        reviewer_id: UUID | str,
        note: str | None = None,
    ) -> OperationResult:
        """
        Approve a PENDING reduction against the notice's current state.

        If payments or other reductions landed since the request and the
        reduction no longer fits, the result is a StaleStateError failure
        and the reduction stays PENDING.
        """
        with LogContext.bind(actor_id=reviewer_id):
            try:
                return self._approve(reduction_id, reviewer_id, note)
            except NoticeLedgerError as exc:
                logger.warning(
                    "reduction_approval_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _approve(self, reduction_id, reviewer_id, note) -> OperationResult:
        reduction_id = as_uuid(reduction_id, "reductionId")
        reviewer_id = as_uuid(reviewer_id, "reviewerId")
        review_note = _clean_note(note)

        with self._database.transaction() as session:
            reviewer = load_user(session, reviewer_id).to_actor()
            reduction = self._pending_for_reviewer(session, reduction_id, reviewer)

            ledger = NoticeLedger(session)
            notice = ledger.lock_notice(reduction.notice_id)
            before = notice.to_state()
            try:
                state = ledger.apply_total_delta(notice.id, reduction.amount)
            except ConflictError as exc:
                raise StaleStateError(str(reduction_id), exc) from exc

            self._decide(
                session,
                reduction_id,
                ReductionStatus.APPROVED,
                reviewer.user_id,
                review_note,
                previous_total=before.total_amount,
                new_total=state.total_amount,
            )
            session.refresh(reduction)
            AuditLogWriter(session, self._clock).record(
                AuditAction.NOTICE_REDUCTION_APPROVED,
                entity_type="NOTICE",
                entity_id=notice.id,
                actor_id=reviewer.user_id,
                before=before.to_payload(),
                after=_audit_payload(
                    reduction.taxpayer,
                    notice.number,
                    reduction,
                    ReductionStatus.APPROVED,
                    review_note,
                ),
            )

        logger.info(
            "reduction_applied",
            extra={
                "reduction_id": str(reduction_id),
                "amount": str(reduction.amount),
                "total_amount": str(state.total_amount),
                "self_applied": False,
            },
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            "Reduction approved",
            entity_id=reduction_id,
            notice=state,
            details={"reductionId": str(reduction_id)},
        )

    def reject(
        self,
        reduction_id: UUID | str,
        reviewer_id: UUID | str,
        note: str | None = None,
    ) -> OperationResult:
        """Reject a PENDING reduction.  The notice is not touched."""
        with LogContext.bind(actor_id=reviewer_id):
            try:
                return self._reject(reduction_id, reviewer_id, note)
            except NoticeLedgerError as exc:
                logger.warning(
                    "reduction_rejection_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _reject(self, reduction_id, reviewer_id, note) -> OperationResult:
        reduction_id = as_uuid(reduction_id, "reductionId")
        reviewer_id = as_uuid(reviewer_id, "reviewerId")
        review_note = _clean_note(note)

        with self._database.transaction() as session:
            reviewer = load_user(session, reviewer_id).to_actor()
            reduction = self._pending_for_reviewer(session, reduction_id, reviewer)

            self._decide(
                session,
                reduction_id,
                ReductionStatus.REJECTED,
                reviewer.user_id,
                review_note,
            )
            AuditLogWriter(session, self._clock).record(
                AuditAction.NOTICE_REDUCTION_REJECTED,
                entity_type="NOTICE",
                entity_id=reduction.notice_id,
                actor_id=reviewer.user_id,
                after=_audit_payload(
                    reduction.taxpayer,
                    reduction.notice.number,
                    reduction,
                    ReductionStatus.REJECTED,
                    review_note,
                ),
            )

        logger.info("reduction_rejected", extra={"reduction_id": str(reduction_id)})
        return OperationResult.success(
            OperationStatus.REJECTED,
            "Reduction rejected",
            entity_id=reduction_id,
            details={"reductionId": str(reduction_id)},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _pending_for_reviewer(
        self, session: Session, reduction_id: UUID, reviewer: Actor
    ) -> NoticeReduction:
        reduction = session.get(NoticeReduction, reduction_id)
        if reduction is None:
            raise ReductionNotFoundError(str(reduction_id))
        if not reduction.is_pending:
            raise ReductionAlreadyProcessedError(str(reduction_id), reduction.status)

        require_administrator(reviewer)
        require_direct_supervisor(reviewer, reduction.created_by.supervisor_id)
        require_scope(reviewer, reduction.taxpayer.commune)
        return reduction

    def _decide(
        self,
        session: Session,
        reduction_id: UUID,
        decision: ReductionStatus,
        reviewer_id: UUID,
        review_note: str | None,
        **amounts: Decimal,
    ) -> None:
        result = session.execute(
            update(NoticeReduction)
            .where(
                NoticeReduction.id == reduction_id,
                NoticeReduction.status == ReductionStatus.PENDING.value,
            )
            .values(
                status=decision.value,
                reviewed_by_id=reviewer_id,
                reviewed_at=self._clock.now(),
                review_note=review_note,
                **amounts,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = session.execute(
                select(NoticeReduction.status).where(NoticeReduction.id == reduction_id)
            ).scalar_one()
            raise ReductionAlreadyProcessedError(str(reduction_id), current)


def _scoped_taxpayer(session: Session, actor: Actor, code: str) -> Taxpayer:
    """Taxpayer by code, invisible when outside the actor's commune."""
    query = select(Taxpayer).where(Taxpayer.code == code)
    if actor.role != Role.SUPER_ADMIN:
        if actor.commune is None:
            raise TaxpayerNotFoundError(code)
        query = query.where(Taxpayer.commune == actor.commune)
    taxpayer = session.execute(query).scalar_one_or_none()
    if taxpayer is None:
        raise TaxpayerNotFoundError(code)
    return taxpayer


def _clean_note(note: str | None) -> str | None:
    if note is None:
        return None
    note = note.strip()
    return note or None


def _audit_payload(
    taxpayer: Taxpayer,
    notice_number: str,
    reduction: NoticeReduction,
    status: ReductionStatus,
    review_note: str | None = None,
) -> dict:
    payload = {
        "reductionId": reduction.id,
        "taxpayerName": taxpayer.name,
        "taxpayerCode": taxpayer.code,
        "noticeNumber": notice_number,
        "reduction": reduction.amount,
        "previousTotal": reduction.previous_total,
        "newTotal": reduction.new_total,
        "status": status.value,
    }
    if review_note is not None:
        payload["reviewNote"] = review_note
    return payload
