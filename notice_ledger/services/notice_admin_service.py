"""
NoticeAdminService -- removal of a taxpayer's notices for one year.

Responsibility:
    Deletes every notice of a taxpayer for a fiscal year, e.g. to let the
    calculation engine issue them again, as long as no money has been
    recorded against them and billing has not locked them.

Architecture position:
    Ledger > Services -- owns its transaction.  Administrators only.

Invariants enforced:
    - A notice with payments is never deleted (payments are append-only
      and reference it).
    - A locked notice is never deleted.
    - The checks and the deletion happen under the Notice row locks of the
      same transaction, so a payment cannot slip in between.
    - Reductions of a deleted notice are deleted with it.
"""

from uuid import UUID

from sqlalchemy import delete, func, select

from notice_ledger.db.engine import Database
from notice_ledger.domain.access import require_administrator, require_scope
from notice_ledger.domain.clock import Clock
from notice_ledger.domain.results import OperationResult, OperationStatus
from notice_ledger.domain.values import as_uuid
from notice_ledger.exceptions import (
    InvalidFieldError,
    NoticeHasPaymentsError,
    NoticeLedgerError,
    NoticeLockedError,
    NoticeNotFoundError,
    TaxpayerNotFoundError,
)
from notice_ledger.logging_config import LogContext, get_logger
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.notice import Notice
from notice_ledger.models.payment import Payment
from notice_ledger.models.reduction import NoticeReduction
from notice_ledger.models.taxpayer import Taxpayer
from notice_ledger.services.auditor_service import AuditLogWriter
from notice_ledger.services.base import load_user

logger = get_logger("services.notice_admin")


class NoticeAdminService:
    """Administrative maintenance of notices."""

    def __init__(self, database: Database, clock: Clock):
        self._database = database
        self._clock = clock

    def delete_notices_for_year(
        self,
        taxpayer_id: UUID | str,
        year: int,
        actor_id: UUID | str,
    ) -> OperationResult:
        """
        Delete the taxpayer's notices for ``year``.

        Returns:
            APPLIED with ``details["deletedCount"]``, or a FAILED result:
            NoticeHasPaymentsError / NoticeLockedError (CONFLICT),
            NoticeNotFoundError when there is nothing to delete.
        """
        with LogContext.bind(actor_id=actor_id):
            try:
                return self._delete_notices_for_year(taxpayer_id, year, actor_id)
            except NoticeLedgerError as exc:
                logger.warning(
                    "notice_deletion_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _delete_notices_for_year(self, taxpayer_id, year, actor_id) -> OperationResult:
        taxpayer_id = as_uuid(taxpayer_id, "taxpayerId")
        actor_id = as_uuid(actor_id, "actorId")
        if isinstance(year, bool) or not isinstance(year, int) or year <= 0:
            raise InvalidFieldError("year", "must be a positive integer")

        with self._database.transaction() as session:
            actor = load_user(session, actor_id).to_actor()
            require_administrator(actor)

            taxpayer = session.get(Taxpayer, taxpayer_id)
            if taxpayer is None:
                raise TaxpayerNotFoundError(str(taxpayer_id))
            require_scope(actor, taxpayer.commune)

            notices = list(
                session.execute(
                    select(Notice)
                    .where(Notice.taxpayer_id == taxpayer_id, Notice.year == year)
                    .order_by(Notice.number)
                    .with_for_update()
                ).scalars()
            )
            if not notices:
                raise NoticeNotFoundError(f"{taxpayer.code}/{year}")

            notice_ids = [notice.id for notice in notices]
            payment_count = session.execute(
                select(func.count(Payment.id)).where(Payment.notice_id.in_(notice_ids))
            ).scalar_one()
            if payment_count:
                raise NoticeHasPaymentsError(str(taxpayer_id), year, payment_count)

            for notice in notices:
                if notice.locked:
                    raise NoticeLockedError(notice.number)

            session.execute(
                delete(NoticeReduction).where(NoticeReduction.notice_id.in_(notice_ids))
            )
            audit = AuditLogWriter(session, self._clock)
            for notice in notices:
                audit.record(
                    AuditAction.NOTICE_DELETED,
                    entity_type="NOTICE",
                    entity_id=notice.id,
                    actor_id=actor.user_id,
                    before=notice.summary_payload(),
                    after={"taxpayerCode": taxpayer.code, "year": year},
                )
                session.delete(notice)
            session.flush()

        logger.info(
            "notices_deleted",
            extra={"taxpayer_id": str(taxpayer_id), "year": year, "deleted": len(notices)},
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            f"{len(notices)} notice(s) deleted",
            details={"deletedCount": len(notices)},
        )
