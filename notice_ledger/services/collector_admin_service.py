"""
CollectorAdminService -- lifecycle of external collectors.

Responsibility:
    Creates collectors, rotates their shared secret and suspends or
    re-activates them.  Secrets are generated here, stored encrypted and
    returned in plaintext exactly once, to the administrator who created or
    reset them.

Architecture position:
    Ledger > Services -- owns its transactions.  Administrators only.

Invariants enforced:
    - Collector.code is unique (checked, then backed by the UNIQUE
      constraint).
    - jwt_secret is never persisted in plaintext.
    - Every change writes an audit entry in the same transaction; the
      audit payload never contains the secret.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from notice_ledger.db.engine import Database
from notice_ledger.domain.access import require_administrator
from notice_ledger.domain.clock import Clock
from notice_ledger.domain.results import OperationResult, OperationStatus
from notice_ledger.domain.values import as_uuid, require_text
from notice_ledger.exceptions import (
    DuplicateCollectorCodeError,
    InvalidFieldError,
    NoticeLedgerError,
    UnknownCollectorError,
)
from notice_ledger.gateway.secrets import SecretCipher, generate_secret
from notice_ledger.logging_config import LogContext, get_logger
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.collector import Collector, CollectorStatus
from notice_ledger.services.auditor_service import AuditLogWriter
from notice_ledger.services.base import load_user

logger = get_logger("services.collector_admin")


@dataclass(frozen=True)
class CollectorCredentials:
    """Plaintext credentials, shown once."""

    collector_id: UUID
    code: str
    secret: str


class CollectorAdminService:
    """Administration of external collectors."""

    def __init__(
        self,
        database: Database,
        clock: Clock,
        cipher: SecretCipher,
        secret_bytes: int = 32,
    ):
        self._database = database
        self._clock = clock
        self._cipher = cipher
        self._secret_bytes = secret_bytes

    def create_collector(
        self,
        code: str,
        name: str,
        actor_id: UUID | str,
        phone: str | None = None,
        email: str | None = None,
    ) -> OperationResult:
        """
        Register a collector with a freshly generated secret.

        The plaintext secret is in ``details["secret"]`` of the result and
        nowhere else.
        """
        with LogContext.bind(actor_id=actor_id):
            try:
                credentials = self._create_collector(code, name, actor_id, phone, email)
            except NoticeLedgerError as exc:
                logger.warning(
                    "collector_creation_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

        logger.info(
            "collector_created",
            extra={"collector_code": credentials.code},
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            "Collector created",
            entity_id=credentials.collector_id,
            details={"code": credentials.code, "secret": credentials.secret},
        )

    def _create_collector(self, code, name, actor_id, phone, email) -> CollectorCredentials:
        actor_id = as_uuid(actor_id, "actorId")
        code = require_text(code, "code", min_length=2, max_length=100)
        name = require_text(name, "name", min_length=1, max_length=200)
        secret = generate_secret(self._secret_bytes)

        try:
            with self._database.transaction() as session:
                actor = load_user(session, actor_id).to_actor()
                require_administrator(actor)

                taken = session.execute(
                    select(Collector.id).where(Collector.code == code)
                ).scalar_one_or_none()
                if taken is not None:
                    raise DuplicateCollectorCodeError(code)

                collector = Collector(
                    code=code,
                    name=name,
                    phone=phone,
                    email=email,
                    status=CollectorStatus.ACTIVE.value,
                    jwt_secret=self._cipher.encrypt(secret),
                )
                session.add(collector)
                session.flush()
                AuditLogWriter(session, self._clock).record(
                    AuditAction.COLLECTOR_CREATED,
                    entity_type="COLLECTOR",
                    entity_id=collector.id,
                    actor_id=actor.user_id,
                    after={"code": code, "name": name, "status": collector.status},
                )
                collector_id = collector.id
        except IntegrityError:
            raise DuplicateCollectorCodeError(code) from None

        return CollectorCredentials(collector_id=collector_id, code=code, secret=secret)

    def reset_collector_secret(
        self, collector_id: UUID | str, actor_id: UUID | str
    ) -> OperationResult:
        """Rotate a collector's secret.  Tokens signed with the old one stop verifying."""
        with LogContext.bind(actor_id=actor_id, collector_id=collector_id):
            try:
                credentials = self._reset_secret(collector_id, actor_id)
            except NoticeLedgerError as exc:
                logger.warning(
                    "collector_secret_reset_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

        logger.info("collector_secret_reset", extra={"collector_code": credentials.code})
        return OperationResult.success(
            OperationStatus.APPLIED,
            "Collector secret reset",
            entity_id=credentials.collector_id,
            details={"code": credentials.code, "secret": credentials.secret},
        )

    def _reset_secret(self, collector_id, actor_id) -> CollectorCredentials:
        collector_id = as_uuid(collector_id, "collectorId")
        actor_id = as_uuid(actor_id, "actorId")
        secret = generate_secret(self._secret_bytes)

        with self._database.transaction() as session:
            actor = load_user(session, actor_id).to_actor()
            require_administrator(actor)
            collector = session.get(Collector, collector_id, with_for_update=True)
            if collector is None:
                raise UnknownCollectorError(str(collector_id))

            collector.jwt_secret = self._cipher.encrypt(secret)
            session.flush()
            AuditLogWriter(session, self._clock).record(
                AuditAction.COLLECTOR_SECRET_RESET,
                entity_type="COLLECTOR",
                entity_id=collector.id,
                actor_id=actor.user_id,
                after={"code": collector.code},
            )
            code = collector.code

        return CollectorCredentials(collector_id=collector_id, code=code, secret=secret)

    def set_collector_status(
        self,
        collector_id: UUID | str,
        status: str,
        actor_id: UUID | str,
    ) -> OperationResult:
        """Suspend or re-activate a collector."""
        with LogContext.bind(actor_id=actor_id, collector_id=collector_id):
            try:
                return self._set_status(collector_id, status, actor_id)
            except NoticeLedgerError as exc:
                logger.warning(
                    "collector_status_change_refused",
                    extra={"error_code": exc.code, "error_kind": exc.kind.value},
                )
                return OperationResult.failure(exc)

    def _set_status(self, collector_id, status, actor_id) -> OperationResult:
        collector_id = as_uuid(collector_id, "collectorId")
        actor_id = as_uuid(actor_id, "actorId")
        try:
            new_status = CollectorStatus(str(status).strip().upper())
        except ValueError:
            raise InvalidFieldError("status", "must be ACTIVE or SUSPENDED") from None

        with self._database.transaction() as session:
            actor = load_user(session, actor_id).to_actor()
            require_administrator(actor)
            collector = session.get(Collector, collector_id, with_for_update=True)
            if collector is None:
                raise UnknownCollectorError(str(collector_id))

            previous = collector.status
            collector.status = new_status.value
            session.flush()
            AuditLogWriter(session, self._clock).record(
                AuditAction.COLLECTOR_STATUS_CHANGED,
                entity_type="COLLECTOR",
                entity_id=collector.id,
                actor_id=actor.user_id,
                before={"status": previous},
                after={"status": new_status.value},
            )

        logger.info(
            "collector_status_changed",
            extra={"previous_status": previous, "new_status": new_status.value},
        )
        return OperationResult.success(
            OperationStatus.APPLIED,
            f"Collector {new_status.value.lower()}",
            entity_id=collector_id,
        )
