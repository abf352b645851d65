"""
AuditLogWriter -- append-only audit trail.

Responsibility:
    Adds one AuditLog row per audited action, in the caller's transaction.
    It only observes ledger state; it never mutates it.

Architecture position:
    Ledger > Services -- session-scoped, called by the workflow services
    after their mutation succeeded.

Invariants enforced:
    - Append-only (ORM listeners on AuditLog).
    - Same transaction as the mutation: a rolled-back mutation leaves no
      audit row behind.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from notice_ledger.domain.clock import Clock
from notice_ledger.logging_config import get_logger
from notice_ledger.models.audit_log import AuditAction, AuditLog
from notice_ledger.services.base import BaseService
from notice_ledger.utils.serialization import json_safe

logger = get_logger("services.auditor")


class AuditLogWriter(BaseService):
    """Writes AuditLog rows inside the active transaction."""

    def __init__(self, session: Session, clock: Clock):
        super().__init__(session)
        self._clock = clock

    def record(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: UUID | str,
        actor_id: UUID | None,
        after: dict[str, Any] | None = None,
        before: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action.value,
            entity_type=entity_type,
            entity_id=str(entity_id),
            before=json_safe(before),
            after=json_safe(after),
            occurred_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "audit_recorded",
            extra={
                "action": action.value,
                "entity_type": entity_type,
                "entity_id": str(entity_id),
            },
        )
        return entry
