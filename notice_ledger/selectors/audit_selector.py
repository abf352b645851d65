"""
Module: notice_ledger.selectors.audit_selector
Responsibility: Read-only access to the audit trail of an entity.
Architecture position: Ledger > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select

from notice_ledger.models.audit_log import AuditLog
from notice_ledger.selectors.base import BaseSelector


@dataclass(frozen=True)
class AuditEntryView:
    entry_id: UUID
    actor_id: UUID | None
    action: str
    entity_type: str
    entity_id: str
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    occurred_at: datetime


class AuditSelector(BaseSelector):
    def trail(self, entity_type: str, entity_id: UUID | str) -> list[AuditEntryView]:
        """Audit entries of one entity, oldest first."""
        entries = self.session.execute(
            select(AuditLog)
            .where(
                AuditLog.entity_type == entity_type,
                AuditLog.entity_id == str(entity_id),
            )
            .order_by(AuditLog.occurred_at, AuditLog.id)
        ).scalars()
        return [
            AuditEntryView(
                entry_id=entry.id,
                actor_id=entry.actor_id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                before=entry.before,
                after=entry.after,
                occurred_at=entry.occurred_at,
            )
            for entry in entries
        ]
