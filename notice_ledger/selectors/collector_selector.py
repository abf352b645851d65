"""
Module: notice_ledger.selectors.collector_selector
Responsibility: Read-only views of the collector API call log, for
    forensic review and abuse detection.
Architecture position: Ledger > Selectors.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select

from notice_ledger.models.collector import ApiLogStatus, CollectorApiLog
from notice_ledger.selectors.base import BaseSelector

DEFAULT_PAGE_SIZE = 100


@dataclass(frozen=True)
class ApiLogView:
    log_id: UUID
    collector_id: UUID | None
    endpoint: str
    notice_number: str | None
    request_txn_id: str | None
    jwt_txn_id: str | None
    jwt_issuer: str | None
    status: str
    message: str | None
    request_payload: dict[str, Any] | None
    response_payload: dict[str, Any] | None
    created_at: datetime


class CollectorSelector(BaseSelector):
    """Collector call log queries."""

    def api_logs(
        self,
        status: ApiLogStatus | None = None,
        collector_id: UUID | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[ApiLogView]:
        """Call log rows, newest first, optionally filtered."""
        query = select(CollectorApiLog)
        if status is not None:
            query = query.where(CollectorApiLog.status == ApiLogStatus(status).value)
        if collector_id is not None:
            query = query.where(CollectorApiLog.collector_id == collector_id)
        query = (
            query.order_by(CollectorApiLog.created_at.desc(), CollectorApiLog.id)
            .limit(limit)
            .offset(offset)
        )
        return [_to_view(entry) for entry in self.session.execute(query).scalars()]


def _to_view(entry: CollectorApiLog) -> ApiLogView:
    return ApiLogView(
        log_id=entry.id,
        collector_id=entry.collector_id,
        endpoint=entry.endpoint,
        notice_number=entry.notice_number,
        request_txn_id=entry.request_txn_id,
        jwt_txn_id=entry.jwt_txn_id,
        jwt_issuer=entry.jwt_issuer,
        status=entry.status,
        message=entry.message,
        request_payload=entry.request_payload,
        response_payload=entry.response_payload,
        created_at=entry.created_at,
    )
