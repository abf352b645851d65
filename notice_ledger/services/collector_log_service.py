"""
CollectorCallLog -- one CollectorApiLog row per inbound external call.

Responsibility:
    Persists the outcome of every collector API call together with the
    decoded token claims and the full request / response payloads.

Architecture position:
    Ledger > Services.  Called by CollectorGateway after the call's own
    transaction has finished (committed OR rolled back).

Invariants enforced:
    - Unconditional: failures are recorded exactly like successes.
    - Independent transaction: the log row is committed on its own, so a
      rolled-back payment still leaves its FAILED row behind.
    - Append-only (ORM listeners on CollectorApiLog).
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from notice_ledger.db.engine import Database
from notice_ledger.domain.clock import Clock
from notice_ledger.logging_config import get_logger
from notice_ledger.models.collector import ApiLogStatus, CollectorApiLog
from notice_ledger.utils.serialization import json_safe

logger = get_logger("services.collector_log")


@dataclass(frozen=True)
class CallRecord:
    """Everything known about one external call when it completes."""

    endpoint: str
    status: ApiLogStatus
    message: str | None
    collector_id: UUID | None = None
    notice_number: str | None = None
    request_txn_id: str | None = None
    jwt_txn_id: str | None = None
    jwt_issuer: str | None = None
    request_payload: Any = None
    response_payload: Any = None


class CollectorCallLog:
    """Writes CollectorApiLog rows, each in its own transaction."""

    def __init__(self, database: Database, clock: Clock):
        self._database = database
        self._clock = clock

    def record(self, call: CallRecord) -> UUID:
        request_payload = json_safe(call.request_payload)
        if request_payload is not None and not isinstance(request_payload, dict):
            request_payload = {"body": request_payload}

        with self._database.transaction() as session:
            entry = CollectorApiLog(
                collector_id=call.collector_id,
                endpoint=call.endpoint,
                notice_number=_clip(call.notice_number),
                request_txn_id=_clip(call.request_txn_id),
                jwt_txn_id=_clip(call.jwt_txn_id),
                jwt_issuer=_clip(call.jwt_issuer),
                status=call.status.value,
                message=call.message,
                request_payload=request_payload,
                response_payload=json_safe(call.response_payload),
                created_at=self._clock.now(),
            )
            session.add(entry)
            session.flush()
            log_id = entry.id

        logger.info(
            "collector_call_logged",
            extra={
                "endpoint": call.endpoint,
                "call_status": call.status.value,
                "api_log_id": str(log_id),
            },
        )
        return log_id


def _clip(value: Any, limit: int = 100) -> str | None:
    """Fit caller-controlled identifiers into their columns."""
    if value is None:
        return None
    return str(value)[:limit]
