"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Three record types are append-only:

Entity           | When Immutable          | Why
-----------------|-------------------------|----------------------------------
Payment          | ALWAYS (from creation)  | Ledger history; amountPaid is
                 |                         | the sum of these rows
AuditLog         | ALWAYS (from creation)  | Audit trail is sacred
CollectorApiLog  | ALWAYS (from creation)  | Forensic record of external calls

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL reaches
the database.  The listeners below raise ImmutableRecordError there, so the
flush fails and the surrounding transaction rolls back.

    session.flush()
         |
         v
    [before_update / before_delete] --> _reject_*() --> ImmutableRecordError

Bulk ``session.execute(update(...))`` statements bypass mapper events; no
service issues those against these tables.

===============================================================================
USAGE
===============================================================================

    from notice_ledger.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; notice_ledger.models calls it

    # In tests that need to bypass:
    from notice_ledger.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
    # ... test code ...
    register_immutability_listeners()
"""

from sqlalchemy import event

from notice_ledger.exceptions import ImmutableRecordError
from notice_ledger.logging_config import get_logger

logger = get_logger("db.immutability")


def _reject(target, operation: str) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutableRecordError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{operation} is not allowed on append-only records",
    )


def _reject_update(mapper, connection, target):
    _reject(target, "UPDATE")


def _reject_delete(mapper, connection, target):
    _reject(target, "DELETE")


def _append_only_models():
    from notice_ledger.models.audit_log import AuditLog
    from notice_ledger.models.collector import CollectorApiLog
    from notice_ledger.models.payment import Payment

    return (Payment, AuditLog, CollectorApiLog)


def register_immutability_listeners() -> None:
    """Register the append-only listeners (safe to call more than once)."""
    for model in _append_only_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def unregister_immutability_listeners() -> None:
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that need to violate immutability on
    purpose.
    """
    for model in _append_only_models():
        if event.contains(model, "before_update", _reject_update):
            event.remove(model, "before_update", _reject_update)
        if event.contains(model, "before_delete", _reject_delete):
            event.remove(model, "before_delete", _reject_delete)
