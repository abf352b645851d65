"""ORM models.  Importing this package registers every table on Base.metadata."""

from notice_ledger.models.audit_log import AuditAction, AuditLog
from notice_ledger.models.collector import (
    ApiLogStatus,
    Collector,
    CollectorApiLog,
    CollectorStatus,
)
from notice_ledger.models.notice import Notice
from notice_ledger.models.payment import ManualPaymentMethod, Payment
from notice_ledger.models.reduction import NoticeReduction, ReductionStatus
from notice_ledger.models.taxpayer import Taxpayer
from notice_ledger.models.user import User
from notice_ledger.db.immutability import register_immutability_listeners

register_immutability_listeners()

__all__ = [
    "AuditAction",
    "AuditLog",
    "ApiLogStatus",
    "Collector",
    "CollectorApiLog",
    "CollectorStatus",
    "ManualPaymentMethod",
    "Notice",
    "NoticeReduction",
    "Payment",
    "ReductionStatus",
    "Taxpayer",
    "User",
]
