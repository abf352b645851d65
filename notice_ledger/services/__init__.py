"""
Ledger services.

Workflow services own their transaction (``Database.transaction()``) and
return ``OperationResult``; session-scoped services (NoticeLedger,
AuditLogWriter) run inside the caller's transaction and only flush.
"""

from notice_ledger.services.auditor_service import AuditLogWriter
from notice_ledger.services.collector_admin_service import CollectorAdminService
from notice_ledger.services.collector_log_service import CallRecord, CollectorCallLog
from notice_ledger.services.ledger_service import NoticeLedger
from notice_ledger.services.notice_admin_service import NoticeAdminService
from notice_ledger.services.payment_service import ExternalPaymentRequest, PaymentService
from notice_ledger.services.reduction_service import ReductionWorkflow

__all__ = [
    "AuditLogWriter",
    "CallRecord",
    "CollectorAdminService",
    "CollectorCallLog",
    "ExternalPaymentRequest",
    "NoticeAdminService",
    "NoticeLedger",
    "PaymentService",
    "ReductionWorkflow",
]
