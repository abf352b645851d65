"""Read-only selectors."""

from notice_ledger.selectors.audit_selector import AuditEntryView, AuditSelector
from notice_ledger.selectors.collector_selector import ApiLogView, CollectorSelector
from notice_ledger.selectors.notice_selector import (
    NoticeSelector,
    NoticeView,
    PaymentView,
    TaxpayerView,
)
from notice_ledger.selectors.reduction_selector import ReductionSelector, ReductionView

__all__ = [
    "ApiLogView",
    "AuditEntryView",
    "AuditSelector",
    "CollectorSelector",
    "NoticeSelector",
    "NoticeView",
    "PaymentView",
    "ReductionSelector",
    "ReductionView",
    "TaxpayerView",
]
