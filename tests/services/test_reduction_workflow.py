"""Tests for ReductionWorkflow (notice_ledger/services/reduction_service.py)."""

from decimal import Decimal
from uuid import uuid4

import pytest

from notice_ledger.domain.access import Role
from notice_ledger.domain.results import OperationStatus
from notice_ledger.exceptions import ErrorKind
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.reduction import ReductionStatus
from notice_ledger.selectors.audit_selector import AuditSelector
from notice_ledger.selectors.notice_selector import NoticeSelector
from notice_ledger.selectors.reduction_selector import ReductionSelector


def _notice(database, notice):
    with database.transaction() as session:
        return NoticeSelector(session).get_by_id(notice.id)


def _reduction(database, reduction_id):
    with database.transaction() as session:
        return ReductionSelector(session).get(reduction_id)


def _actions(database, notice) -> list[str]:
    with database.transaction() as session:
        return [e.action for e in AuditSelector(session).trail("NOTICE", notice.id)]


class TestRequest:
    def test_supervised_requester_creates_pending(self, container, database, agent, taxpayer, notice):
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "5000", "Commercial closure", agent.id
        )

        assert result.status == OperationStatus.PENDING_APPROVAL
        reduction = _reduction(database, result.entity_id)
        assert reduction.status == ReductionStatus.PENDING.value
        assert reduction.amount == Decimal("5000")
        assert reduction.previous_total == Decimal("70000")
        assert reduction.new_total == Decimal("65000")
        assert reduction.reviewed_by_id is None
        assert _notice(database, notice).total_amount == Decimal("70000")
        assert _actions(database, notice) == [AuditAction.NOTICE_REDUCTION_REQUESTED.value]

    def test_unsupervised_admin_self_applies(self, container, database, admin, taxpayer, notice):
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "5000", "Court decision", admin.id
        )

        assert result.status == OperationStatus.APPLIED
        assert result.notice.total_amount == Decimal("65000")
        reduction = _reduction(database, result.entity_id)
        assert reduction.status == ReductionStatus.APPROVED.value
        assert reduction.reviewed_by_id == admin.id
        assert reduction.reviewed_at is not None
        assert _notice(database, notice).total_amount == Decimal("65000")
        assert _actions(database, notice) == [AuditAction.NOTICE_REDUCTION_APPLIED.value]

    def test_unsupervised_non_admin_refused(self, container, make_user, taxpayer, notice):
        lone_agent = make_user(Role.AGENT)
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "5000", "Reason", lone_agent.id
        )
        assert result.error_kind == ErrorKind.ACCESS_DENIED

    def test_below_paid_refused_at_request(self, container, database, agent, taxpayer, make_notice):
        paid = make_notice(taxpayer, total="70000", paid="70000")
        result = container.reductions.request_reduction(
            taxpayer.code, paid.number, "5000", "Reason", agent.id
        )
        assert result.error_code == "BELOW_PAID_AMOUNT"
        with database.transaction() as session:
            assert ReductionSelector(session).requested_by(agent.id) == []

    def test_larger_than_total_refused(self, container, agent, taxpayer, notice):
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "70001", "Reason", agent.id
        )
        assert result.error_code == "REDUCTION_TOO_LARGE"

    def test_taxpayer_outside_commune_is_not_found(self, container, agent, make_taxpayer, make_notice):
        foreign = make_taxpayer(commune="Commune-B")
        foreign_notice = make_notice(foreign)
        result = container.reductions.request_reduction(
            foreign.code, foreign_notice.number, "100", "Reason", agent.id
        )
        assert result.error_code == "TAXPAYER_NOT_FOUND"

    def test_notice_of_other_taxpayer_not_found(self, container, agent, make_taxpayer, notice):
        other = make_taxpayer()
        result = container.reductions.request_reduction(
            other.code, notice.number, "100", "Reason", agent.id
        )
        assert result.error_code == "NOTICE_NOT_FOUND"

    @pytest.mark.parametrize("reason", ["", "ab", None])
    def test_reason_required(self, container, agent, taxpayer, notice, reason):
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "100", reason, agent.id
        )
        assert result.error_code == "INVALID_FIELD"


class TestDecisions:
    @pytest.fixture
    def pending(self, container, agent, taxpayer, notice):
        result = container.reductions.request_reduction(
            taxpayer.code, notice.number, "5000", "Commercial closure", agent.id
        )
        assert result.status == OperationStatus.PENDING_APPROVAL
        return result.entity_id

    def test_direct_supervisor_approves(
        self, container, database, deterministic_clock, admin, notice, pending
    ):
        deterministic_clock.advance(60)
        result = container.reductions.approve(pending, admin.id, note="  ok  ")

        assert result.status == OperationStatus.APPLIED
        assert result.notice.total_amount == Decimal("65000")
        reduction = _reduction(database, pending)
        assert reduction.status == ReductionStatus.APPROVED.value
        assert reduction.reviewed_by_id == admin.id
        assert reduction.review_note == "ok"
        assert _notice(database, notice).total_amount == Decimal("65000")
        assert _actions(database, notice) == [
            AuditAction.NOTICE_REDUCTION_REQUESTED.value,
            AuditAction.NOTICE_REDUCTION_APPROVED.value,
        ]

    def test_reject_leaves_notice_untouched(self, container, database, admin, notice, pending):
        result = container.reductions.reject(pending, admin.id, note="No evidence")

        assert result.status == OperationStatus.REJECTED
        assert result.ok
        reduction = _reduction(database, pending)
        assert reduction.status == ReductionStatus.REJECTED.value
        assert reduction.review_note == "No evidence"
        assert _notice(database, notice).total_amount == Decimal("70000")

    def test_second_decision_refused(self, container, admin, pending):
        assert container.reductions.approve(pending, admin.id).ok
        again = container.reductions.reject(pending, admin.id)
        assert again.error_code == "REDUCTION_ALREADY_PROCESSED"
        assert again.error_kind == ErrorKind.CONFLICT

    def test_higher_administrator_cannot_approve(self, container, database, make_user, pending):
        # Organisationally senior, but not the requester's direct supervisor
        super_admin = make_user(Role.SUPER_ADMIN, commune=None)
        result = container.reductions.approve(pending, super_admin.id)
        assert result.error_kind == ErrorKind.ACCESS_DENIED
        assert _reduction(database, pending).status == ReductionStatus.PENDING.value

    def test_requester_cannot_approve_own_request(self, container, agent, pending):
        result = container.reductions.approve(pending, agent.id)
        assert result.error_kind == ErrorKind.ACCESS_DENIED

    def test_stale_state_keeps_pending(self, container, database, admin, cashier, taxpayer, notice, pending):
        settled = container.payments.apply_manual_payment(
            taxpayer.id, notice.id, "70000", "CASH", None, cashier.id
        )
        assert settled.ok

        result = container.reductions.approve(pending, admin.id)

        assert result.error_code == "STALE_STATE"
        assert result.error_kind == ErrorKind.CONFLICT
        assert _reduction(database, pending).status == ReductionStatus.PENDING.value
        view = _notice(database, notice)
        assert view.total_amount == Decimal("70000")
        assert view.amount_paid == Decimal("70000")

    def test_approval_uses_current_total(self, container, database, admin, agent, taxpayer, notice):
        first = container.reductions.request_reduction(
            taxpayer.code, notice.number, "5000", "First", agent.id
        )
        second = container.reductions.request_reduction(
            taxpayer.code, notice.number, "3000", "Second", agent.id
        )
        assert container.reductions.approve(first.entity_id, admin.id).ok
        result = container.reductions.approve(second.entity_id, admin.id)

        assert result.notice.total_amount == Decimal("62000")
        reduction = _reduction(database, second.entity_id)
        assert reduction.previous_total == Decimal("65000")
        assert reduction.new_total == Decimal("62000")

    def test_unknown_reduction(self, container, admin):
        result = container.reductions.approve(uuid4(), admin.id)
        assert result.error_code == "REDUCTION_NOT_FOUND"
