"""Tests for CollectorAdminService and NoticeAdminService."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from notice_ledger.domain.access import Role
from notice_ledger.domain.results import OperationStatus
from notice_ledger.exceptions import ErrorKind
from notice_ledger.gateway.secrets import is_encrypted
from notice_ledger.models.audit_log import AuditAction
from notice_ledger.models.collector import Collector
from notice_ledger.models.notice import Notice
from notice_ledger.models.reduction import NoticeReduction
from notice_ledger.selectors.audit_selector import AuditSelector

PAID_AT = 1_704_110_400_000


def _collector(database, collector_id) -> Collector:
    with database.transaction() as session:
        return session.get(Collector, collector_id)


class TestCollectorAdmin:
    def test_create_returns_plaintext_once(self, container, database, admin, cipher):
        result = container.collector_admin.create_collector(
            "ORANGE", "Orange Money", admin.id, phone="+225", email="om@example.test"
        )

        assert result.status == OperationStatus.APPLIED
        secret = result.details["secret"]
        stored = _collector(database, result.entity_id)
        assert stored.code == "ORANGE"
        assert stored.status == "ACTIVE"
        assert is_encrypted(stored.jwt_secret)
        assert secret not in stored.jwt_secret
        assert cipher.decrypt(stored.jwt_secret) == secret

    def test_secret_not_in_audit(self, container, database, admin):
        result = container.collector_admin.create_collector("WAVE", "Wave", admin.id)
        with database.transaction() as session:
            trail = AuditSelector(session).trail("COLLECTOR", result.entity_id)
        assert [e.action for e in trail] == [AuditAction.COLLECTOR_CREATED.value]
        assert result.details["secret"] not in str(trail[0].after)

    def test_duplicate_code(self, container, admin):
        assert container.collector_admin.create_collector("MTN", "MTN", admin.id).ok
        again = container.collector_admin.create_collector("MTN", "MTN bis", admin.id)
        assert again.error_code == "DUPLICATE_COLLECTOR_CODE"
        assert again.error_kind == ErrorKind.CONFLICT

    def test_non_admin_refused(self, container, cashier):
        result = container.collector_admin.create_collector("MTN", "MTN", cashier.id)
        assert result.error_kind == ErrorKind.ACCESS_DENIED

    def test_reset_secret_rotates(self, container, database, admin, cipher, collector):
        before = cipher.reveal(_collector(database, collector.id).jwt_secret)
        result = container.collector_admin.reset_collector_secret(collector.id, admin.id)

        assert result.ok
        after = cipher.reveal(_collector(database, collector.id).jwt_secret)
        assert after == result.details["secret"]
        assert after != before

    def test_reset_unknown_collector(self, container, admin):
        result = container.collector_admin.reset_collector_secret(uuid4(), admin.id)
        assert result.error_code == "UNKNOWN_COLLECTOR"
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_suspend_and_reactivate(self, container, database, admin, collector):
        suspended = container.collector_admin.set_collector_status(collector.id, "suspended", admin.id)
        assert suspended.message == "Collector suspended"
        assert _collector(database, collector.id).status == "SUSPENDED"

        active = container.collector_admin.set_collector_status(collector.id, "ACTIVE", admin.id)
        assert active.message == "Collector active"
        assert _collector(database, collector.id).is_active

    def test_invalid_status(self, container, admin, collector):
        result = container.collector_admin.set_collector_status(collector.id, "DELETED", admin.id)
        assert result.error_code == "INVALID_FIELD"


class TestNoticeAdmin:
    def test_deletes_unpaid_notices_of_year(
        self, container, database, deterministic_clock, admin, agent, taxpayer, make_notice
    ):
        first = make_notice(taxpayer, year=2023)
        make_notice(taxpayer, year=2023)
        kept = make_notice(taxpayer, year=2024)
        container.reductions.request_reduction(
            taxpayer.code, first.number, "100", "Reason", agent.id
        )
        deterministic_clock.advance(60)

        result = container.notice_admin.delete_notices_for_year(taxpayer.id, 2023, admin.id)

        assert result.status == OperationStatus.APPLIED
        assert result.details["deletedCount"] == 2
        with database.transaction() as session:
            remaining = session.execute(select(Notice.id)).scalars().all()
            reductions = session.execute(select(NoticeReduction.id)).scalars().all()
            trail = AuditSelector(session).trail("NOTICE", first.id)
        assert remaining == [kept.id]
        assert reductions == []
        assert trail[-1].action == AuditAction.NOTICE_DELETED.value
        assert trail[-1].before["noticeNumber"] == first.number

    def test_refuses_when_payments_exist(
        self, container, database, admin, collector, taxpayer, make_notice
    ):
        paid = make_notice(taxpayer, year=2023)
        container.payments.apply_external_payment(
            paid.number, taxpayer.code, "100", "R1", PAID_AT, collector.id
        )

        result = container.notice_admin.delete_notices_for_year(taxpayer.id, 2023, admin.id)

        assert result.error_code == "NOTICE_HAS_PAYMENTS"
        with database.transaction() as session:
            assert session.get(Notice, paid.id) is not None

    def test_refuses_locked_notice(self, container, admin, taxpayer, make_notice):
        make_notice(taxpayer, year=2023, locked=True)
        result = container.notice_admin.delete_notices_for_year(taxpayer.id, 2023, admin.id)
        assert result.error_code == "NOTICE_LOCKED"

    def test_nothing_to_delete(self, container, admin, taxpayer):
        result = container.notice_admin.delete_notices_for_year(taxpayer.id, 1999, admin.id)
        assert result.error_code == "NOTICE_NOT_FOUND"

    def test_scope_enforced(self, container, make_user, make_taxpayer, make_notice):
        admin_b = make_user(Role.ADMIN, commune="Commune-B")
        taxpayer_a = make_taxpayer(commune="Commune-A")
        make_notice(taxpayer_a, year=2023)
        result = container.notice_admin.delete_notices_for_year(taxpayer_a.id, 2023, admin_b.id)
        assert result.error_kind == ErrorKind.ACCESS_DENIED

    @pytest.mark.parametrize("year", [0, -1, "2023", True])
    def test_invalid_year(self, container, admin, taxpayer, year):
        result = container.notice_admin.delete_notices_for_year(taxpayer.id, year, admin.id)
        assert result.error_code == "INVALID_FIELD"

    def test_cashier_refused(self, container, cashier, taxpayer, make_notice):
        make_notice(taxpayer, year=2023)
        result = container.notice_admin.delete_notices_for_year(taxpayer.id, 2023, cashier.id)
        assert result.error_kind == ErrorKind.ACCESS_DENIED
