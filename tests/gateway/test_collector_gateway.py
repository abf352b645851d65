"""
CollectorGateway tests: authentication order, payment outcomes, lookups
and the unconditional call log.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from notice_ledger.config.schema import RateLimitConfig
from notice_ledger.gateway.tokens import issue_token
from notice_ledger.models.collector import ApiLogStatus, CollectorStatus
from notice_ledger.models.payment import Payment
from notice_ledger.selectors.collector_selector import CollectorSelector
from notice_ledger.selectors.notice_selector import NoticeSelector
from tests.conftest import TEST_COLLECTOR_SECRET

PAID_AT = 1_704_110_400_000


@pytest.fixture
def gateway(container):
    return container.gateway


@pytest.fixture
def bearer(collector, deterministic_clock):
    """Build an Authorization header signed with the collector's secret."""

    def _bearer(txn_id=None, secret=TEST_COLLECTOR_SECRET, issuer=None, ttl=300):
        token = issue_token(
            issuer or collector.code, secret, deterministic_clock, ttl, txn_id=txn_id
        )
        return f"Bearer {token}"

    return _bearer


def _payment_body(notice, taxpayer, amount="1500", reference="TX-1", **extra):
    body = {
        "noticeNumber": notice.number,
        "taxpayerCode": taxpayer.code,
        "amount": amount,
        "referenceId": reference,
        "paidAtEpochMillis": PAID_AT,
    }
    body.update(extra)
    return body


def _logs(database, **filters):
    with database.transaction() as session:
        return CollectorSelector(session).api_logs(**filters)


def _payment_count(database) -> int:
    with database.transaction() as session:
        return session.execute(select(func.count(Payment.id))).scalar_one()


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    def test_login_by_code_issues_token(self, gateway, database, collector):
        response = gateway.login({"code": collector.code, "password": TEST_COLLECTOR_SECRET})

        assert response.http_status == 200
        assert response.body["ok"] is True
        assert response.body["expiresIn"] == 300
        assert response.body["collector"]["code"] == collector.code
        token = response.body["token"]

        [entry] = _logs(database)
        assert entry.endpoint == "login"
        assert entry.status == ApiLogStatus.SUCCESS.value
        assert entry.collector_id == collector.id
        assert "token" not in entry.response_payload
        assert entry.request_payload == {
            "email": None,
            "code": collector.code,
            "hasPassword": True,
        }
        assert TEST_COLLECTOR_SECRET not in str(entry.request_payload)

        lookup = gateway.lookup_notice(f"Bearer {token}", "AV-UNKNOWN")
        assert lookup.http_status == 400

    def test_login_by_email(self, gateway, make_collector):
        collector = make_collector(email="wave@example.test")
        response = gateway.login({"email": "wave@example.test", "password": TEST_COLLECTOR_SECRET})
        assert response.http_status == 200
        assert response.body["collector"]["id"] == str(collector.id)

    def test_wrong_password(self, gateway, database, collector):
        response = gateway.login({"code": collector.code, "password": "not-the-secret"})

        assert response.http_status == 401
        assert response.body == {"ok": False, "message": "Invalid credentials"}
        [entry] = _logs(database)
        assert entry.status == ApiLogStatus.FAILED.value
        assert entry.collector_id == collector.id

    def test_unknown_collector_same_answer(self, gateway):
        response = gateway.login({"code": "NOBODY", "password": TEST_COLLECTOR_SECRET})
        assert response.http_status == 401
        assert response.body["message"] == "Invalid credentials"

    def test_suspended_collector(self, gateway, make_collector):
        suspended = make_collector(status=CollectorStatus.SUSPENDED)
        response = gateway.login({"code": suspended.code, "password": TEST_COLLECTOR_SECRET})
        assert response.http_status == 401

    @pytest.mark.parametrize(
        "body",
        [
            None,
            ["code", "password"],
            {"code": "COL-1"},
            {"code": "COL-1", "password": "short"},
            {"password": TEST_COLLECTOR_SECRET},
        ],
    )
    def test_invalid_body(self, gateway, database, body):
        response = gateway.login(body)
        assert response.http_status == 400
        assert response.body["ok"] is False
        assert len(_logs(database)) == 1


# =============================================================================
# Payments
# =============================================================================


class TestSubmitPayment:
    def test_applied(self, gateway, database, bearer, collector, taxpayer, notice):
        response = gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))

        assert response.http_status == 200
        assert response.body["ok"] is True
        payment_id = response.body["paymentId"]

        with database.transaction() as session:
            view = NoticeSelector(session).get_by_number(notice.number, with_payments=True)
        assert view.amount_paid == Decimal("1500")
        assert str(view.payments[0].payment_id) == payment_id
        assert view.payments[0].collector_id == collector.id

        [entry] = _logs(database)
        assert entry.status == ApiLogStatus.SUCCESS.value
        assert entry.endpoint == "payment"
        assert entry.notice_number == notice.number
        assert entry.request_txn_id == "TX-1"
        assert entry.jwt_issuer == collector.code
        assert entry.request_payload["amount"] == "1500"

    def test_replay_is_ignored(self, gateway, database, bearer, taxpayer, notice):
        first = gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))
        second = gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))

        assert second.http_status == 200
        assert second.body["paymentId"] == first.body["paymentId"]
        assert second.body["message"] == "Payment already recorded"
        assert _payment_count(database) == 1
        statuses = [entry.status for entry in _logs(database)]
        assert sorted(statuses) == ["IGNORED", "SUCCESS"]

    def test_overpayment_refused(self, gateway, database, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(), _payment_body(notice, taxpayer, amount="70001")
        )

        assert response.http_status == 400
        assert response.body["ok"] is False
        assert "exceeds the remaining balance" in response.body["message"]
        assert _payment_count(database) == 0
        [entry] = _logs(database, status=ApiLogStatus.FAILED)
        assert entry.message == response.body["message"]

    def test_taxpayer_mismatch(self, gateway, bearer, make_taxpayer, notice):
        other = make_taxpayer()
        response = gateway.submit_payment(bearer(), _payment_body(notice, other))
        assert response.http_status == 400
        assert response.body["message"] == "Notice not found or taxpayer mismatch"

    def test_token_txn_id_must_match_reference(self, gateway, database, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(txn_id="TX-OTHER"), _payment_body(notice, taxpayer, reference="TX-1")
        )

        assert response.http_status == 401
        assert _payment_count(database) == 0
        [entry] = _logs(database)
        assert entry.jwt_txn_id == "TX-OTHER"
        assert entry.request_txn_id == "TX-1"

    def test_matching_txn_id_accepted(self, gateway, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(txn_id="TX-1"), _payment_body(notice, taxpayer, reference="TX-1")
        )
        assert response.http_status == 200

    def test_float_amount_refused(self, gateway, database, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(), _payment_body(notice, taxpayer, amount=1500.5)
        )
        assert response.http_status == 400
        assert _payment_count(database) == 0

    def test_invalid_body_after_authentication(self, gateway, database, bearer, collector):
        response = gateway.submit_payment(bearer(), None)
        assert response.http_status == 400
        [entry] = _logs(database)
        assert entry.collector_id == collector.id


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    def test_missing_token(self, gateway, database, taxpayer, notice):
        response = gateway.submit_payment(None, _payment_body(notice, taxpayer))

        assert response.http_status == 401
        assert response.body == {"ok": False, "message": "Missing bearer token"}
        [entry] = _logs(database)
        assert entry.status == ApiLogStatus.FAILED.value
        assert entry.collector_id is None

    def test_garbage_token(self, gateway, taxpayer, notice):
        response = gateway.submit_payment("Bearer not.a.jwt", _payment_body(notice, taxpayer))
        assert response.http_status == 401
        assert response.body["message"] == "Invalid token: malformed token"

    def test_unknown_issuer(self, gateway, database, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(issuer="GHOST"), _payment_body(notice, taxpayer)
        )
        assert response.http_status == 401
        assert response.body["message"] == "Collector not authorized"
        [entry] = _logs(database)
        assert entry.jwt_issuer == "GHOST"

    def test_wrong_secret(self, gateway, database, bearer, taxpayer, notice):
        response = gateway.submit_payment(
            bearer(secret="another-collectors-secret-value-0123456789"), _payment_body(notice, taxpayer)
        )
        assert response.http_status == 401
        assert response.body["message"] == "Invalid token: signature mismatch"
        assert _payment_count(database) == 0

    def test_expired_token(self, gateway, bearer, deterministic_clock, taxpayer, notice):
        header = bearer(ttl=300)
        deterministic_clock.advance(301)
        response = gateway.submit_payment(header, _payment_body(notice, taxpayer))
        assert response.http_status == 401
        assert response.body["message"] == "Invalid token: expired"

    def test_suspended_collector(
        self, gateway, container, admin, collector, bearer, taxpayer, notice
    ):
        header = bearer()
        container.collector_admin.set_collector_status(collector.id, "SUSPENDED", admin.id)
        response = gateway.submit_payment(header, _payment_body(notice, taxpayer))
        assert response.http_status == 401

    def test_secret_reset_invalidates_tokens(
        self, gateway, container, admin, collector, bearer, taxpayer, notice
    ):
        header = bearer()
        container.collector_admin.reset_collector_secret(collector.id, admin.id)
        response = gateway.submit_payment(header, _payment_body(notice, taxpayer))
        assert response.body["message"] == "Invalid token: signature mismatch"

    def test_plaintext_secret_still_verifies(self, gateway, make_collector, deterministic_clock, taxpayer, notice):
        legacy = make_collector(encrypted=False)
        token = issue_token(legacy.code, TEST_COLLECTOR_SECRET, deterministic_clock, 300)
        response = gateway.submit_payment(f"Bearer {token}", _payment_body(notice, taxpayer))
        assert response.http_status == 200


class TestRateLimit:
    @pytest.fixture
    def rate_limit_config(self):
        return RateLimitConfig(window_ms=60_000, max_requests=2)

    def test_third_call_refused_without_payment(
        self, gateway, database, bearer, deterministic_clock, taxpayer, notice
    ):
        for n in range(2):
            ok = gateway.submit_payment(
                bearer(), _payment_body(notice, taxpayer, amount="100", reference=f"TX-{n}")
            )
            assert ok.http_status == 200

        refused = gateway.submit_payment(
            bearer(), _payment_body(notice, taxpayer, amount="100", reference="TX-9")
        )

        assert refused.http_status == 429
        assert refused.body == {"ok": False, "message": "Too many requests"}
        assert refused.headers["Retry-After"] == "60"
        assert _payment_count(database) == 2
        assert _logs(database)[0].status == ApiLogStatus.FAILED.value

        deterministic_clock.advance(60)
        again = gateway.submit_payment(
            bearer(), _payment_body(notice, taxpayer, amount="100", reference="TX-9")
        )
        assert again.http_status == 200

    def test_forged_tokens_do_not_consume_budget(
        self, gateway, bearer, taxpayer, notice
    ):
        for _ in range(5):
            forged = gateway.submit_payment(
                bearer(secret="forged-secret-forged-secret-0123456789"), _payment_body(notice, taxpayer)
            )
            assert forged.http_status == 401

        response = gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))
        assert response.http_status == 200

    def test_login_attempts_limited_per_identifier(self, gateway, collector):
        for _ in range(2):
            gateway.login({"code": collector.code, "password": "wrong-password"})
        response = gateway.login({"code": collector.code, "password": TEST_COLLECTOR_SECRET})
        assert response.http_status == 429


# =============================================================================
# Lookups
# =============================================================================


class TestLookup:
    def test_lookup_with_payments(self, gateway, bearer, taxpayer, notice):
        gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))

        response = gateway.lookup_notice(bearer(), notice.number)

        assert response.http_status == 200
        assert response.body["notice"] == {
            "status": "PARTIAL",
            "totalAmount": "70000.00",
            "amountPaid": "1500.00",
            "noticeNumber": notice.number,
        }
        assert response.body["taxpayer"]["code"] == taxpayer.code
        [payment] = response.body["payments"]
        assert payment["referenceId"] == "TX-1"
        assert payment["amount"] == "1500.00"

    def test_unknown_notice(self, gateway, database, bearer):
        response = gateway.lookup_notice(bearer(), "AV-0000")
        assert response.http_status == 400
        assert response.body["message"] == "Notice not found: AV-0000"
        assert _logs(database)[0].notice_number == "AV-0000"

    def test_requires_token(self, gateway, notice):
        assert gateway.lookup_notice(None, notice.number).http_status == 401


class TestTaxDetails:
    def test_details(self, gateway, bearer, taxpayer, notice):
        response = gateway.tax_details(
            bearer(), {"noticeNumber": notice.number, "taxpayerCode": taxpayer.code}
        )

        assert response.http_status == 200
        assert response.body["taxpayer"]["address"] == "Rue 12"
        assert response.body["notice"]["number"] == notice.number
        assert response.body["notice"]["year"] == 2024
        assert response.body["notice"]["status"] == "UNPAID"

    def test_unknown_and_mismatch_look_alike(
        self, gateway, bearer, make_taxpayer, taxpayer, notice
    ):
        other = make_taxpayer()
        mismatch = gateway.tax_details(
            bearer(), {"noticeNumber": notice.number, "taxpayerCode": other.code}
        )
        unknown = gateway.tax_details(
            bearer(), {"noticeNumber": "AV-0000", "taxpayerCode": taxpayer.code}
        )
        assert mismatch.http_status == unknown.http_status == 400
        assert mismatch.body == unknown.body


def test_every_call_is_logged(gateway, database, bearer, collector, taxpayer, notice):
    gateway.login({"code": collector.code, "password": TEST_COLLECTOR_SECRET})
    gateway.submit_payment(bearer(), _payment_body(notice, taxpayer))
    gateway.submit_payment(None, _payment_body(notice, taxpayer))
    gateway.lookup_notice(bearer(), notice.number)
    gateway.tax_details(bearer(), {"noticeNumber": notice.number, "taxpayerCode": taxpayer.code})

    endpoints = sorted(entry.endpoint for entry in _logs(database))
    assert endpoints == ["login", "lookup", "payment", "payment", "tax_details"]
