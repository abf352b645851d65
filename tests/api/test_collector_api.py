"""HTTP surface tests: routing, JSON decoding and header handling."""

import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from notice_ledger.api import create_app
from notice_ledger.gateway.tokens import issue_token
from notice_ledger.selectors.collector_selector import CollectorSelector
from notice_ledger.selectors.notice_selector import NoticeSelector
from tests.conftest import TEST_COLLECTOR_SECRET

PAID_AT = 1_704_110_400_000


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def auth_header(collector, deterministic_clock):
    token = issue_token(collector.code, TEST_COLLECTOR_SECRET, deterministic_clock, 300)
    return {"Authorization": f"Bearer {token}"}


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_login_then_pay(client, collector, taxpayer, notice, database):
    login = client.post(
        "/api/collector/login",
        json={"code": collector.code, "password": TEST_COLLECTOR_SECRET},
    )
    assert login.status_code == 200
    token = login.json()["token"]

    payment = client.post(
        "/api/collector/payments",
        headers={"Authorization": f"Bearer {token}"},
        json={
            "noticeNumber": notice.number,
            "taxpayerCode": taxpayer.code,
            "amount": "2500",
            "referenceId": "HTTP-1",
            "paidAtEpochMillis": PAID_AT,
        },
    )

    assert payment.status_code == 200
    assert payment.json()["ok"] is True
    with database.transaction() as session:
        view = NoticeSelector(session).get_by_id(notice.id)
    assert view.amount_paid == Decimal("2500")


def test_json_number_amount_is_exact(client, auth_header, taxpayer, notice, database):
    raw = (
        '{"noticeNumber": "%s", "taxpayerCode": "%s", "amount": 0.1, '
        '"referenceId": "HTTP-2", "paidAtEpochMillis": %d}'
        % (notice.number, taxpayer.code, PAID_AT)
    )
    response = client.post(
        "/api/collector/payments",
        headers={**auth_header, "Content-Type": "application/json"},
        content=raw,
    )

    assert response.status_code == 200
    with database.transaction() as session:
        view = NoticeSelector(session).get_by_id(notice.id)
    assert view.amount_paid == Decimal("0.10")


def test_invalid_json_is_refused_and_logged(client, auth_header, database):
    response = client.post(
        "/api/collector/payments",
        headers={**auth_header, "Content-Type": "application/json"},
        content="{not json",
    )

    assert response.status_code == 400
    assert response.json()["ok"] is False
    with database.transaction() as session:
        [entry] = CollectorSelector(session).api_logs()
    assert entry.endpoint == "payment"


def test_missing_token_is_401(client, notice):
    response = client.get("/api/collector/payments", params={"noticeNumber": notice.number})
    assert response.status_code == 401
    assert response.json() == {"ok": False, "message": "Missing bearer token"}


def test_lookup(client, auth_header, taxpayer, notice):
    response = client.get(
        "/api/collector/payments",
        headers=auth_header,
        params={"noticeNumber": notice.number},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["notice"]["status"] == "UNPAID"
    assert body["taxpayer"]["code"] == taxpayer.code
    assert body["payments"] == []


def test_tax_details(client, auth_header, taxpayer, notice):
    response = client.post(
        "/api/collector/tax-details",
        headers=auth_header,
        json={"noticeNumber": notice.number, "taxpayerCode": taxpayer.code},
    )
    assert response.status_code == 200
    assert response.json()["notice"]["totalAmount"] == "70000.00"


def test_correlation_id_echoed(client):
    response = client.post(
        "/api/collector/login",
        headers={"X-Correlation-ID": "corr-123"},
        content=json.dumps({"code": "NOBODY", "password": "whatever-password"}),
    )
    assert response.status_code == 401
    assert response.headers["X-Correlation-ID"] == "corr-123"


def test_correlation_id_generated(client):
    response = client.post("/api/collector/login", json={})
    assert response.status_code == 400
    assert response.headers["X-Correlation-ID"]


def test_build_app_from_environment(monkeypatch, tmp_path):
    from notice_ledger.api import build_app

    monkeypatch.setenv("NOTICE_LEDGER_DATABASE_URL", f"sqlite:///{tmp_path / 'app.db'}")
    monkeypatch.setenv("NOTICE_LEDGER_ENCRYPTION_KEY", "environment-passphrase")
    monkeypatch.delenv("NOTICE_LEDGER_CONFIG", raising=False)

    with TestClient(build_app()) as app_client:
        assert app_client.get("/healthz").json() == {"ok": True}
