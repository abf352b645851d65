"""Tests for scripts/encrypt_collector_secrets.py."""

import pytest

from notice_ledger.gateway.secrets import is_encrypted
from notice_ledger.models.collector import Collector
from scripts.encrypt_collector_secrets import main
from tests.conftest import TEST_COLLECTOR_SECRET, TEST_ENCRYPTION_KEY, get_database_url


@pytest.fixture
def config_path(tmp_path, database, monkeypatch):
    """A config file pointing at the test database; key from the environment."""
    monkeypatch.delenv("NOTICE_LEDGER_CONFIG", raising=False)
    monkeypatch.delenv("NOTICE_LEDGER_DATABASE_URL", raising=False)
    monkeypatch.setenv("NOTICE_LEDGER_ENCRYPTION_KEY", TEST_ENCRYPTION_KEY)
    path = tmp_path / "ledger.yaml"
    path.write_text(f"database:\n  url: '{get_database_url(tmp_path)}'\n")
    return path


def _stored_secret(database, collector_id) -> str | None:
    with database.transaction() as session:
        return session.get(Collector, collector_id).jwt_secret


def test_plaintext_secrets_encrypted(config_path, database, cipher, make_collector, capsys):
    legacy = make_collector(encrypted=False)
    current = make_collector()
    current_stored = _stored_secret(database, current.id)

    assert main(["--config", str(config_path)]) == 0

    stored = _stored_secret(database, legacy.id)
    assert is_encrypted(stored)
    assert cipher.reveal(stored) == TEST_COLLECTOR_SECRET
    assert _stored_secret(database, current.id) == current_stored
    assert "Encrypted 1 collector secret(s)." in capsys.readouterr().out


def test_second_run_changes_nothing(config_path, database, make_collector, capsys):
    legacy = make_collector(encrypted=False)
    assert main(["--config", str(config_path)]) == 0
    first = _stored_secret(database, legacy.id)
    capsys.readouterr()

    assert main(["--config", str(config_path)]) == 0

    assert _stored_secret(database, legacy.id) == first
    assert "Encrypted 0 collector secret(s)." in capsys.readouterr().out


def test_missing_encryption_key_refused(config_path, database, make_collector, monkeypatch, capsys):
    legacy = make_collector(encrypted=False)
    monkeypatch.delenv("NOTICE_LEDGER_ENCRYPTION_KEY")

    assert main(["--config", str(config_path)]) == 1

    assert "encryption_key" in capsys.readouterr().err
    assert _stored_secret(database, legacy.id) == TEST_COLLECTOR_SECRET
