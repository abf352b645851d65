"""
SecretCipher -- encryption at rest for collector JWT secrets.

Responsibility:
    Encrypts collector secrets before they are stored and decrypts them
    for token signing and verification.  Secrets are only ever persisted
    in encrypted form; legacy plaintext values are still accepted on read
    and can be migrated with ``encrypt_existing_secrets``.

Architecture position:
    Ledger > Gateway.  Built once by the composition root from
    ``collector_api.encryption_key``.

Key derivation:
    The configured key is a passphrase.  A 32-byte Fernet key is derived
    from it with scrypt and a fixed, application-specific salt, so the
    same passphrase always decrypts the same stored secrets.

Failure modes:
    - ConfigurationError: empty passphrase.
    - cryptography.fernet.InvalidToken: ciphertext produced under another
      key (propagates; the stored value cannot be trusted).
"""

import base64
import binascii
import secrets

from cryptography.fernet import Fernet
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from sqlalchemy import select

from notice_ledger.db.engine import Database
from notice_ledger.exceptions import ConfigurationError
from notice_ledger.logging_config import get_logger
from notice_ledger.models.collector import Collector

logger = get_logger("gateway.secrets")

_KDF_SALT = b"notice-ledger-collector-secret"
_FERNET_VERSION = 0x80
_FERNET_MIN_LENGTH = 73  # version + timestamp + iv + one block + hmac


def derive_key(passphrase: str) -> bytes:
    """Derive a urlsafe-base64 Fernet key from a passphrase."""
    if not passphrase or not passphrase.strip():
        raise ConfigurationError("collector_api.encryption_key", "must not be empty")
    kdf = Scrypt(salt=_KDF_SALT, length=32, n=2**14, r=8, p=1)
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


def is_encrypted(value: str) -> bool:
    """True when ``value`` has the shape of a Fernet token."""
    try:
        raw = base64.urlsafe_b64decode(value.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError, ValueError):
        return False
    return len(raw) >= _FERNET_MIN_LENGTH and raw[0] == _FERNET_VERSION


def generate_secret(num_bytes: int = 32) -> str:
    """Random collector secret, urlsafe text."""
    return secrets.token_urlsafe(num_bytes)


class SecretCipher:
    """Fernet encryption of collector secrets."""

    def __init__(self, passphrase: str):
        self._fernet = Fernet(derive_key(passphrase))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        return self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")

    def reveal(self, stored: str) -> str:
        """Plaintext of a stored secret, encrypted or legacy plaintext."""
        if is_encrypted(stored):
            return self.decrypt(stored)
        return stored


def encrypt_existing_secrets(database: Database, cipher: SecretCipher) -> int:
    """
    Encrypt every collector secret still stored in plaintext.

    Returns:
        Number of collectors migrated.
    """
    migrated = 0
    with database.transaction() as session:
        collectors = session.execute(
            select(Collector).where(Collector.jwt_secret.is_not(None)).with_for_update()
        ).scalars()
        for collector in collectors:
            if is_encrypted(collector.jwt_secret):
                continue
            collector.jwt_secret = cipher.encrypt(collector.jwt_secret)
            migrated += 1

    logger.info("collector_secrets_encrypted", extra={"migrated": migrated})
    return migrated
