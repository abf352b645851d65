"""
Collector bearer tokens (HS256 JWT, PyJWT).

Responsibility:
    Issues tokens on collector login and verifies inbound bearer tokens
    against the collector's own secret.

Verification rules:
    - Signature: HS256 only, any other ``alg`` is refused.
    - ``iat`` more than ``skew_seconds`` in the future is refused.
    - ``nbf`` in the future is refused.
    - ``exp`` in the past is refused.
    Time claims are checked against the injected Clock rather than the
    wall clock, so PyJWT's own time checks are switched off.

Failure modes:
    - MissingTokenError: no Authorization value.
    - InvalidTokenError: malformed, badly signed or time-invalid token.
"""

from dataclasses import dataclass, field
from typing import Any

import jwt

from notice_ledger.domain.clock import Clock
from notice_ledger.exceptions import InvalidTokenError, MissingTokenError

ALGORITHM = "HS256"
BEARER_PREFIX = "bearer "

_DECODE_OPTIONS = {
    "verify_signature": True,
    "verify_exp": False,
    "verify_nbf": False,
    "verify_iat": False,
    "verify_aud": False,
    "verify_iss": False,
}


@dataclass(frozen=True)
class TokenClaims:
    """Claims of a collector token."""

    issuer: str | None
    txn_id: str | None
    issued_at: int | None = None
    not_before: int | None = None
    expires_at: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "TokenClaims":
        issuer = payload.get("iss")
        txn_id = payload.get("txnId")
        return cls(
            issuer=issuer if isinstance(issuer, str) and issuer else None,
            txn_id=str(txn_id) if txn_id is not None else None,
            issued_at=_numeric_claim(payload, "iat"),
            not_before=_numeric_claim(payload, "nbf"),
            expires_at=_numeric_claim(payload, "exp"),
            raw=payload,
        )


def _numeric_claim(payload: dict[str, Any], name: str) -> int | None:
    value = payload.get(name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidTokenError(f"claim {name} must be numeric")
    return int(value)


def extract_bearer(authorization: str | None) -> str:
    """Strip the ``Bearer`` scheme from an Authorization header value."""
    if authorization is None or not authorization.strip():
        raise MissingTokenError()
    value = authorization.strip()
    if value.lower().startswith(BEARER_PREFIX):
        value = value[len(BEARER_PREFIX):].strip()
    if not value:
        raise MissingTokenError()
    return value


def peek_claims(token: str) -> TokenClaims:
    """
    Read claims WITHOUT verifying the signature.

    Only used to find which collector's secret to verify with, and to
    record the claimed issuer when verification then fails.
    """
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        raise InvalidTokenError("malformed token") from None
    if not isinstance(payload, dict):
        raise InvalidTokenError("malformed token")
    return TokenClaims.from_payload(payload)


def issue_token(
    issuer: str,
    secret: str,
    clock: Clock,
    ttl_seconds: int,
    txn_id: str | None = None,
) -> str:
    """Sign ``{iss, iat, exp[, txnId]}`` with the collector secret."""
    now = clock.epoch_seconds()
    payload: dict[str, Any] = {
        "iss": issuer,
        "iat": now,
        "exp": now + ttl_seconds,
    }
    if txn_id is not None:
        payload["txnId"] = txn_id
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(token: str, secret: str, clock: Clock, skew_seconds: int) -> TokenClaims:
    """Verify signature and time claims; return the verified claims."""
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options=_DECODE_OPTIONS,
        )
    except jwt.InvalidSignatureError:
        raise InvalidTokenError("signature mismatch") from None
    except jwt.InvalidAlgorithmError:
        raise InvalidTokenError("unsupported algorithm") from None
    except jwt.InvalidTokenError:
        raise InvalidTokenError("malformed token") from None

    claims = TokenClaims.from_payload(payload)
    now = clock.epoch_seconds()

    if claims.issued_at is not None and claims.issued_at > now + skew_seconds:
        raise InvalidTokenError("issued in the future")
    if claims.not_before is not None and claims.not_before > now:
        raise InvalidTokenError("not yet valid")
    if claims.expires_at is not None and claims.expires_at < now:
        raise InvalidTokenError("expired")
    return claims
