"""
CollectorGateway -- authenticated entry points for external collectors.

Responsibility:
    Authenticates each call with the collector's bearer token, applies the
    per-collector rate limit, dispatches to the ledger services and maps
    the outcome to an HTTP status and JSON body.  Every call, successful or
    not, leaves one CollectorApiLog row.

Architecture position:
    Ledger > Gateway.  Called by the HTTP surface (``notice_ledger.api``);
    calls PaymentService, NoticeSelector and CollectorCallLog.

Authentication order:
    1. ``Authorization: Bearer <jwt>`` present       -> MissingTokenError
    2. Unverified ``iss`` claim present               -> InvalidTokenError
    3. ``iss`` names an ACTIVE collector with secret  -> CollectorNotFoundError
    4. Signature and time claims verify               -> InvalidTokenError
    5. Collector within its request budget            -> RateLimitedError
    6. Token ``txnId`` matches request ``referenceId``-> TxnIdMismatchError

Invariants enforced:
    - Unconditional logging: the CollectorApiLog row is written in its own
      transaction after the call's transaction has ended.
    - A rate-limited call never reaches PaymentService.
    - Error details never leak beyond ``{ok: false, message}``.

Failure modes:
    Refusals are returned as GatewayResponse (400 / 401 / 403 / 429).
    Unexpected exceptions are logged as FAILED and re-raised.
"""

import hmac
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping
from uuid import UUID

from sqlalchemy import or_, select

from notice_ledger.config.schema import CollectorApiConfig, PaymentRulesConfig
from notice_ledger.db.engine import Database
from notice_ledger.domain.clock import Clock
from notice_ledger.domain.results import OperationResult, OperationStatus
from notice_ledger.domain.values import require_text
from notice_ledger.exceptions import (
    CollectorNotFoundError,
    ErrorKind,
    InvalidCredentialsError,
    InvalidFieldError,
    InvalidTokenError,
    NoticeLedgerError,
    NoticeNotFoundError,
    NoticeOrTaxpayerMismatchError,
    RateLimitedError,
    TxnIdMismatchError,
)
from notice_ledger.gateway.rate_limit import SlidingWindowRateLimiter
from notice_ledger.gateway.secrets import SecretCipher
from notice_ledger.gateway.tokens import (
    TokenClaims,
    extract_bearer,
    issue_token,
    peek_claims,
    verify_token,
)
from notice_ledger.logging_config import get_logger
from notice_ledger.models.collector import ApiLogStatus, Collector
from notice_ledger.selectors.notice_selector import NoticeSelector, NoticeView
from notice_ledger.services.collector_log_service import CallRecord, CollectorCallLog
from notice_ledger.services.payment_service import PaymentService

logger = get_logger("gateway.collector")

ENDPOINT_LOGIN = "login"
ENDPOINT_PAYMENT = "payment"
ENDPOINT_LOOKUP = "lookup"
ENDPOINT_TAX_DETAILS = "tax_details"

PASSWORD_MIN_LENGTH = 6

HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 400,
    ErrorKind.CONFLICT: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.ACCESS_DENIED: 403,
    ErrorKind.RATE_LIMITED: 429,
}

INTERNAL_ERROR_MESSAGE = "Internal error"


@dataclass(frozen=True)
class GatewayResponse:
    """HTTP status plus JSON body for one external call."""

    http_status: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AuthenticatedCollector:
    collector_id: UUID
    code: str
    name: str
    claims: TokenClaims


@dataclass
class _Call:
    """What is known about the call so far; filled in as it progresses."""

    endpoint: str
    request_payload: Any = None
    collector_id: UUID | None = None
    notice_number: str | None = None
    request_txn_id: str | None = None
    jwt_txn_id: str | None = None
    jwt_issuer: str | None = None


@dataclass(frozen=True)
class _Outcome:
    response: GatewayResponse
    status: ApiLogStatus
    message: str
    logged_response: dict[str, Any] | None = None


class CollectorGateway:
    """Login, payment, lookup and tax-details calls from collectors."""

    def __init__(
        self,
        database: Database,
        clock: Clock,
        cipher: SecretCipher,
        rate_limiter: SlidingWindowRateLimiter,
        payments: PaymentService,
        call_log: CollectorCallLog,
        api_config: CollectorApiConfig,
        rules: PaymentRulesConfig,
    ):
        self._database = database
        self._clock = clock
        self._cipher = cipher
        self._rate_limiter = rate_limiter
        self._payments = payments
        self._call_log = call_log
        self._api_config = api_config
        self._rules = rules

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def login(self, body: Any) -> GatewayResponse:
        """
        Exchange collector credentials for a short-lived token.

        The password is the collector's secret.  The token is signed with
        that same secret and carries ``{iss: code, iat, exp}``.
        """
        call = _Call(endpoint=ENDPOINT_LOGIN, request_payload=_login_log_payload(body))
        return self._execute(call, lambda: self._login(call, body))

    def submit_payment(self, authorization: str | None, body: Any) -> GatewayResponse:
        """Report a payment; idempotent on ``referenceId``."""
        call = _Call(endpoint=ENDPOINT_PAYMENT, request_payload=body)
        if isinstance(body, Mapping):
            call.notice_number = _optional_text(body.get("noticeNumber"))
            call.request_txn_id = _optional_text(body.get("referenceId"))
        return self._execute(call, lambda: self._submit_payment(call, authorization, body))

    def lookup_notice(self, authorization: str | None, notice_number: Any) -> GatewayResponse:
        """Notice status, taxpayer contact and recorded payments."""
        call = _Call(
            endpoint=ENDPOINT_LOOKUP,
            request_payload={"noticeNumber": notice_number},
            notice_number=_optional_text(notice_number),
        )
        return self._execute(call, lambda: self._lookup(call, authorization, notice_number))

    def tax_details(self, authorization: str | None, body: Any) -> GatewayResponse:
        """Full taxpayer and notice details, matched on notice and taxpayer code."""
        call = _Call(endpoint=ENDPOINT_TAX_DETAILS, request_payload=body)
        if isinstance(body, Mapping):
            call.notice_number = _optional_text(body.get("noticeNumber"))
        return self._execute(call, lambda: self._tax_details(call, authorization, body))

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def authenticate(
        self,
        authorization: str | None,
        request_txn_id: str | None = None,
        call: _Call | None = None,
    ) -> AuthenticatedCollector:
        """Resolve and verify the calling collector, then charge its budget."""
        token = extract_bearer(authorization)
        unverified = peek_claims(token)
        if call is not None:
            call.jwt_issuer = unverified.issuer
            call.jwt_txn_id = unverified.txn_id
        if unverified.issuer is None:
            raise InvalidTokenError("missing issuer")

        with self._database.transaction() as session:
            collector = session.execute(
                select(Collector).where(Collector.code == unverified.issuer)
            ).scalar_one_or_none()
            if collector is None or not collector.is_active or not collector.jwt_secret:
                raise CollectorNotFoundError(unverified.issuer)
            collector_id = collector.id
            code = collector.code
            name = collector.name
            stored_secret = collector.jwt_secret

        secret = self._cipher.reveal(stored_secret)
        claims = verify_token(
            token, secret, self._clock, self._api_config.clock_skew_seconds
        )
        if call is not None:
            call.collector_id = collector_id

        self._rate_limiter.hit(str(collector_id))

        if (
            request_txn_id is not None
            and claims.txn_id is not None
            and claims.txn_id != request_txn_id
        ):
            raise TxnIdMismatchError(claims.txn_id, request_txn_id)

        return AuthenticatedCollector(
            collector_id=collector_id, code=code, name=name, claims=claims
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _login(self, call: _Call, body: Any) -> _Outcome:
        if not isinstance(body, Mapping):
            raise InvalidFieldError("body", "must be a JSON object")
        password = body.get("password")
        if not isinstance(password, str) or len(password) < PASSWORD_MIN_LENGTH:
            raise InvalidFieldError(
                "password", f"must be at least {PASSWORD_MIN_LENGTH} characters"
            )
        email = _optional_text(body.get("email"))
        code = _optional_text(body.get("code"))
        if email is None and code is None:
            raise InvalidFieldError("email", "email or code is required")

        identifier = (email or code).lower()
        self._rate_limiter.hit(f"login:{identifier}")

        with self._database.transaction() as session:
            query = select(Collector)
            if email is not None and code is not None:
                query = query.where(or_(Collector.email == email, Collector.code == code))
            elif email is not None:
                query = query.where(Collector.email == email)
            else:
                query = query.where(Collector.code == code)
            collector = session.execute(query.limit(1)).scalar_one_or_none()
            if collector is None:
                raise InvalidCredentialsError()
            call.collector_id = collector.id
            call.jwt_issuer = collector.code
            if not collector.is_active or not collector.jwt_secret:
                raise InvalidCredentialsError()
            profile = {
                "id": str(collector.id),
                "code": collector.code,
                "name": collector.name,
                "email": collector.email,
                "phone": collector.phone,
            }
            stored_secret = collector.jwt_secret

        secret = self._cipher.reveal(stored_secret)
        if not hmac.compare_digest(password.encode("utf-8"), secret.encode("utf-8")):
            raise InvalidCredentialsError()

        ttl = self._api_config.token_ttl_seconds
        token = issue_token(profile["code"], secret, self._clock, ttl)
        body_out = {"ok": True, "token": token, "expiresIn": ttl, "collector": profile}
        return _Outcome(
            response=GatewayResponse(200, body_out),
            status=ApiLogStatus.SUCCESS,
            message="Collector authenticated",
            logged_response={"ok": True, "expiresIn": ttl, "collector": profile},
        )

    def _submit_payment(self, call: _Call, authorization: str | None, body: Any) -> _Outcome:
        collector = self.authenticate(authorization, call.request_txn_id, call)
        if not isinstance(body, Mapping):
            raise InvalidFieldError("body", "must be a JSON object")

        result = self._payments.apply_external_payment(
            body.get("noticeNumber"),
            body.get("taxpayerCode"),
            body.get("amount"),
            body.get("referenceId"),
            body.get("paidAtEpochMillis"),
            collector.collector_id,
        )
        return self._payment_outcome(result)

    def _payment_outcome(self, result: OperationResult) -> _Outcome:
        if result.status == OperationStatus.APPLIED:
            body = {"ok": True, "paymentId": result.details["paymentId"]}
            return _Outcome(GatewayResponse(200, body), ApiLogStatus.SUCCESS, result.message)
        if result.status == OperationStatus.ALREADY_PROCESSED:
            body = {
                "ok": True,
                "paymentId": result.details["paymentId"],
                "message": result.message,
            }
            return _Outcome(GatewayResponse(200, body), ApiLogStatus.IGNORED, result.message)
        http_status = HTTP_STATUS_BY_KIND.get(result.error_kind, 400)
        body = {"ok": False, "message": result.message}
        return _Outcome(GatewayResponse(http_status, body), ApiLogStatus.FAILED, result.message)

    def _lookup(self, call: _Call, authorization: str | None, notice_number: Any) -> _Outcome:
        self.authenticate(authorization, call=call)
        number = require_text(
            notice_number,
            "noticeNumber",
            min_length=self._rules.notice_number_min_length,
            max_length=100,
        )
        with self._database.transaction() as session:
            view = NoticeSelector(session).get_by_number(number, with_payments=True)
        if view is None:
            raise NoticeNotFoundError(number)

        taxpayer = view.taxpayer
        body = {
            "ok": True,
            "notice": {
                "status": view.status,
                "totalAmount": str(view.total_amount),
                "amountPaid": str(view.amount_paid),
                "noticeNumber": view.number,
            },
            "taxpayer": {
                "id": str(taxpayer.taxpayer_id),
                "code": taxpayer.code,
                "name": taxpayer.name,
                "phone": taxpayer.phone,
                "email": taxpayer.email,
                "commune": taxpayer.commune,
                "neighborhood": taxpayer.neighborhood,
            },
            "payments": [
                {
                    "id": str(payment.payment_id),
                    "referenceId": payment.reference_id,
                    "amount": str(payment.amount),
                    "method": payment.method,
                    "paidAt": payment.paid_at.isoformat(),
                }
                for payment in view.payments
            ],
        }
        return _Outcome(GatewayResponse(200, body), ApiLogStatus.SUCCESS, "Payment retrieved")

    def _tax_details(self, call: _Call, authorization: str | None, body: Any) -> _Outcome:
        self.authenticate(authorization, call=call)
        if not isinstance(body, Mapping):
            raise InvalidFieldError("body", "must be a JSON object")
        number = require_text(
            body.get("noticeNumber"),
            "noticeNumber",
            min_length=self._rules.notice_number_min_length,
            max_length=100,
        )
        taxpayer_code = require_text(
            body.get("taxpayerCode"),
            "taxpayerCode",
            min_length=self._rules.taxpayer_code_min_length,
            max_length=50,
        )
        with self._database.transaction() as session:
            view = NoticeSelector(session).get_by_number(number)
        if view is None or view.taxpayer.code != taxpayer_code:
            raise NoticeOrTaxpayerMismatchError(number)

        body_out = _tax_details_payload(view)
        return _Outcome(GatewayResponse(200, body_out), ApiLogStatus.SUCCESS, "Tax details retrieved")

    # ------------------------------------------------------------------
    # Call bookkeeping
    # ------------------------------------------------------------------

    def _execute(self, call: _Call, handler: Callable[[], _Outcome]) -> GatewayResponse:
        try:
            outcome = handler()
        except NoticeLedgerError as exc:
            outcome = self._refusal(exc)
        except Exception:
            logger.exception("collector_call_crashed", extra={"endpoint": call.endpoint})
            self._record(
                call,
                _Outcome(
                    GatewayResponse(500, {"ok": False, "message": INTERNAL_ERROR_MESSAGE}),
                    ApiLogStatus.FAILED,
                    INTERNAL_ERROR_MESSAGE,
                ),
            )
            raise

        self._record(call, outcome)
        logger.info(
            "collector_call_completed",
            extra={
                "endpoint": call.endpoint,
                "call_status": outcome.status.value,
                "http_status": outcome.response.http_status,
            },
        )
        return outcome.response

    def _refusal(self, exc: NoticeLedgerError) -> _Outcome:
        http_status = HTTP_STATUS_BY_KIND.get(exc.kind, 400)
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            headers["Retry-After"] = str(max(1, -(-exc.retry_after_ms // 1000)))
        logger.warning(
            "collector_call_refused",
            extra={"error_code": exc.code, "error_kind": exc.kind.value},
        )
        return _Outcome(
            GatewayResponse(http_status, {"ok": False, "message": str(exc)}, headers),
            ApiLogStatus.FAILED,
            str(exc),
        )

    def _record(self, call: _Call, outcome: _Outcome) -> None:
        response_payload = outcome.logged_response
        if response_payload is None:
            response_payload = outcome.response.body
        self._call_log.record(
            CallRecord(
                endpoint=call.endpoint,
                status=outcome.status,
                message=outcome.message,
                collector_id=call.collector_id,
                notice_number=call.notice_number,
                request_txn_id=call.request_txn_id,
                jwt_txn_id=call.jwt_txn_id,
                jwt_issuer=call.jwt_issuer,
                request_payload=call.request_payload,
                response_payload=response_payload,
            )
        )


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _login_log_payload(body: Any) -> dict[str, Any]:
    """Login request as logged: never the password itself."""
    if not isinstance(body, Mapping):
        return {"hasPassword": False}
    return {
        "email": _optional_text(body.get("email")),
        "code": _optional_text(body.get("code")),
        "hasPassword": bool(body.get("password")),
    }


def _tax_details_payload(view: NoticeView) -> dict[str, Any]:
    taxpayer = view.taxpayer
    return {
        "ok": True,
        "taxpayer": {
            "code": taxpayer.code,
            "name": taxpayer.name,
            "category": taxpayer.category,
            "phone": taxpayer.phone,
            "email": taxpayer.email,
            "address": taxpayer.address,
            "commune": taxpayer.commune,
            "neighborhood": taxpayer.neighborhood,
        },
        "notice": {
            "number": view.number,
            "year": view.year,
            "periodStart": view.period_start.isoformat() if view.period_start else None,
            "periodEnd": view.period_end.isoformat() if view.period_end else None,
            "status": view.status,
            "totalAmount": str(view.total_amount),
            "amountPaid": str(view.amount_paid),
        },
    }
