"""
Typed Exception Hierarchy for the Notice Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every refusal the ledger can produce has:
  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. A KIND class attribute (one of the ErrorKind categories below)
  4. Structured DATA attributes (not just a message string)

Exceptions are raised INSIDE a transaction so the transaction rolls back.
Public service operations catch NoticeLedgerError at their boundary and
return an OperationResult carrying ``error_kind`` and ``error_code``;
callers branch on those, never on message text.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    NoticeLedgerError (base)
    |
    +-- ValidationError                     kind=VALIDATION
    |   +-- InvalidAmountError
    |   +-- InvalidPaymentMethodError
    |   +-- ProofRequiredError
    |   +-- InvalidFieldError
    |
    +-- NotFoundError                       kind=NOT_FOUND
    |   +-- NoticeNotFoundError
    |   +-- TaxpayerNotFoundError
    |   +-- UserNotFoundError
    |   +-- ReductionNotFoundError
    |   +-- UnknownCollectorError
    |   +-- NoticeOrTaxpayerMismatchError
    |
    +-- ConflictError                       kind=CONFLICT
    |   +-- OverpaymentError
    |   +-- ReductionTooLargeError
    |   +-- BelowPaidAmountError
    |   +-- StaleStateError
    |   +-- AlreadyPaidError
    |   +-- ReductionAlreadyProcessedError
    |   +-- DuplicateCollectorCodeError
    |   +-- NoticeHasPaymentsError
    |   +-- NoticeLockedError
    |
    +-- AuthError                           kind=AUTH
    |   +-- MissingTokenError
    |   +-- InvalidTokenError
    |   +-- CollectorNotFoundError
    |   +-- InvalidCredentialsError
    |   +-- TxnIdMismatchError
    |
    +-- AccessDeniedError                   kind=ACCESS_DENIED
    |
    +-- RateLimitedError                    kind=RATE_LIMITED
    |
    +-- ImmutableRecordError                kind=CONFLICT
    |
    +-- ConfigurationError (also ValueError)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. NoticeOrTaxpayerMismatchError deliberately carries the SAME message for
   "no such notice" and "notice belongs to another taxpayer" so an external
   caller cannot probe for valid notice numbers.

2. A replayed external payment is NOT an exception.  It is reported as an
   ALREADY_PROCESSED success by the payment service.

3. ReductionAlreadyProcessedError IS an exception: deciding a reduction that
   is no longer PENDING is a conflict.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


class ErrorKind(str, Enum):
    """Category of a refused operation."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTH = "auth"
    ACCESS_DENIED = "access_denied"
    RATE_LIMITED = "rate_limited"


class NoticeLedgerError(Exception):
    """
    Base exception for all notice ledger errors.

    All subclasses must have ``code`` and ``kind`` class attributes.
    """

    code: str = "NOTICE_LEDGER_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION


# Validation errors


class ValidationError(NoticeLedgerError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"
    kind: ErrorKind = ErrorKind.VALIDATION


class InvalidAmountError(ValidationError):
    """Amount is not a positive, finite decimal within bounds."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, value: object, reason: str = "must be a positive decimal"):
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid amount {value!r}: {reason}")


class InvalidPaymentMethodError(ValidationError):
    """Manual payment method is not CASH, TRANSFER or CHEQUE."""

    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, method: object):
        self.method = str(method)
        super().__init__(f"Invalid payment method: {method!r}")


class ProofRequiredError(ValidationError):
    """TRANSFER and CHEQUE payments need a stored proof reference."""

    code: str = "PROOF_REQUIRED"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Proof of payment is required for {method} payments")


class InvalidFieldError(ValidationError):
    """A request field is missing or malformed."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Not-found errors


class NotFoundError(NoticeLedgerError):
    """Referenced entity does not exist (or is outside the caller's view)."""

    code: str = "NOT_FOUND"
    kind: ErrorKind = ErrorKind.NOT_FOUND


class NoticeNotFoundError(NotFoundError):
    """Notice was not found."""

    code: str = "NOTICE_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Notice not found: {reference}")


class TaxpayerNotFoundError(NotFoundError):
    """Taxpayer was not found."""

    code: str = "TAXPAYER_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Taxpayer not found: {reference}")


class UserNotFoundError(NotFoundError):
    """Acting user does not exist."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ReductionNotFoundError(NotFoundError):
    """Reduction request was not found."""

    code: str = "REDUCTION_NOT_FOUND"

    def __init__(self, reduction_id: str):
        self.reduction_id = reduction_id
        super().__init__(f"Reduction request not found: {reduction_id}")


class UnknownCollectorError(NotFoundError):
    """Collector referenced by an administrator does not exist."""

    code: str = "UNKNOWN_COLLECTOR"

    def __init__(self, collector_id: str):
        self.collector_id = collector_id
        super().__init__(f"Collector not found: {collector_id}")


class NoticeOrTaxpayerMismatchError(NotFoundError):
    """
    Notice is unknown OR belongs to a different taxpayer.

    Both causes produce this exact error so the external API cannot be
    used to enumerate valid notice numbers.
    """

    code: str = "NOTICE_OR_TAXPAYER_MISMATCH"

    def __init__(self, notice_number: str):
        self.notice_number = notice_number
        super().__init__("Notice not found or taxpayer mismatch")


# Conflict errors


class ConflictError(NoticeLedgerError):
    """Operation conflicts with the current ledger state."""

    code: str = "CONFLICT"
    kind: ErrorKind = ErrorKind.CONFLICT


class OverpaymentError(ConflictError):
    """Payment exceeds the remaining balance of the notice."""

    code: str = "OVERPAYMENT"

    def __init__(self, notice_id: str, amount: Decimal, remaining: Decimal):
        self.notice_id = notice_id
        self.amount = amount
        self.remaining = remaining
        super().__init__(
            f"Payment of {amount} exceeds the remaining balance {remaining}"
        )


class ReductionTooLargeError(ConflictError):
    """Reduction would drive the notice total below zero."""

    code: str = "REDUCTION_TOO_LARGE"

    def __init__(self, notice_id: str, amount: Decimal, total_amount: Decimal):
        self.notice_id = notice_id
        self.amount = amount
        self.total_amount = total_amount
        super().__init__(
            f"Reduction of {amount} exceeds the notice total {total_amount}"
        )


class BelowPaidAmountError(ConflictError):
    """Reduction would drive the notice total below what is already paid."""

    code: str = "BELOW_PAID_AMOUNT"

    def __init__(self, notice_id: str, new_total: Decimal, amount_paid: Decimal):
        self.notice_id = notice_id
        self.new_total = new_total
        self.amount_paid = amount_paid
        super().__init__(
            f"New total {new_total} would be below the amount already paid "
            f"{amount_paid}"
        )


class StaleStateError(ConflictError):
    """
    Notice changed between reduction request and approval so that the
    reduction is no longer applicable.  The reduction stays PENDING.
    """

    code: str = "STALE_STATE"

    def __init__(self, reduction_id: str, cause: ConflictError):
        self.reduction_id = reduction_id
        self.cause_code = cause.code
        super().__init__(
            f"Reduction {reduction_id} no longer applies to the current "
            f"notice state: {cause}"
        )


class AlreadyPaidError(ConflictError):
    """Notice is already fully paid."""

    code: str = "ALREADY_PAID"

    def __init__(self, notice_number: str):
        self.notice_number = notice_number
        super().__init__(f"Notice {notice_number} is already paid")


class ReductionAlreadyProcessedError(ConflictError):
    """Reduction request is no longer PENDING."""

    code: str = "REDUCTION_ALREADY_PROCESSED"

    def __init__(self, reduction_id: str, status: str):
        self.reduction_id = reduction_id
        self.status = status
        super().__init__(
            f"Reduction request {reduction_id} was already processed ({status})"
        )


class DuplicateCollectorCodeError(ConflictError):
    """Collector code is already in use."""

    code: str = "DUPLICATE_COLLECTOR_CODE"

    def __init__(self, collector_code: str):
        self.collector_code = collector_code
        super().__init__(f"Collector code already in use: {collector_code}")


class NoticeHasPaymentsError(ConflictError):
    """Notices with recorded payments cannot be deleted."""

    code: str = "NOTICE_HAS_PAYMENTS"

    def __init__(self, taxpayer_id: str, year: int, payment_count: int):
        self.taxpayer_id = taxpayer_id
        self.year = year
        self.payment_count = payment_count
        super().__init__(
            f"Cannot delete notices for {year}: {payment_count} payment(s) recorded"
        )


class NoticeLockedError(ConflictError):
    """Notice was locked by billing close-out."""

    code: str = "NOTICE_LOCKED"

    def __init__(self, notice_number: str):
        self.notice_number = notice_number
        super().__init__(f"Notice {notice_number} is locked")


# Authentication errors


class AuthError(NoticeLedgerError):
    """Caller could not be authenticated."""

    code: str = "AUTH_ERROR"
    kind: ErrorKind = ErrorKind.AUTH


class MissingTokenError(AuthError):
    """No bearer token was supplied."""

    code: str = "MISSING_TOKEN"

    def __init__(self) -> None:
        super().__init__("Missing bearer token")


class InvalidTokenError(AuthError):
    """Bearer token is malformed, badly signed, expired or not yet valid."""

    code: str = "INVALID_TOKEN"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid token: {reason}")


class CollectorNotFoundError(AuthError):
    """Token issuer does not name an active collector with a secret."""

    code: str = "COLLECTOR_NOT_FOUND"

    def __init__(self, issuer: str | None):
        self.issuer = issuer
        super().__init__("Collector not authorized")


class InvalidCredentialsError(AuthError):
    """Collector login failed."""

    code: str = "INVALID_CREDENTIALS"

    def __init__(self) -> None:
        super().__init__("Invalid credentials")


class TxnIdMismatchError(AuthError):
    """Token txnId claim does not match the request reference id."""

    code: str = "TXN_ID_MISMATCH"

    def __init__(self, token_txn_id: str, request_txn_id: str):
        self.token_txn_id = token_txn_id
        self.request_txn_id = request_txn_id
        super().__init__("Token txnId does not match the request reference")


# Authorization / throttling


class AccessDeniedError(NoticeLedgerError):
    """Caller is authenticated but not allowed to perform the operation."""

    code: str = "ACCESS_DENIED"
    kind: ErrorKind = ErrorKind.ACCESS_DENIED

    def __init__(self, actor_id: str, reason: str):
        self.actor_id = actor_id
        self.reason = reason
        super().__init__(f"Access denied: {reason}")


class RateLimitedError(NoticeLedgerError):
    """Collector exceeded its request budget for the current window."""

    code: str = "RATE_LIMITED"
    kind: ErrorKind = ErrorKind.RATE_LIMITED

    def __init__(self, collector_key: str, retry_after_ms: int):
        self.collector_key = collector_key
        self.retry_after_ms = retry_after_ms
        super().__init__("Too many requests")


# Immutability


class ImmutableRecordError(NoticeLedgerError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABLE_RECORD"
    kind: ErrorKind = ErrorKind.CONFLICT

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"{entity_type} {entity_id} is append-only: {reason}")


# Configuration


class ConfigurationError(NoticeLedgerError, ValueError):
    """Configuration file or override is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration for {key}: {reason}")
