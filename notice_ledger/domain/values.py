"""
Values -- parsing and validation of monetary input.

Responsibility:
    Turns caller-supplied amounts (decimal strings, ints, Decimals) into
    exact, positive, quantized ``Decimal`` values, and epoch-millisecond
    timestamps into aware datetimes.  Floats are refused outright: they are
    never exact.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.

Failure modes:
    - InvalidAmountError for non-numeric, non-finite, non-positive,
      over-precise or out-of-range amounts.
    - InvalidFieldError for timestamps that do not map to a valid instant,
      malformed identifiers and text fields of the wrong length.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from uuid import UUID

from notice_ledger.db.types import MONEY_DECIMAL_PLACES, round_money
from notice_ledger.exceptions import InvalidAmountError, InvalidFieldError

ZERO = Decimal("0")


def parse_amount(
    value: str | int | Decimal,
    *,
    max_amount: Decimal | None = None,
    decimal_places: int = MONEY_DECIMAL_PLACES,
) -> Decimal:
    """
    Parse a strictly positive monetary amount.

    Accepts ``Decimal``, ``int`` and decimal strings.  A single comma is
    accepted as decimal separator ("1500,50").  The result is quantized to
    ``decimal_places``; input carrying more precision is refused rather than
    silently rounded.

    Raises:
        InvalidAmountError: if the value is not an exact positive amount
            within ``max_amount``.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "must be an exact decimal, not a float")

    if isinstance(value, str):
        text = value.strip().replace(" ", "")
        if text.count(",") == 1 and "." not in text:
            text = text.replace(",", ".")
        if not text:
            raise InvalidAmountError(value, "is empty")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise InvalidAmountError(value, "is not a decimal number") from None
    elif isinstance(value, (int, Decimal)):
        amount = Decimal(value)
    else:
        raise InvalidAmountError(value, "unsupported type")

    if not amount.is_finite():
        raise InvalidAmountError(value, "must be finite")
    if amount <= ZERO:
        raise InvalidAmountError(value, "must be greater than zero")

    try:
        quantized = round_money(amount, decimal_places)
    except InvalidOperation:
        raise InvalidAmountError(value, "is out of range") from None
    if quantized != amount:
        raise InvalidAmountError(
            value, f"has more than {decimal_places} decimal places"
        )
    if max_amount is not None and quantized > max_amount:
        raise InvalidAmountError(value, f"exceeds the maximum of {max_amount}")
    return quantized


def parse_epoch_millis(value: object, field: str = "paidAtEpochMillis") -> datetime:
    """
    Convert epoch milliseconds into an aware UTC datetime.

    Raises:
        InvalidFieldError: if the value is not a positive integer or does
            not correspond to a representable instant.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFieldError(field, "must be an integer number of milliseconds")
    if value <= 0:
        raise InvalidFieldError(field, "must be positive")
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        raise InvalidFieldError(field, "is not a valid instant") from None


def as_uuid(value: object, field: str) -> UUID:
    """Coerce an identifier supplied by a caller into a UUID."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidFieldError(field, "is not a valid identifier") from None


def require_text(
    value: object,
    field: str,
    *,
    min_length: int = 1,
    max_length: int | None = None,
) -> str:
    """Strip a text field and check its length."""
    if not isinstance(value, str):
        raise InvalidFieldError(field, "must be a string")
    text = value.strip()
    if len(text) < min_length:
        raise InvalidFieldError(field, f"must be at least {min_length} characters")
    if max_length is not None and len(text) > max_length:
        raise InvalidFieldError(field, f"must be at most {max_length} characters")
    return text
