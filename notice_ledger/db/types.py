"""
Module: notice_ledger.db.types
Responsibility: Column types and helpers for exact monetary amounts.
Architecture position: Ledger > DB.  May be imported by every layer.
    MUST NOT import from any other notice_ledger module.

Invariants enforced:
    - No floats anywhere in the ledger.  Amounts are Decimal end to end.
    - ExactDecimal round-trips a Decimal without loss on every supported
      backend: native NUMERIC on PostgreSQL, canonical decimal text on
      SQLite (whose NUMERIC affinity would otherwise go through float).
    - ExactDecimal never rounds on write: a value with more than
      MONEY_DECIMAL_PLACES places is refused with ValueError.
"""

from datetime import timezone
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import DateTime, Numeric, String
from sqlalchemy.types import TypeDecorator

# Monetary precision: 38 digits total, 2 decimal places
MONEY_PRECISION = 38
MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


class ExactDecimal(TypeDecorator):
    """
    Decimal column that never passes through binary floating point.

    Guarantees:
        - PostgreSQL: NUMERIC(38, 2), Decimal in and out.
        - SQLite: VARCHAR holding ``str(Decimal)``; Decimal on read.
    """

    impl = Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(
            Numeric(MONEY_PRECISION, MONEY_DECIMAL_PLACES, asdecimal=True)
        )

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value)
        if round_money(value) != value:
            raise ValueError(
                f"amount {value} has more than {MONEY_DECIMAL_PLACES} decimal places"
            )
        value = round_money(value)
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return round_money(Decimal(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the ledger precision.

    This is the only sanctioned rounding function for amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "0"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware timestamp on every backend.

    SQLite stores DateTime values without an offset; values are written as
    UTC and re-tagged as UTC when read back.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime values are not accepted")
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
