"""
YAML loader for the ledger configuration.

Parses a YAML document into the frozen dataclasses of ``schema.py``.

Rules:
  * Unknown keys are refused (a typo must not silently fall back to a
    default).
  * Integers must be integers and positive; amounts are read as strings
    or integers and converted to ``Decimal`` (never through float).
  * ``payment_rules.decimal_places`` must equal the stored column
    precision (MONEY_DECIMAL_PLACES).
  * Malformed YAML -> ``yaml.YAMLError`` propagates.
  * Every other problem raises ``ConfigurationError`` naming the key.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from notice_ledger.config.schema import (
    CollectorApiConfig,
    DatabaseConfig,
    LedgerConfig,
    PaymentRulesConfig,
    RateLimitConfig,
)
from notice_ledger.db.types import MONEY_DECIMAL_PLACES
from notice_ledger.exceptions import ConfigurationError

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file.

    Raises:
        FileNotFoundError: if the path does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(key, "must be a mapping")
    return dict(value)


def _check_keys(prefix: str, data: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(prefix, f"unknown keys {sorted(unknown)}")


def _positive_int(prefix: str, data: dict[str, Any], key: str) -> None:
    if key not in data:
        return
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{prefix}.{key}", "must be a positive integer")


def _field_names(cls: type) -> set[str]:
    return {f.name for f in fields(cls)}


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    _check_keys("database", data, _field_names(DatabaseConfig))
    url = data.get("url")
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "is required")
    for key in ("pool_size", "max_overflow", "pool_timeout", "busy_timeout"):
        _positive_int("database", data, key)
    return DatabaseConfig(**data)


def parse_rate_limit(data: dict[str, Any]) -> RateLimitConfig:
    prefix = "collector_api.rate_limit"
    _check_keys(prefix, data, _field_names(RateLimitConfig))
    _positive_int(prefix, data, "window_ms")
    _positive_int(prefix, data, "max_requests")
    return RateLimitConfig(**data)


def parse_collector_api(data: dict[str, Any]) -> CollectorApiConfig:
    _check_keys("collector_api", data, _field_names(CollectorApiConfig))
    for key in ("token_ttl_seconds", "clock_skew_seconds", "secret_bytes"):
        _positive_int("collector_api", data, key)
    key = data.get("encryption_key")
    if key is not None and (not isinstance(key, str) or not key.strip()):
        raise ConfigurationError("collector_api.encryption_key", "must be a string")
    rate_limit = parse_rate_limit(_section(data, "rate_limit"))
    values = {k: v for k, v in data.items() if k != "rate_limit"}
    return CollectorApiConfig(rate_limit=rate_limit, **values)


def parse_payment_rules(data: dict[str, Any]) -> PaymentRulesConfig:
    prefix = "payment_rules"
    _check_keys(prefix, data, _field_names(PaymentRulesConfig))
    for key in (
        "decimal_places",
        "reference_min_length",
        "reference_max_length",
        "notice_number_min_length",
        "taxpayer_code_min_length",
    ):
        _positive_int(prefix, data, key)
    if data.get("decimal_places", MONEY_DECIMAL_PLACES) != MONEY_DECIMAL_PLACES:
        # Amount columns hold exactly MONEY_DECIMAL_PLACES places.
        raise ConfigurationError(
            f"{prefix}.decimal_places", f"must be {MONEY_DECIMAL_PLACES}"
        )

    if "max_external_amount" in data:
        raw = data["max_external_amount"]
        if isinstance(raw, (bool, float)):
            raise ConfigurationError(
                f"{prefix}.max_external_amount", "must be a string or integer"
            )
        try:
            amount = Decimal(str(raw))
        except InvalidOperation:
            raise ConfigurationError(
                f"{prefix}.max_external_amount", "is not a decimal"
            ) from None
        if not amount.is_finite() or amount <= 0:
            raise ConfigurationError(f"{prefix}.max_external_amount", "must be positive")
        data["max_external_amount"] = amount

    rules = PaymentRulesConfig(**data)
    if rules.reference_min_length > rules.reference_max_length:
        raise ConfigurationError(
            f"{prefix}.reference_min_length", "exceeds reference_max_length"
        )
    return rules


def parse_config(data: Mapping[str, Any]) -> LedgerConfig:
    """Build a ``LedgerConfig`` from an already-loaded mapping."""
    _check_keys(
        "<root>", data, {"database", "collector_api", "payment_rules", "log_level"}
    )
    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ConfigurationError("log_level", f"unknown level {log_level!r}")

    return LedgerConfig(
        database=parse_database(_section(data, "database")),
        collector_api=parse_collector_api(_section(data, "collector_api")),
        payment_rules=parse_payment_rules(_section(data, "payment_rules")),
        log_level=log_level,
    )
