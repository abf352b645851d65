"""
Configuration schema.

Typed, frozen views of the YAML configuration.  The loader parses the file
into these types; nothing else in the package reads YAML or environment
variables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``Database.from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30
    busy_timeout: int = 30


@dataclass(frozen=True)
class RateLimitConfig:
    """Per-collector request budget."""

    window_ms: int = 60_000
    max_requests: int = 100


@dataclass(frozen=True)
class CollectorApiConfig:
    """Bearer-token and secret-storage settings of the collector API."""

    encryption_key: str | None = None
    token_ttl_seconds: int = 300
    clock_skew_seconds: int = 60
    secret_bytes: int = 32
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)


@dataclass(frozen=True)
class PaymentRulesConfig:
    """Bounds on caller-supplied payment and reduction input."""

    decimal_places: int = 2
    max_external_amount: Decimal = Decimal("999999999999")
    reference_min_length: int = 1
    reference_max_length: int = 100
    notice_number_min_length: int = 3
    taxpayer_code_min_length: int = 2


@dataclass(frozen=True)
class LedgerConfig:
    """Root configuration object."""

    database: DatabaseConfig
    collector_api: CollectorApiConfig = field(default_factory=CollectorApiConfig)
    payment_rules: PaymentRulesConfig = field(default_factory=PaymentRulesConfig)
    log_level: str = "INFO"
