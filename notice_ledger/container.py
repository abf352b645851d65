"""
notice_ledger.container -- composition root.

Responsibility:
    Creates every long-lived object exactly once (Database, clock, secret
    cipher, rate limiter, services, gateway) and wires them together.  No
    service constructs another service internally.

Architecture position:
    Top of the package.  Only ``build_container`` reads configuration and
    creates engines; the HTTP surface receives the finished container.

Failure modes:
    - ConfigurationError when no collector secret encryption key is
      configured.

Usage:
    from notice_ledger.config import get_active_config
    from notice_ledger.container import build_container

    container = build_container(get_active_config())
    container.payments.apply_manual_payment(...)
"""

from __future__ import annotations

from dataclasses import dataclass

from notice_ledger.config.schema import LedgerConfig
from notice_ledger.db.engine import Database
from notice_ledger.domain.clock import Clock, SystemClock
from notice_ledger.exceptions import ConfigurationError
from notice_ledger.gateway.collector_gateway import CollectorGateway
from notice_ledger.gateway.rate_limit import SlidingWindowRateLimiter
from notice_ledger.gateway.secrets import SecretCipher
from notice_ledger.logging_config import get_logger
from notice_ledger.services.collector_admin_service import CollectorAdminService
from notice_ledger.services.collector_log_service import CollectorCallLog
from notice_ledger.services.notice_admin_service import NoticeAdminService
from notice_ledger.services.payment_service import PaymentService
from notice_ledger.services.reduction_service import ReductionWorkflow

logger = get_logger("container")


@dataclass(frozen=True)
class ServiceContainer:
    """Every service of one running ledger."""

    config: LedgerConfig
    database: Database
    clock: Clock
    cipher: SecretCipher
    rate_limiter: SlidingWindowRateLimiter
    call_log: CollectorCallLog
    payments: PaymentService
    reductions: ReductionWorkflow
    collector_admin: CollectorAdminService
    notice_admin: NoticeAdminService
    gateway: CollectorGateway

    def close(self) -> None:
        self.database.dispose()


def build_container(
    config: LedgerConfig,
    clock: Clock | None = None,
    database: Database | None = None,
) -> ServiceContainer:
    """
    Build the service graph from configuration.

    Args:
        config: Loaded configuration (see ``get_active_config``).
        clock: Optional clock; default SystemClock.
        database: Optional pre-built Database (tests share one per case).
    """
    api = config.collector_api
    if not api.encryption_key:
        raise ConfigurationError(
            "collector_api.encryption_key",
            "required (set NOTICE_LEDGER_ENCRYPTION_KEY)",
        )

    clock = clock or SystemClock()
    if database is None:
        db = config.database
        database = Database.from_url(
            db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
            pool_timeout=db.pool_timeout,
            busy_timeout=db.busy_timeout,
        )

    cipher = SecretCipher(api.encryption_key)
    rate_limiter = SlidingWindowRateLimiter(
        api.rate_limit.window_ms, api.rate_limit.max_requests, clock
    )
    call_log = CollectorCallLog(database, clock)
    payments = PaymentService(database, clock, config.payment_rules)

    container = ServiceContainer(
        config=config,
        database=database,
        clock=clock,
        cipher=cipher,
        rate_limiter=rate_limiter,
        call_log=call_log,
        payments=payments,
        reductions=ReductionWorkflow(database, clock, config.payment_rules),
        collector_admin=CollectorAdminService(
            database, clock, cipher, secret_bytes=api.secret_bytes
        ),
        notice_admin=NoticeAdminService(database, clock),
        gateway=CollectorGateway(
            database=database,
            clock=clock,
            cipher=cipher,
            rate_limiter=rate_limiter,
            payments=payments,
            call_log=call_log,
            api_config=api,
            rules=config.payment_rules,
        ),
    )
    logger.info(
        "container_built",
        extra={"dialect": database.dialect_name, "rate_window_ms": api.rate_limit.window_ms},
    )
    return container
