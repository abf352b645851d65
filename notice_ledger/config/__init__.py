"""
notice_ledger.config -- single public entrypoint for configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other module reads configuration files or environment
    variables.  The composition root (``notice_ledger.container``) calls it
    once and hands the pieces to the components it builds.

Resolution order:
    1. ``path`` argument, else ``NOTICE_LEDGER_CONFIG``, else the packaged
       ``defaults.yaml``.
    2. ``NOTICE_LEDGER_DATABASE_URL`` overrides ``database.url``.
    3. ``NOTICE_LEDGER_ENCRYPTION_KEY`` overrides
       ``collector_api.encryption_key``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``yaml.YAMLError`` -- malformed YAML.
    - ``ConfigurationError`` (a ``ValueError``) -- schema violations.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from notice_ledger.config.loader import load_yaml_file, parse_config
from notice_ledger.config.schema import (
    CollectorApiConfig,
    DatabaseConfig,
    LedgerConfig,
    PaymentRulesConfig,
    RateLimitConfig,
)
from notice_ledger.logging_config import get_logger

logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

ENV_CONFIG_PATH = "NOTICE_LEDGER_CONFIG"
ENV_DATABASE_URL = "NOTICE_LEDGER_DATABASE_URL"
ENV_ENCRYPTION_KEY = "NOTICE_LEDGER_ENCRYPTION_KEY"


def get_active_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> LedgerConfig:
    """Load, override and validate the active configuration."""
    env = os.environ if environ is None else environ

    if path is None:
        path = env.get(ENV_CONFIG_PATH) or DEFAULT_CONFIG_PATH
    path = Path(path)

    data = load_yaml_file(path)

    database = dict(data.get("database") or {})
    if env.get(ENV_DATABASE_URL):
        database["url"] = env[ENV_DATABASE_URL]
    data["database"] = database

    collector_api = dict(data.get("collector_api") or {})
    if env.get(ENV_ENCRYPTION_KEY):
        collector_api["encryption_key"] = env[ENV_ENCRYPTION_KEY]
    data["collector_api"] = collector_api

    config = parse_config(data)
    logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "dialect": config.database.url.split(":", 1)[0],
            "rate_limit_max_requests": config.collector_api.rate_limit.max_requests,
            "has_encryption_key": config.collector_api.encryption_key is not None,
        },
    )
    return config


__all__ = [
    "get_active_config",
    "load_yaml_file",
    "parse_config",
    "CollectorApiConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "PaymentRulesConfig",
    "RateLimitConfig",
    "DEFAULT_CONFIG_PATH",
]
