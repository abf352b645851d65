#!/usr/bin/env python3
"""
Encrypt collector secrets that are still stored in plaintext.

Usage:
    python scripts/encrypt_collector_secrets.py
    python scripts/encrypt_collector_secrets.py --config ledger.yaml

The active configuration is read the same way the API reads it
(NOTICE_LEDGER_CONFIG, NOTICE_LEDGER_DATABASE_URL,
NOTICE_LEDGER_ENCRYPTION_KEY).  The encryption key must be set.

Secrets that are already encrypted are left alone, so the script can be
run again safely after new collectors were imported in plaintext.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from notice_ledger.config import get_active_config
from notice_ledger.container import build_container
from notice_ledger.exceptions import ConfigurationError
from notice_ledger.gateway.secrets import encrypt_existing_secrets
from notice_ledger.logging_config import configure_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Encrypt plaintext collector secrets in place"
    )
    parser.add_argument(
        "--config", type=Path, help="YAML configuration file (default: active config)"
    )
    args = parser.parse_args(argv)

    try:
        config = get_active_config(args.config)
        configure_logging(level=config.log_level)
        container = build_container(config)
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        migrated = encrypt_existing_secrets(container.database, container.cipher)
    finally:
        container.close()

    print(f"Encrypted {migrated} collector secret(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
