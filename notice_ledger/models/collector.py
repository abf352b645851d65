"""
Module: notice_ledger.models.collector
Responsibility: ORM persistence for external collectors and the call log of
    every request they make.
Architecture position: Ledger > Models.  May import from db/ only.

Invariants enforced:
    - Collector.code is UNIQUE; it is the ``iss`` claim of collector tokens.
    - Collector.jwt_secret is stored Fernet-encrypted (see
      gateway/secrets.py).  Legacy plaintext secrets are tolerated until
      ``encrypt_existing_secrets`` migrates them.
    - CollectorApiLog is append-only: one row per inbound call, whatever
      the outcome, never updated or deleted (db/immutability.py).

Audit relevance:
    CollectorApiLog is the forensic record of the external API.  It keeps
    the full request and response payloads (never the login password) so
    that any call can be replayed or investigated.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from notice_ledger.db.base import Base, TrackedBase, UUIDString


class CollectorStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class ApiLogStatus(str, Enum):
    """Outcome recorded for an external call."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    IGNORED = "IGNORED"


class Collector(TrackedBase):
    """An external agent authorized to report payments."""

    __tablename__ = "collectors"

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'SUSPENDED')",
            name="ck_collectors_valid_status",
        ),
    )

    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=CollectorStatus.ACTIVE.value
    )
    jwt_secret: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<Collector {self.code} status={self.status}>"

    @property
    def is_active(self) -> bool:
        return self.status == CollectorStatus.ACTIVE.value


class CollectorApiLog(Base):
    """One inbound external API call. Append-only."""

    __tablename__ = "collector_api_logs"

    __table_args__ = (
        CheckConstraint(
            "status IN ('SUCCESS', 'FAILED', 'IGNORED')",
            name="ck_collector_api_logs_valid_status",
        ),
        Index("ix_collector_api_logs_created", "created_at"),
        Index("ix_collector_api_logs_collector", "collector_id"),
        Index("ix_collector_api_logs_status", "status"),
    )

    collector_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("collectors.id"), nullable=True
    )
    endpoint: Mapped[str] = mapped_column(String(50), nullable=False)
    notice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    request_txn_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    jwt_txn_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    jwt_issuer: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    response_payload: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<CollectorApiLog {self.endpoint} {self.status} at {self.created_at}>"
