"""
Module: notice_ledger.models.user
Responsibility: ORM persistence for internal users (cashiers, agents,
    administrators) and their direct supervisory edge.
Architecture position: Ledger > Models.  May import from db/ and domain/.

Invariants enforced:
    - role is one of the Role values (DB check constraint).
    - supervisor_id is a single nullable edge; authorization compares this
      edge directly and never walks the chain.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from notice_ledger.db.base import TrackedBase, UUIDString
from notice_ledger.domain.access import Actor, Role


class User(TrackedBase):
    """An internal user of the tax administration."""

    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "role IN ('SUPER_ADMIN', 'ADMIN', 'CASHIER', 'AGENT', 'AUDITOR')",
            name="ck_users_valid_role",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    commune: Mapped[str | None] = mapped_column(String(200), nullable=True)
    supervisor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"

    def to_actor(self) -> Actor:
        return Actor(
            user_id=self.id,
            role=Role(self.role),
            commune=self.commune,
            supervisor_id=self.supervisor_id,
        )
