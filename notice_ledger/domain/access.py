"""
Access rules -- who may touch which taxpayer's notices.

Responsibility:
    Role capabilities and jurisdiction scoping, evaluated on a plain
    ``Actor`` snapshot so the rules stay free of I/O.

    - SUPER_ADMIN is unscoped; every other role only sees taxpayers of its
      own commune.
    - Administrators (SUPER_ADMIN, ADMIN) may self-apply reductions and
      review reductions of their direct reports.
    - Manual payments may be recorded by administrators and cashiers.
    - Approval authority is the requester's DIRECT supervisor only; the
      chain above it is never walked.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from notice_ledger.exceptions import AccessDeniedError


class Role(str, Enum):
    """User roles."""

    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    CASHIER = "CASHIER"
    AGENT = "AGENT"
    AUDITOR = "AUDITOR"


ADMINISTRATOR_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})
MANUAL_PAYMENT_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.CASHIER})


@dataclass(frozen=True)
class Actor:
    """The acting user, as seen by the access rules."""

    user_id: UUID
    role: Role
    commune: str | None
    supervisor_id: UUID | None

    @property
    def is_administrator(self) -> bool:
        return self.role in ADMINISTRATOR_ROLES

    @property
    def has_supervisor(self) -> bool:
        return self.supervisor_id is not None

    @property
    def scoped_commune(self) -> str | None:
        """Commune the actor is restricted to, or None when unscoped."""
        if self.role == Role.SUPER_ADMIN:
            return None
        return self.commune


def require_scope(actor: Actor, commune: str | None) -> None:
    """Refuse unless ``commune`` is inside the actor's jurisdiction."""
    if actor.role == Role.SUPER_ADMIN:
        return
    if actor.commune is None or commune != actor.commune:
        raise AccessDeniedError(str(actor.user_id), "taxpayer outside your commune")


def require_manual_payment_role(actor: Actor) -> None:
    if actor.role not in MANUAL_PAYMENT_ROLES:
        raise AccessDeniedError(str(actor.user_id), "role cannot record payments")


def require_administrator(actor: Actor) -> None:
    if not actor.is_administrator:
        raise AccessDeniedError(str(actor.user_id), "administrator role required")


def require_reduction_requester(actor: Actor) -> None:
    """A requester needs either administrator rights or a supervisor."""
    if not actor.is_administrator and not actor.has_supervisor:
        raise AccessDeniedError(
            str(actor.user_id), "no one is authorized to apply your reductions"
        )


def require_direct_supervisor(reviewer: Actor, requester_supervisor_id: UUID | None) -> None:
    """Only the requester's direct supervisor may decide a reduction."""
    if requester_supervisor_id is None or requester_supervisor_id != reviewer.user_id:
        raise AccessDeniedError(
            str(reviewer.user_id), "only the requester's direct supervisor may decide"
        )
