"""
BaseService -- abstract base for session-scoped services.

Responsibility:
    Common constructor for services that work INSIDE a transaction opened
    by someone else (NoticeLedger, AuditLogWriter).  They receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Ledger > Services.  Workflow services (PaymentService,
    ReductionWorkflow, the admin services) own the transaction through
    ``Database.transaction()`` and construct these per transaction.

Invariants enforced:
    - Transaction boundaries: session-scoped services flush within the
      caller's transaction and never commit or roll back themselves, so a
      ledger update, the row it accompanies and its audit entry commit
      together or not at all.
"""

from abc import ABC
from uuid import UUID

from sqlalchemy.orm import Session

from notice_ledger.exceptions import UserNotFoundError
from notice_ledger.models.user import User


class BaseService(ABC):
    """
    Abstract base class for session-scoped services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session


def load_user(session: Session, user_id: UUID) -> User:
    """Fetch the acting user or refuse with UserNotFoundError."""
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(str(user_id))
    return user
