"""
Module: notice_ledger.models.taxpayer
Responsibility: ORM persistence for taxpayers.  Taxpayers are created by
    the registry (outside this package); the ledger reads them for scoping,
    external-code matching and audit payloads.
Architecture position: Ledger > Models.  May import from db/ only.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from notice_ledger.db.base import TrackedBase


class Taxpayer(TrackedBase):
    """A taxpayer registered in a commune."""

    __tablename__ = "taxpayers"

    code: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    commune: Mapped[str | None] = mapped_column(String(200), nullable=True)
    neighborhood: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def __repr__(self) -> str:
        return f"<Taxpayer {self.code}>"

    def contact_payload(self) -> dict[str, str | None]:
        """Contact fields exposed to external collectors."""
        return {
            "id": str(self.id),
            "code": self.code,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "commune": self.commune,
            "neighborhood": self.neighborhood,
        }
