"""
Client model (customer organisations that own projects and maintenance work).
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, utc_isoformat


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    legal_name: Mapped[str] = mapped_column(String(255), default="")
    rfc: Mapped[Optional[str]] = mapped_column(String(20), unique=True, nullable=True)  # tax id
    contact_person: Mapped[str] = mapped_column(String(255), default="")
    email: Mapped[str] = mapped_column(String(255), default="")
    phone: Mapped[str] = mapped_column(String(50), default="")
    address: Mapped[str] = mapped_column(Text, default="")
    notes: Mapped[str] = mapped_column(Text, default="")

    # Soft delete
    active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)
    updated_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Fields carried into audit changes
    AUDITED_FIELDS = (
        "name", "legal_name", "rfc", "contact_person",
        "email", "phone", "address", "notes", "active",
    )

    def __repr__(self) -> str:
        return f"<Client {self.name}>"

    def to_dict(self) -> dict[str, Any]:
        data = {field: getattr(self, field) for field in self.AUDITED_FIELDS}
        data.update(
            id=self.id,
            created_by=self.created_by_id,
            updated_by=self.updated_by_id,
            created_at=utc_isoformat(self.created_at),
            updated_at=utc_isoformat(self.updated_at),
        )
        return data
