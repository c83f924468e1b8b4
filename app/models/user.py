"""
User (principal) model.

Security considerations:
- Passwords are hashed with Argon2id (memory-hard, side-channel resistant)
- The digest never leaves the model through to_public()
- Users are never hard-deleted; "deleted" is a status value
- All timestamps use UTC
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.auth.password import hash_password, verify_password
from app.core.database import Base, utc_isoformat


class UserRole(str, PyEnum):
    """Closed set of permission levels."""
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    TECHNICIAN = "technician"
    VIEWER = "viewer"


class UserStatus(str, PyEnum):
    """Only ACTIVE users may authenticate."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    DELETED = "deleted"


class User(Base):
    """Principal with credentials, role and lifecycle status."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)

    # Identity
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Authentication
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # Access control
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False, default=UserRole.TECHNICIAN, index=True)
    status: Mapped[UserStatus] = mapped_column(Enum(UserStatus), nullable=False, default=UserStatus.ACTIVE, index=True)

    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Audit linkage (the bootstrap admin has no creator)
    created_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    updated_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)

    # Timestamps
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

    def __repr__(self) -> str:
        return f"<User {self.username}>"

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def set_password(self, password: str) -> None:
        """Hash and set password using Argon2id."""
        self.password_hash = hash_password(password)

    def verify_password(self, password: str) -> bool:
        return verify_password(password, self.password_hash)

    def to_public(self) -> dict[str, Any]:
        """Profile safe to serialize outward (no password digest)."""
        return {
            "id": self.id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role.value,
            "status": self.status.value,
            "last_login": utc_isoformat(self.last_login),
            "created_by": self.created_by_id,
            "updated_by": self.updated_by_id,
            "created_at": utc_isoformat(self.created_at),
            "updated_at": utc_isoformat(self.updated_at),
        }
