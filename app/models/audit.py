"""
Audit trail model: one immutable record per mutation of a tracked entity.

Records are append-only. Nothing in the application updates or deletes them,
and the ORM refuses to flush an UPDATE or DELETE against this table.
References to users and entities are plain ids; removing the referenced row
never cascades here.
"""

from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, utc_isoformat

if TYPE_CHECKING:
    from app.models.user import User


class EntityType(str, PyEnum):
    """Entities whose mutations are audited."""
    USER = "user"
    CLIENT = "client"
    PROJECT = "project"
    POINT = "point"
    MATERIAL = "material"
    MAINTENANCE = "maintenance"
    INVENTORY = "inventory"


class AuditAction(str, PyEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    STATUS_CHANGE = "status_change"
    PASSWORD_CHANGE = "password_change"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_entity_created", "entity_type", "entity_id", "created_at"),
        Index("ix_audit_performer_created", "performed_by", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # What
    entity_type: Mapped[EntityType] = mapped_column(Enum(EntityType), nullable=False, index=True)
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(Enum(AuditAction), nullable=False, index=True)

    # Field name -> new value, and field name -> previous value
    changes: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    previous_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    # Who (weak reference, no foreign key)
    performed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Context for forensics
    ip_address: Mapped[Optional[str]] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Assigned by the recorder, never by the client
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action.value} {self.entity_type.value}/{self.entity_id} by {self.performed_by}>"

    def to_dict(self, performer: Optional["User"] = None) -> dict[str, Any]:
        """Serialize; `performer` is the resolved user behind `performed_by`, if any."""
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "entity_id": self.entity_id,
            "action": self.action.value,
            "changes": self.changes,
            "previous_data": self.previous_data,
            "performed_by": (
                {"id": performer.id, "username": performer.username, "full_name": performer.full_name}
                if performer is not None else None
            ),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "notes": self.notes,
            "created_at": utc_isoformat(self.created_at),
        }


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def _refuse_update(mapper, connection, target):
    raise AuditLogImmutableError("Audit records cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AuditLogImmutableError("Audit records cannot be deleted")
